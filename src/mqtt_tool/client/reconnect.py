"""
Adaptive reconnect backoff for the broker session.

The session reads the delay through `pre_connect()` before every
connection attempt and waits that long if the attempt (or the
established connection) ends. Closes double the delay up to the cap,
a successful connect resets it.
"""
import logging

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 20000


class ReconnectController:
    initial_delay_ms: int
    max_delay_ms: int
    delay_ms: int

    def __init__(self, initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS, max_delay_ms: int = DEFAULT_MAX_DELAY_MS):
        if initial_delay_ms <= 0 or max_delay_ms < initial_delay_ms:
            raise ValueError(f"Invalid backoff range: {initial_delay_ms}..{max_delay_ms} ms")
        self.initial_delay_ms = initial_delay_ms
        self.max_delay_ms = max_delay_ms
        self.delay_ms = initial_delay_ms

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000

    def pre_connect(self) -> int:
        """Hook run before every connection attempt, including the first."""
        logger.debug(f"Connecting, reconnect period is {self.delay_ms} ms")
        return self.delay_ms

    def on_connect(self):
        self.delay_ms = self.initial_delay_ms

    def on_close(self) -> int:
        self.delay_ms = min(self.delay_ms * 2, self.max_delay_ms)
        logger.warning(f"Connection closed, reconnect delay is now {self.delay_ms} ms")
        return self.delay_ms

    def __repr__(self) -> str:
        return f"ReconnectController(delay_ms={self.delay_ms}, max_delay_ms={self.max_delay_ms})"
