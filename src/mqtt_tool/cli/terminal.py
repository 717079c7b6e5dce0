"""
Terminal window title handling.

Uses the xterm title stack: every `push` saves the current title before
setting a new one, `restore` pops everything that was pushed.
"""
import sys
from typing import IO, Optional

SAVE_TITLE = "\033[22;0t"
RESTORE_TITLE = "\033[23;0t"


class TerminalTitle:
    def __init__(self, stream: IO[str] = sys.stdout, enabled: Optional[bool] = None):
        self.stream = stream
        self.enabled = stream.isatty() if enabled is None else enabled
        self.depth = 0

    def push(self, title: str):
        if not self.enabled:
            return
        self.stream.write(SAVE_TITLE)
        self.stream.write(f"\033]0;{title}\007")
        self.stream.flush()
        self.depth += 1

    def restore(self):
        if not self.enabled:
            return
        while self.depth:
            self.stream.write(RESTORE_TITLE)
            self.depth -= 1
        self.stream.flush()
