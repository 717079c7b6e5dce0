"""
Exception taxonomy for mqtt_tool.

Startup problems are fatal and end the process, malformed input lines
are reported and skipped. Connection problems are never raised to the
command layer; they surface as `aiomqtt.MqttError` inside the session
loop only.
"""


class MqttToolError(Exception):
    """Base class for all errors raised by mqtt_tool."""


class AuthenticationError(MqttToolError):
    """No usable authentication method could be resolved at startup."""


class MalformedRecord(MqttToolError):
    """A backup line could not be decoded into a record."""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line
