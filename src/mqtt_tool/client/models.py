"""
Data Models for the Broker Session.

Defines the resolved connection settings handed from the auth resolver
to the session, and the delivery envelope the session hands to commands.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from aiomqtt import ProtocolVersion


class AuthMode(str, Enum):
    EXPLICIT_URL = "explicit_url"
    CERTIFICATE = "certificate"
    JWT = "jwt"
    CAPABILITY = "capability"


# --- The connection settings ---

@dataclass(frozen=True, kw_only=True)
class ConnectionConfig:
    """
    Everything the session needs to open a broker connection.

    Resolved once at startup and never changed afterwards; only one
    credential strategy (see `mode`) is ever present.
    """
    url: str
    mode: AuthMode
    hostname: str
    port: int
    transport: str = "tcp"
    websocket_path: Optional[str] = None
    use_tls: bool = False
    certfile: Optional[Path] = None
    keyfile: Optional[Path] = None
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    protocol: ProtocolVersion = ProtocolVersion.V5

    @property
    def has_client_cert(self) -> bool:
        return self.certfile is not None and self.keyfile is not None

    @property
    def supports_retain_as_published(self) -> bool:
        """Retain-as-published is a subscribe option that only exists in MQTT v5."""
        return self.protocol == ProtocolVersion.V5


# --- The envelope delivered to commands ---

@dataclass(frozen=True, kw_only=True)
class Delivery:
    """One message received on an active subscription."""
    topic: str
    payload: bytes
    retain: bool = False
    qos: int = 0
    message_id: Optional[int] = None
    properties: Dict[str, Any] = field(default_factory=dict)
