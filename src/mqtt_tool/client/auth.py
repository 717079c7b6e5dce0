"""
Authentication Resolver.

This module is responsible for:
- Choosing exactly one credential strategy (JWT, client certificate,
  plain explicit URL or the local capability fallback).
- Reading the local files each strategy needs, with an explicit
  required/optional policy per read.
- Producing the immutable `ConnectionConfig` used by the session.

Nothing here touches the network.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from aiomqtt import ProtocolVersion

from mqtt_tool.client.models import AuthMode, ConnectionConfig
from mqtt_tool.errors import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_TLS_URL = "mqtts://localhost"
CAPABILITY_URL = "mqtt://localhost"
CERT_FILE_NAME = "client.crt"
KEY_FILE_NAME = "client.key"
PACKAGE_METADATA_FILE = "package.json"

TLS_SCHEMES = {"mqtts", "ssl", "tls", "wss"}
DEFAULT_PORTS = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "tls": 8883,
    "ws": 80,
    "wss": 443,
}


class ReadPolicy(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class FileRead:
    """Outcome of reading one local file."""
    path: Path
    content: Optional[bytes] = None
    error: Optional[OSError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def read_local_file(path: Path, policy: ReadPolicy) -> FileRead:
    """
    Reads `path` and reports the outcome as a `FileRead`.

    A failed REQUIRED read raises `AuthenticationError`; a failed OPTIONAL
    read is logged and returned so the caller can degrade.
    """
    try:
        return FileRead(path=path, content=path.read_bytes())
    except OSError as e:
        if policy == ReadPolicy.REQUIRED:
            raise AuthenticationError(f"Cannot read required file {path}: {e.strerror or e}") from e
        logger.warning(f"Optional file {path} not readable ({e.strerror or e}), continuing without it.")
        return FileRead(path=path, error=e)


def decode_jwt_payload(token: str) -> Dict[str, Any]:
    """Decodes the claims (middle segment) of a JWT without verifying it."""
    parts = token.split(".")
    if len(parts) != 3:
        raise AuthenticationError("JWT must consist of three dot-separated segments")
    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment))
    except (binascii.Error, ValueError) as e:
        raise AuthenticationError(f"Cannot decode JWT payload: {e}") from e
    if not isinstance(payload, dict):
        raise AuthenticationError("JWT payload is not a JSON object")
    return payload


def version_namespace(version: str, granularity: Optional[str] = None) -> str:
    """
    Truncates a semantic version to the namespace used in client ids.

    'major' keeps one component, 'minor' two, anything else the full
    three-component version.
    """
    parts = version.split(".")
    if granularity == "major":
        return parts[0]
    if granularity == "minor":
        return ".".join(parts[:2])
    return ".".join(parts[:3])


def _endpoint_kwargs(url: str) -> Dict[str, Any]:
    """Splits a broker URL into the connection fields of `ConnectionConfig`."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise AuthenticationError(f"Unsupported broker URL scheme '{parts.scheme}' in {url}")
    is_websocket = scheme in ("ws", "wss")
    return {
        "url": url,
        "hostname": parts.hostname or "localhost",
        "port": parts.port or DEFAULT_PORTS[scheme],
        "transport": "websockets" if is_websocket else "tcp",
        "websocket_path": (parts.path or "/") if is_websocket else None,
        "use_tls": scheme in TLS_SCHEMES,
    }


def _jwt_config(url: str, token: str) -> ConnectionConfig:
    payload = decode_jwt_payload(token)
    logger.info("Using JWT authentication.")
    return ConnectionConfig(
        mode=AuthMode.JWT,
        username=json.dumps({"id": payload.get("id"), "payload": payload}),
        password=token,
        protocol=ProtocolVersion.V5,
        **_endpoint_kwargs(url),
    )


def _certificate_config(url: str, cert_dir: Path) -> ConnectionConfig:
    cert = read_local_file(cert_dir / CERT_FILE_NAME, ReadPolicy.OPTIONAL)
    key = read_local_file(cert_dir / KEY_FILE_NAME, ReadPolicy.OPTIONAL)
    if cert.ok and key.ok:
        logger.info(f"Using client certificate from {cert_dir}.")
        certfile, keyfile = cert.path, key.path
    else:
        logger.warning("No client certificate loaded, connecting over TLS without one.")
        certfile = keyfile = None
    return ConnectionConfig(
        mode=AuthMode.CERTIFICATE,
        certfile=certfile,
        keyfile=keyfile,
        protocol=ProtocolVersion.V5,
        **_endpoint_kwargs(url),
    )


def _capability_config(home: Path, cwd: Path) -> ConnectionConfig:
    metadata = read_local_file(cwd / PACKAGE_METADATA_FILE, ReadPolicy.REQUIRED)
    try:
        package = json.loads(metadata.content)
        name = package["name"]
        version = package["version"]
    except (ValueError, KeyError, TypeError) as e:
        raise AuthenticationError(f"Invalid package metadata in {metadata.path}: {e}") from e

    config = package.get("config") or {}
    if not isinstance(name, str) or not name or not isinstance(version, str) or not isinstance(config, dict):
        raise AuthenticationError(f"Invalid package metadata in {metadata.path}: name and version must be strings, config an object")
    granularity = config.get("versionNamespace")
    namespace = version_namespace(version, granularity)

    secret = read_local_file(home / ".transitive" / "packages" / name / "password", ReadPolicy.REQUIRED)
    logger.info(f"Using capability credentials for {name}/{namespace}.")
    return ConnectionConfig(
        mode=AuthMode.CAPABILITY,
        client_id=f"{name}/{namespace}",
        username=json.dumps({"version": version}),
        password=secret.content.decode("utf-8").strip(),
        # the local broker does not speak MQTT v5
        protocol=ProtocolVersion.V311,
        **_endpoint_kwargs(CAPABILITY_URL),
    )


def resolve_connection_config(
    url: Optional[str],
    jwt: Optional[str],
    home: Path,
    cwd: Path,
    cert_dir: Path = Path("certs"),
) -> ConnectionConfig:
    """
    Resolves the single authentication strategy for this process.

    First match wins: a JWT, then an explicit TLS URL (client certificate
    optional), then an explicit plain URL, and finally the capability
    fallback. Raises `AuthenticationError` when no method is usable.
    """
    if jwt:
        return _jwt_config(url or DEFAULT_TLS_URL, jwt)

    if url:
        if urlsplit(url).scheme.lower() in TLS_SCHEMES:
            return _certificate_config(url, cert_dir if cert_dir.is_absolute() else cwd / cert_dir)
        logger.info(f"Using explicit broker URL {url}.")
        return ConnectionConfig(mode=AuthMode.EXPLICIT_URL, **_endpoint_kwargs(url))

    try:
        return _capability_config(home, cwd)
    except AuthenticationError as e:
        raise AuthenticationError(f"No authentication method found: {e}") from e
