"""
Backup Record Codec.

One retained message per line of newline-delimited JSON:

    {"topic": "a/b", "payload": "aGk=", "retain": true, "qos": 0}

The payload is base64 so arbitrary bytes survive; any further protocol
metadata is carried through untouched.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, IO

from mqtt_tool.client.models import Delivery
from mqtt_tool.errors import MalformedRecord

logger = logging.getLogger(__name__)

RESERVED_FIELDS = ("topic", "payload", "retain")


@dataclass(frozen=True, kw_only=True)
class BackupRecord:
    """A snapshot of one retained message."""
    topic: str
    payload: bytes
    retain: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> "BackupRecord":
        extra: Dict[str, Any] = {"qos": delivery.qos}
        if delivery.message_id is not None:
            extra["messageId"] = delivery.message_id
        if delivery.properties:
            extra["properties"] = delivery.properties
        return cls(topic=delivery.topic, payload=delivery.payload, retain=delivery.retain, extra=extra)


def encode_record(record: BackupRecord) -> str:
    """Returns the record as one JSON line, newline included."""
    data = {key: value for key, value in record.extra.items() if key not in RESERVED_FIELDS}
    data["topic"] = record.topic
    data["payload"] = base64.b64encode(record.payload).decode("ascii")
    data["retain"] = record.retain
    return json.dumps(data, separators=(",", ":")) + "\n"


def decode_record(line: str) -> BackupRecord:
    """Parses one backup line. Raises `MalformedRecord` if it is not a record."""
    try:
        data = json.loads(line)
    except ValueError as e:
        raise MalformedRecord(f"not valid JSON: {e}", line) from e
    if not isinstance(data, dict):
        raise MalformedRecord("not a JSON object", line)

    topic = data.get("topic")
    if not isinstance(topic, str) or not topic:
        raise MalformedRecord("missing topic", line)
    encoded = data.get("payload")
    if not isinstance(encoded, str):
        raise MalformedRecord("missing payload", line)
    try:
        payload = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise MalformedRecord(f"payload is not base64: {e}", line) from e

    extra = {key: value for key, value in data.items() if key not in RESERVED_FIELDS}
    return BackupRecord(topic=topic, payload=payload, retain=bool(data.get("retain", False)), extra=extra)


class BackupWriter:
    """Appends records to an open text stream, one write and flush per record."""

    def __init__(self, stream: IO[str]):
        self.stream = stream
        self.count = 0

    def write(self, record: BackupRecord):
        self.stream.write(encode_record(record))
        self.stream.flush()
        self.count += 1
