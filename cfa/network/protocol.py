"""
Network Protocol - Message types and serialization for CFA clients.

Defines the wire protocol between the auction server and its clients.
"""

import asyncio
import hashlib
import json
import struct
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional


class MessageType(IntEnum):
    """Types of messages in the client protocol."""
    HELLO = 0
    WELCOME = 1
    COMMAND = 2
    RESULT = 3
    EVENT = 4
    PING = 5
    PONG = 6
    ERROR = 7


# Protocol constants
PROTOCOL_VERSION = 1
MAGIC_BYTES = b"CFA1"  # 4 bytes, identifies CFA protocol
MAX_MESSAGE_SIZE = 1024 * 1024  # 1 MB max message
HEADER_SIZE = 10
CHECKSUM_SIZE = 4
META_FORMAT = ">QI"  # timestamp ms (8) + request id (4)
META_SIZE = struct.calcsize(META_FORMAT)


class ProtocolError(ValueError):
    """Malformed or unsupported frame."""


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()[:CHECKSUM_SIZE]


@dataclass
class Message:
    """
    A client protocol message.

    Wire format:
        magic (4) | version (1) | type (1) | payload_len (4) | payload (n) | checksum (4)

    payload = timestamp (8) | request_id (4) | JSON body
    """
    msg_type: MessageType
    body: Dict[str, Any] = field(default_factory=dict)
    request_id: int = 0
    timestamp: int = 0

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time() * 1000)

    def to_bytes(self) -> bytes:
        """Serialize message to wire format."""
        meta = struct.pack(META_FORMAT, self.timestamp, self.request_id)
        full_payload = meta + json.dumps(self.body, separators=(",", ":")).encode("utf-8")
        if len(full_payload) > MAX_MESSAGE_SIZE:
            raise ProtocolError(f"Message too large: {len(full_payload)}")

        header = struct.pack(
            ">4sBBI",  # magic (4) + version (1) + type (1) + length (4)
            MAGIC_BYTES,
            PROTOCOL_VERSION,
            self.msg_type,
            len(full_payload),
        )
        return header + full_payload + _checksum(header + full_payload)

    @staticmethod
    def parse_header(header: bytes) -> tuple:
        """Validate a header and return (msg_type, payload_len)."""
        if len(header) < HEADER_SIZE:
            raise ProtocolError("Message too short")
        magic, version, msg_type, payload_len = struct.unpack(">4sBBI", header[:HEADER_SIZE])
        if magic != MAGIC_BYTES:
            raise ProtocolError(f"Invalid magic bytes: {magic!r}")
        if version != PROTOCOL_VERSION:
            raise ProtocolError(f"Unsupported protocol version: {version}")
        if payload_len > MAX_MESSAGE_SIZE:
            raise ProtocolError(f"Message too large: {payload_len}")
        try:
            return MessageType(msg_type), payload_len
        except ValueError:
            raise ProtocolError(f"Unknown message type: {msg_type}") from None

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """Deserialize message from wire format."""
        if len(data) < HEADER_SIZE + CHECKSUM_SIZE:
            raise ProtocolError("Message too short")

        msg_type, payload_len = cls.parse_header(data)
        end = HEADER_SIZE + payload_len
        if len(data) < end + CHECKSUM_SIZE or payload_len < META_SIZE:
            raise ProtocolError("Truncated message")

        full_payload = data[HEADER_SIZE:end]
        if data[end:end + CHECKSUM_SIZE] != _checksum(data[:end]):
            raise ProtocolError("Checksum mismatch")

        timestamp, request_id = struct.unpack(META_FORMAT, full_payload[:META_SIZE])
        try:
            body = json.loads(full_payload[META_SIZE:].decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Invalid body: {e}") from None
        if not isinstance(body, dict):
            raise ProtocolError("Body must be a JSON object")

        return cls(msg_type=msg_type, body=body, request_id=request_id, timestamp=timestamp)


async def read_message(reader: asyncio.StreamReader) -> Message:
    """
    Read one framed message.

    Raises:
        asyncio.IncompleteReadError: connection closed
        ProtocolError: bad frame
    """
    header = await reader.readexactly(HEADER_SIZE)
    _, payload_len = Message.parse_header(header)
    remainder = await reader.readexactly(payload_len + CHECKSUM_SIZE)
    return Message.from_bytes(header + remainder)


def create_hello(user_id: str) -> Message:
    """Create the HELLO a client opens with."""
    return Message(msg_type=MessageType.HELLO, body={"user_id": user_id})


def create_welcome(user_id: str) -> Message:
    return Message(
        msg_type=MessageType.WELCOME,
        body={"user_id": user_id, "protocol_version": PROTOCOL_VERSION},
    )


def create_command(request_id: int, command: str, args: Optional[Dict[str, Any]] = None) -> Message:
    """Create a COMMAND; the RESULT echoes request_id."""
    return Message(
        msg_type=MessageType.COMMAND,
        body={"command": command, "args": args or {}},
        request_id=request_id,
    )


def create_result(request_id: int, result: Dict[str, Any]) -> Message:
    return Message(msg_type=MessageType.RESULT, body=result, request_id=request_id)


def create_event(game_id: str, event: str, payload: Dict[str, Any]) -> Message:
    """Create a room EVENT push."""
    return Message(
        msg_type=MessageType.EVENT,
        body={"game_id": game_id, "event": event, "payload": payload},
    )


def create_ping() -> Message:
    return Message(msg_type=MessageType.PING)


def create_pong(ping_timestamp: int) -> Message:
    """Create a PONG response to a PING."""
    return Message(msg_type=MessageType.PONG, body={"ping_timestamp": ping_timestamp})


def create_error(reason: str, request_id: int = 0) -> Message:
    return Message(
        msg_type=MessageType.ERROR,
        body={"ok": False, "error": "protocol", "reason": reason},
        request_id=request_id,
    )
