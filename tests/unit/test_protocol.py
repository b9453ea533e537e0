"""
Unit tests for the client wire protocol.

Tests cover:
1. Message framing and body encoding
2. Checksum and header validation
3. Reading frames from a stream
"""

import asyncio
import struct

import pytest

from cfa.network.protocol import (
    HEADER_SIZE,
    MAGIC_BYTES,
    MAX_MESSAGE_SIZE,
    PROTOCOL_VERSION,
    Message,
    MessageType,
    ProtocolError,
    create_command,
    create_error,
    create_event,
    create_hello,
    create_pong,
    read_message,
)


# =============================================================================
# Framing
# =============================================================================


class TestMessage:
    def test_header_layout(self):
        data = create_hello("alice").to_bytes()
        magic, version, msg_type, length = struct.unpack(">4sBBI", data[:HEADER_SIZE])
        assert magic == MAGIC_BYTES
        assert version == PROTOCOL_VERSION
        assert msg_type == MessageType.HELLO
        assert len(data) == HEADER_SIZE + length + 4

    def test_command_survives_the_wire(self):
        msg = create_command(7, "auction.bid", {"game_id": "g1", "amount": 10.5})
        parsed = Message.from_bytes(msg.to_bytes())
        assert parsed.msg_type == MessageType.COMMAND
        assert parsed.request_id == 7
        assert parsed.timestamp == msg.timestamp
        assert parsed.body == {"command": "auction.bid", "args": {"game_id": "g1", "amount": 10.5}}

    def test_event_body(self):
        msg = create_event("g1", "auction:paused", {"message": "Auction paused. Back shortly!"})
        assert msg.body["event"] == "auction:paused"
        assert msg.body["game_id"] == "g1"

    def test_error_body(self):
        msg = create_error("Say HELLO first", request_id=3)
        assert msg.body == {"ok": False, "error": "protocol", "reason": "Say HELLO first"}
        assert msg.request_id == 3

    def test_pong_echoes_timestamp(self):
        assert create_pong(1234).body == {"ping_timestamp": 1234}


class TestValidation:
    def test_checksum_mismatch(self):
        data = bytearray(create_hello("alice").to_bytes())
        data[-5] ^= 0xFF
        with pytest.raises(ProtocolError, match="Checksum"):
            Message.from_bytes(bytes(data))

    def test_bad_magic(self):
        data = b"XXXX" + create_hello("alice").to_bytes()[4:]
        with pytest.raises(ProtocolError, match="magic"):
            Message.from_bytes(data)

    def test_wrong_version(self):
        data = bytearray(create_hello("alice").to_bytes())
        data[4] = PROTOCOL_VERSION + 1
        with pytest.raises(ProtocolError, match="version"):
            Message.from_bytes(bytes(data))

    def test_unknown_type(self):
        header = struct.pack(">4sBBI", MAGIC_BYTES, PROTOCOL_VERSION, 99, 12)
        with pytest.raises(ProtocolError, match="Unknown message type"):
            Message.parse_header(header)

    def test_oversized_length(self):
        header = struct.pack(">4sBBI", MAGIC_BYTES, PROTOCOL_VERSION, 0, MAX_MESSAGE_SIZE + 1)
        with pytest.raises(ProtocolError, match="too large"):
            Message.parse_header(header)

    def test_truncated(self):
        data = create_hello("alice").to_bytes()
        with pytest.raises(ProtocolError):
            Message.from_bytes(data[:-6])

    def test_body_must_be_object(self):
        msg = Message(MessageType.RESULT, body={})
        msg.body = [1, 2]
        with pytest.raises(ProtocolError, match="JSON object"):
            Message.from_bytes(msg.to_bytes())


class TestReadMessage:
    def test_reads_consecutive_frames(self):
        async def scenario():
            reader = asyncio.StreamReader()
            reader.feed_data(create_hello("alice").to_bytes() + create_command(1, "leaderboard").to_bytes())
            reader.feed_eof()
            first = await read_message(reader)
            second = await read_message(reader)
            with pytest.raises(asyncio.IncompleteReadError):
                await read_message(reader)
            return first, second

        first, second = asyncio.run(scenario())
        assert first.body["user_id"] == "alice"
        assert second.body["command"] == "leaderboard"
