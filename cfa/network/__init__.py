"""
CFA Network Module - Client transport for the live auction.

Provides the framed wire protocol, game rooms and the asyncio server.
"""

from cfa.network.protocol import (
    Message,
    MessageType,
    ProtocolError,
    read_message,
    create_hello,
    create_welcome,
    create_command,
    create_result,
    create_event,
    create_ping,
    create_pong,
    create_error,
)
from cfa.network.gateway import BroadcastGateway, CommandRelay, room_name
from cfa.network.server import AuctionServer, ClientSession

__all__ = [
    # Protocol
    "Message",
    "MessageType",
    "ProtocolError",
    "read_message",
    "create_hello",
    "create_welcome",
    "create_command",
    "create_result",
    "create_event",
    "create_ping",
    "create_pong",
    "create_error",
    # Gateway
    "BroadcastGateway",
    "CommandRelay",
    "room_name",
    # Server
    "AuctionServer",
    "ClientSession",
]
