"""
Auction Server - asyncio TCP front end for CFA clients.

Each connection says HELLO with its user id, then sends COMMANDs and
receives RESULTs. Events for the games it subscribed to arrive as EVENT
pushes on the same connection.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Set

from cfa.core.auction.timer import LotExpiryScheduler
from cfa.core.config import AuctionConfig
from cfa.core.services import Services, build_services
from cfa.network.gateway import BroadcastGateway, CommandRelay
from cfa.network.protocol import (
    Message,
    MessageType,
    ProtocolError,
    create_error,
    create_event,
    create_pong,
    create_result,
    create_welcome,
    read_message,
)
from cfa.utils.logger import get_logger
from cfa.utils.validation import validate_identifier

logger = get_logger("server")

OUTBOUND_QUEUE_SIZE = 256


class ClientSession:
    """
    One connected client.

    Outbound messages go through a bounded queue drained by a writer task,
    so a slow client never blocks the thread that produced an event.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        loop: asyncio.AbstractEventLoop,
    ):
        self.reader = reader
        self.writer = writer
        self.loop = loop
        self.user_id: Optional[str] = None
        self.address = writer.get_extra_info("peername")
        self._outbound: asyncio.Queue = asyncio.Queue(maxsize=OUTBOUND_QUEUE_SIZE)
        self._writer_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._writer_task = asyncio.create_task(self._drain())

    def send(self, message: Message) -> None:
        """Queue a message; call from the event loop thread."""
        try:
            self._outbound.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for {self.user_id}, dropping {message.msg_type.name}")

    def deliver(self, game_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Room delivery; safe to call from any thread."""
        self.loop.call_soon_threadsafe(self.send, create_event(game_id, event, payload))

    async def _drain(self) -> None:
        while True:
            message = await self._outbound.get()
            try:
                self.writer.write(message.to_bytes())
                await self.writer.drain()
            except (ConnectionError, ProtocolError) as e:
                logger.debug(f"Send to {self.address} failed: {e}")
                if isinstance(e, ConnectionError):
                    return

    async def close(self) -> None:
        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError:
            pass


class AuctionServer:
    """
    TCP server wiring sessions to the command relay and game rooms.

    Usage:
        server = AuctionServer(config)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        config: AuctionConfig,
        services: Optional[Services] = None,
        gateway: Optional[BroadcastGateway] = None,
    ):
        self.config = config
        self.gateway = gateway or BroadcastGateway()
        self.services = services or build_services(config, broadcaster=self.gateway)
        self.relay = CommandRelay(self.services, self.gateway)
        self.scheduler: Optional[LotExpiryScheduler] = None
        self.server: Optional[asyncio.AbstractServer] = None
        self.sessions: Set[ClientSession] = set()
        self._handlers: Dict[MessageType, Callable] = {
            MessageType.HELLO: self._handle_hello,
            MessageType.COMMAND: self._handle_command,
            MessageType.PING: self._handle_ping,
        }

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.config.port

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self.config.server_timer:
            self.scheduler = LotExpiryScheduler(self.services.engine, loop)
            self.scheduler.attach()

        self.server = await asyncio.start_server(
            self._handle_connection,
            self.config.host,
            self.config.port,
        )
        logger.info(f"Auction server listening on {self.config.host}:{self.port}")

    async def stop(self) -> None:
        if self.scheduler:
            self.scheduler.cancel_all()
        for session in list(self.sessions):
            await session.close()
        self.sessions.clear()
        if self.server:
            self.server.close()
            await self.server.wait_closed()
        logger.info("Auction server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await self.server.serve_forever()
        finally:
            await self.stop()

    # =========================================================================
    # Connection Handling
    # =========================================================================

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        session = ClientSession(reader, writer, asyncio.get_running_loop())
        session.start()
        self.sessions.add(session)
        logger.info(f"Client connected from {session.address}")

        try:
            while True:
                try:
                    message = await read_message(reader)
                except ProtocolError as e:
                    logger.warning(f"Bad frame from {session.address}: {e}")
                    session.send(create_error(str(e)))
                    break
                await self._on_message(message, session)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self.gateway.leave_all(session)
            self.sessions.discard(session)
            await session.close()
            logger.info(f"Client {session.user_id or session.address} disconnected")

    async def _on_message(self, message: Message, session: ClientSession) -> None:
        if message.msg_type != MessageType.HELLO and session.user_id is None:
            session.send(create_error("Say HELLO first", message.request_id))
            return

        handler = self._handlers.get(message.msg_type)
        if handler:
            await handler(message, session)
        else:
            session.send(create_error(
                f"Unexpected message type: {message.msg_type.name}", message.request_id
            ))

    async def _handle_hello(self, message: Message, session: ClientSession) -> None:
        user_id = message.body.get("user_id")
        valid, err = validate_identifier(user_id, "user_id")
        if not valid:
            session.send(create_error(err, message.request_id))
            return
        session.user_id = user_id
        session.send(create_welcome(user_id))
        logger.info(f"Client {session.address} identified as {user_id}")

    async def _handle_command(self, message: Message, session: ClientSession) -> None:
        result = await asyncio.to_thread(self.relay.dispatch, session, message.body)
        session.send(create_result(message.request_id, result))

    async def _handle_ping(self, message: Message, session: ClientSession) -> None:
        session.send(create_pong(message.timestamp))
