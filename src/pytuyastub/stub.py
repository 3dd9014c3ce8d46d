"""Asyncio engine emulating a Tuya 3.1 device on the local network."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pytuyastub._constants import READ_CHUNK_SIZE
from pytuyastub._discovery import DiscoveryEmitter
from pytuyastub._redact import redact_for_log
from pytuyastub.codec import FrameCodec, FrameDecoder
from pytuyastub.config import ConnectionPolicy, StubConfig
from pytuyastub.exceptions import FrameError, StubCryptoError, StubStateError, TuyaStubError
from pytuyastub.models.message import TuyaMessage
from pytuyastub.session import ProtocolSession
from pytuyastub.state.store import DeviceStateStore

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Connection:
    """The one client connection the stub currently serves."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    session: ProtocolSession
    decoder: FrameDecoder
    peer: Any = None

    def close(self) -> None:
        self.session.close()
        if not self.writer.is_closing():
            self.writer.close()


class TuyaStub:
    """Local stand-in for a Tuya device.

    Usage::

        config = StubConfig(device_id="dev123", local_key="0123456789abcdef",
                            initial_state={"1": False, "2": True}, listen_port=0)
        async with TuyaStub(config) as stub:
            ...  # point a client at 127.0.0.1:stub.port
            stub.set_property("1", True)

    Only one client is served at a time; ``config.connection_policy``
    decides whether a newcomer replaces the current client or is turned
    away. Refused requests and undecodable frames are logged and passed to
    *on_error*; they never close the connection or the listener.
    """

    def __init__(
        self,
        config: StubConfig,
        *,
        on_error: Callable[[TuyaStubError], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._identity = config.identity
        self._codec = FrameCodec(self._identity)
        self._store = DeviceStateStore(config.initial_state)
        self._on_error = on_error
        self._clock = clock
        self._loop: asyncio.AbstractEventLoop | None = None
        self._server: asyncio.Server | None = None
        self._emitter: DiscoveryEmitter | None = None
        self._connection: _Connection | None = None
        self._connected = asyncio.Event()
        self._handlers: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TuyaStub:
        try:
            await self.start_server()
            await self.start_broadcast()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> StubConfig:
        return self._config

    @property
    def codec(self) -> FrameCodec:
        return self._codec

    @property
    def store(self) -> DeviceStateStore:
        return self._store

    @property
    def port(self) -> int | None:
        """Bound TCP port, or ``None`` when not listening."""
        if self._server is None or not self._server.sockets:
            return None
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def connected(self) -> bool:
        """Whether a client connection is currently being served."""
        return self._connection is not None

    @property
    def broadcasting(self) -> bool:
        return self._emitter is not None and self._emitter.is_running

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    async def start_server(self, port: int | None = None, host: str | None = None) -> int:
        """Start listening for client connections and return the bound port.

        Raises
        ------
        StubStateError
            If the server is already listening.
        """
        if self._server is not None:
            raise StubStateError("Server already listening")
        self._loop = asyncio.get_running_loop()
        listen_port = self._config.listen_port if port is None else port
        listen_host = self._config.listen_host if host is None else host
        server = await asyncio.start_server(self._on_connect, listen_host, listen_port)
        if not server.sockets:
            server.close()
            await server.wait_closed()
            raise StubStateError(f"Server on {listen_host}:{listen_port} has no bound socket")
        self._server = server
        bound = int(server.sockets[0].getsockname()[1])
        _logger.info("Device %s listening on %s:%d", self._identity.device_id, listen_host, bound)
        _logger.debug("Stub config: %s", redact_for_log(dataclasses.asdict(self._config)))
        return bound

    async def start_broadcast(
        self,
        *,
        port: int | None = None,
        interval: float | None = None,
        address: str | None = None,
    ) -> None:
        """Start the discovery broadcast; no-op if it is already running."""
        self._loop = asyncio.get_running_loop()
        if self._emitter is None:
            self._emitter = DiscoveryEmitter(
                self._codec,
                ip=self._config.ip,
                port=self._config.broadcast_port if port is None else port,
                interval=self._config.broadcast_interval if interval is None else interval,
                broadcast_address=self._config.broadcast_address if address is None else address,
                logger=_logger,
            )
        await self._emitter.start()

    async def stop_broadcast(self) -> None:
        emitter = self._emitter
        self._emitter = None
        if emitter is not None:
            await emitter.stop()

    async def stop(self) -> None:
        """Release the connection, the listening socket and the broadcast timer.

        Safe to call repeatedly, and the stub can be started again afterwards.
        """
        try:
            await self.stop_broadcast()
        finally:
            connection = self._connection
            self._drop_connection(connection)
            if connection is not None:
                connection.close()

            server = self._server
            self._server = None
            if server is not None:
                server.close()

            handlers = list(self._handlers)
            for task in handlers:
                task.cancel()
            if handlers:
                await asyncio.gather(*handlers, return_exceptions=True)

            if server is not None:
                await server.wait_closed()
                _logger.info("Device %s stopped", self._identity.device_id)

    async def wait_for_connection(self, timeout: float | None = None) -> None:
        """Wait until a client is connected.

        Raises
        ------
        TimeoutError
            If no client connects within *timeout* seconds.
        """
        await asyncio.wait_for(self._connected.wait(), timeout)

    # ------------------------------------------------------------------
    # Direct state access for the host
    # ------------------------------------------------------------------

    def get_property(self, key: str | int) -> Any:
        """Value of one data point."""
        return self._store.get(key)

    def set_property(self, key: str | int, value: Any) -> Any:
        """Set one data point and push the full state to a connected client.

        Every call produces its own ``CONTROL`` push with no sequence
        number. A push that cannot be encoded is passed to *on_error*; the
        store keeps the new value. Callable from any thread.
        """
        with self._store.lock:
            stored = self._store.set(key, value)
            snapshot = self._store.snapshot()

        connection = self._connection
        if connection is not None:
            self._schedule_push(connection, snapshot)
        return stored

    def get_state(self) -> dict[str, Any]:
        """Copy of the whole device state."""
        return self._store.snapshot()

    def set_state(self, state: dict[Any, Any]) -> dict[str, Any]:
        """Replace the whole device state atomically (no push)."""
        return self._store.replace(state)

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _on_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        peer = writer.get_extra_info("peername")
        try:
            previous = self._connection
            if previous is not None:
                if self._config.connection_policy is ConnectionPolicy.REJECT:
                    _logger.info("Rejecting %s: already serving %s", peer, previous.peer)
                    writer.close()
                    with contextlib.suppress(ConnectionError):
                        await writer.wait_closed()
                    return
                _logger.info("Replacing connection from %s with %s", previous.peer, peer)
                self._drop_connection(previous)
                previous.close()

            session = ProtocolSession(
                self._identity,
                self._store,
                clock=self._clock,
                max_skew=self._config.max_timestamp_skew,
            )
            session.connect()
            connection = _Connection(
                reader=reader,
                writer=writer,
                session=session,
                decoder=self._codec.decoder(),
                peer=peer,
            )
            self._connection = connection
            self._connected.set()
            _logger.info("Client connected from %s", peer)
            await self._serve(connection)
        finally:
            if task is not None:
                self._handlers.discard(task)

    async def _serve(self, connection: _Connection) -> None:
        try:
            while True:
                data = await connection.reader.read(READ_CHUNK_SIZE)
                if not data or not connection.session.is_connected:
                    break
                self._process(connection, data)
                await connection.writer.drain()
        except ConnectionError as exc:
            _logger.debug("Connection from %s failed: %s", connection.peer, exc)
        finally:
            self._drop_connection(connection)
            connection.close()
            with contextlib.suppress(ConnectionError):
                await connection.writer.wait_closed()
            _logger.info("Client %s disconnected", connection.peer)

    def _process(self, connection: _Connection, data: bytes) -> None:
        """Handle every frame completed by *data*, writing responses in order."""
        for item in connection.decoder.feed(data):
            result = connection.session.handle(item)
            for response in result.responses:
                self._send(connection, response)
            if result.error is not None:
                self._report(result.error)

    def _send(self, connection: _Connection, message: TuyaMessage) -> None:
        """Encode and write *message*; an unencodable message is reported and skipped."""
        try:
            frame = self._codec.encode(message)
        except (FrameError, StubCryptoError) as exc:
            _logger.warning("Cannot encode %s for %s: %s", message.describe(), connection.peer, exc)
            self._report(exc)
            return
        connection.writer.write(frame)

    def _drop_connection(self, connection: _Connection | None) -> None:
        if connection is not None and self._connection is connection:
            self._connection = None
            self._connected.clear()

    def _schedule_push(self, connection: _Connection, snapshot: dict[str, Any]) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._write_push(connection, snapshot)
        else:
            loop.call_soon_threadsafe(self._write_push, connection, snapshot)

    def _write_push(self, connection: _Connection, snapshot: dict[str, Any]) -> None:
        if connection is not self._connection or connection.writer.is_closing():
            return
        self._send(connection, connection.session.property_push(snapshot))

    def _report(self, error: TuyaStubError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)
