"""Periodic UDP discovery broadcast."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from pytuyastub._constants import DEFAULT_BROADCAST_ADDRESS, NO_SEQUENCE
from pytuyastub.codec import FrameCodec
from pytuyastub.models._base import CommandType
from pytuyastub.models.message import TuyaMessage
from pytuyastub.models.payloads import DiscoveryAnnouncement


def build_discovery_message(codec: FrameCodec, ip: str) -> TuyaMessage:
    """The fixed announcement a device broadcasts so clients can find it."""
    identity = codec.identity
    body = DiscoveryAnnouncement(
        ip=ip,
        gw_id=identity.device_id,
        dev_id=identity.device_id,
        version=identity.protocol_version,
    )
    return TuyaMessage(command=CommandType.DP_QUERY, seqno=NO_SEQUENCE, data=body.to_wire())


class _BroadcastProtocol(asyncio.DatagramProtocol):
    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def error_received(self, exc: Exception) -> None:
        self._logger.warning("Discovery broadcast error: %s", exc)


class DiscoveryEmitter:
    """Owns the broadcast socket and the single timer task that uses it.

    ``start()`` is idempotent: a running emitter is left untouched, so
    there is never more than one timer per emitter. ``stop()`` cancels the
    timer and closes the socket.
    """

    def __init__(
        self,
        codec: FrameCodec,
        *,
        ip: str,
        port: int,
        interval: float,
        broadcast_address: str = DEFAULT_BROADCAST_ADDRESS,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive (got {interval})")
        self._frame = codec.encode(build_discovery_message(codec, ip))
        self._port = port
        self._interval = interval
        self._address = broadcast_address
        self._logger = logger or logging.getLogger(__name__)
        self._transport: asyncio.DatagramTransport | None = None
        self._task: asyncio.Task[None] | None = None
        self._lifecycle = asyncio.Lock()
        self._sent = 0

    @property
    def is_running(self) -> bool:
        """Whether the broadcast timer is active."""
        return self._task is not None and not self._task.done()

    @property
    def frame(self) -> bytes:
        """Encoded discovery frame."""
        return self._frame

    @property
    def sent_count(self) -> int:
        """Number of frames handed to the socket so far."""
        return self._sent

    async def start(self) -> None:
        """Open the broadcast socket and start the timer."""
        async with self._lifecycle:
            if self.is_running:
                self._logger.debug("Discovery broadcast already running")
                return
            loop = asyncio.get_running_loop()
            transport, _protocol = await loop.create_datagram_endpoint(
                lambda: _BroadcastProtocol(self._logger),
                local_addr=("0.0.0.0", 0),
                allow_broadcast=True,
            )
            self._transport = transport
            self._task = loop.create_task(self._run(), name="pytuyastub-discovery")
            self._logger.info(
                "Broadcasting discovery to %s:%d every %.1fs",
                self._address,
                self._port,
                self._interval,
            )

    async def stop(self) -> None:
        """Cancel the timer and close the socket; no-op when stopped."""
        async with self._lifecycle:
            task = self._task
            transport = self._transport
            self._task = None
            self._transport = None
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if transport is not None:
                transport.close()
                self._logger.info("Discovery broadcast stopped")

    async def _run(self) -> None:
        while True:
            self._send()
            await asyncio.sleep(self._interval)

    def _send(self) -> None:
        transport = self._transport
        if transport is None or transport.is_closing():
            return
        try:
            transport.sendto(self._frame, (self._address, self._port))
        except OSError as exc:
            self._logger.warning("Discovery broadcast to %s:%d failed: %s", self._address, self._port, exc)
            return
        self._sent += 1
        self._logger.debug("Sent discovery broadcast #%d", self._sent)
