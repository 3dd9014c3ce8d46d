from __future__ import annotations

import asyncio

import pytest

from pytuyastub._discovery import DiscoveryEmitter, build_discovery_message
from pytuyastub.codec import FrameCodec
from pytuyastub.config import DeviceIdentity
from pytuyastub.models import CommandType

DEVICE_ID = "30315056dc4f2257dc8e"


class _Receiver(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.queue.put_nowait(data)


def _codec() -> FrameCodec:
    return FrameCodec(DeviceIdentity(device_id=DEVICE_ID, local_key="1426ee407d5d7e2b"))


async def _bind_receiver() -> tuple[asyncio.DatagramTransport, _Receiver, int]:
    loop = asyncio.get_running_loop()
    transport, receiver = await loop.create_datagram_endpoint(_Receiver, local_addr=("127.0.0.1", 0))
    port = transport.get_extra_info("sockname")[1]
    return transport, receiver, port


def test_discovery_message_shape() -> None:
    message = build_discovery_message(_codec(), "192.168.1.20")

    assert message.command == CommandType.DP_QUERY
    assert message.seqno == 0
    assert message.retcode is None
    assert message.data == {"ip": "192.168.1.20", "gwId": DEVICE_ID, "devId": DEVICE_ID, "version": "3.1"}


def test_discovery_frame_is_not_encrypted() -> None:
    codec = _codec()
    emitter = DiscoveryEmitter(codec, ip="127.0.0.1", port=6666, interval=5)

    assert DEVICE_ID.encode() in emitter.frame
    assert codec.decode_frame(emitter.frame) == build_discovery_message(codec, "127.0.0.1")


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError, match="interval"):
        DiscoveryEmitter(_codec(), ip="127.0.0.1", port=6666, interval=0)


@pytest.mark.asyncio
async def test_emitter_broadcasts_periodically() -> None:
    transport, receiver, port = await _bind_receiver()
    emitter = DiscoveryEmitter(_codec(), ip="127.0.0.1", port=port, interval=0.05, broadcast_address="127.0.0.1")
    try:
        await emitter.start()
        first = await asyncio.wait_for(receiver.queue.get(), 2.0)
        second = await asyncio.wait_for(receiver.queue.get(), 2.0)
    finally:
        await emitter.stop()
        transport.close()

    assert first == emitter.frame
    assert second == emitter.frame
    assert emitter.sent_count >= 2


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    transport, _receiver, port = await _bind_receiver()
    emitter = DiscoveryEmitter(_codec(), ip="127.0.0.1", port=port, interval=0.05, broadcast_address="127.0.0.1")
    try:
        await emitter.start()
        task = emitter._task  # noqa: SLF001
        await emitter.start()
        await asyncio.gather(emitter.start(), emitter.start())

        assert emitter._task is task  # noqa: SLF001
        assert emitter.is_running
    finally:
        await emitter.stop()
        transport.close()


@pytest.mark.asyncio
async def test_stop_cancels_timer_and_allows_restart() -> None:
    transport, receiver, port = await _bind_receiver()
    emitter = DiscoveryEmitter(_codec(), ip="127.0.0.1", port=port, interval=0.05, broadcast_address="127.0.0.1")
    try:
        await emitter.start()
        await asyncio.wait_for(receiver.queue.get(), 2.0)
        await emitter.stop()

        assert not emitter.is_running
        sent = emitter.sent_count
        await asyncio.sleep(0.2)
        assert emitter.sent_count == sent

        await emitter.start()
        assert emitter.is_running
        await asyncio.wait_for(receiver.queue.get(), 2.0)
    finally:
        await emitter.stop()
        await emitter.stop()
        transport.close()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop() -> None:
    emitter = DiscoveryEmitter(_codec(), ip="127.0.0.1", port=6666, interval=1)
    await emitter.stop()
    assert not emitter.is_running
