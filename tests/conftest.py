"""Shared helpers and test doubles for airtouch tests."""

import asyncio
import socket

from airtouch.protocol import (
    MSGTYPE_AC_STAT,
    MSGTYPE_GRP_STAT,
    REPLY_ADDRESS,
    Frame,
    FrameReader,
    encode_frame,
)
from airtouch.status import ACStatus, GroupStatus, encode_ac_status, encode_group_status


def make_ac(unit: int, temperature: float = 24.5, target: float = 22.0) -> ACStatus:
    """Build an ACStatus with plausible defaults."""
    return ACStatus(
        unit_number=unit, power_state=1, mode=4, fan_speed=2,
        spill=False, timer=False, target=target,
        temperature=temperature, error_code=0,
    )


def make_group(group: int, temperature: float = 23.0, damper: int = 50) -> GroupStatus:
    """Build a GroupStatus with plausible defaults."""
    return GroupStatus(
        group_number=group, power_state=1, control_type=0,
        damper_position=damper, battery_low=False, turbo=False,
        target=22.0, has_sensor=True, temperature=temperature, spill=False,
    )


def make_ac_reply(units: list[ACStatus]) -> bytes:
    """Build a controller AC_STAT frame."""
    return encode_frame(MSGTYPE_AC_STAT, encode_ac_status(units), address=REPLY_ADDRESS)


def make_group_reply(groups: list[GroupStatus]) -> bytes:
    """Build a controller GRP_STAT frame."""
    return encode_frame(MSGTYPE_GRP_STAT, encode_group_status(groups), address=REPLY_ADDRESS)


def find_free_port() -> int:
    """Find an available TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true, failing after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %.1fs" % timeout)
        await asyncio.sleep(0.01)


class FakeController:
    """Localhost TCP server standing in for the touchpad controller.

    Records every frame it receives and answers status queries with
    the canned replies, if set.

    Example:
        >>> async with FakeController(ac_reply=make_ac_reply([make_ac(0)])) as ctl:
        ...     await conn.connect("127.0.0.1")
    """

    def __init__(self, ac_reply: bytes | None = None, group_reply: bytes | None = None):
        self.ac_reply = ac_reply
        self.group_reply = group_reply
        self.received: list[Frame] = []
        self.connections = 0
        self.port = 0
        self._server = None
        self._writers: list[asyncio.StreamWriter] = []
        self._handlers: set[asyncio.Task] = set()

    async def __aenter__(self) -> "FakeController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self, port: int = 0) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        """Drop every client, let the handlers finish and stop listening."""
        self.drop_clients()
        self._server.close()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)
        await self._server.wait_closed()

    def drop_clients(self) -> None:
        """Abort every client connection."""
        for writer in self._writers:
            writer.transport.abort()
        self._writers.clear()

    def send(self, data: bytes) -> None:
        """Push raw bytes to every connected client."""
        for writer in self._writers:
            writer.write(data)

    def of_type(self, msg_type: int) -> list[Frame]:
        """Return received frames of one message type."""
        return [f for f in self.received if f.msg_type == msg_type]

    async def _handle(self, reader, writer) -> None:
        task = asyncio.current_task()
        self._handlers.add(task)
        self.connections += 1
        self._writers.append(writer)
        frames = FrameReader()
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                for frame in frames.feed(data):
                    self.received.append(frame)
                    reply = None
                    if frame.msg_type == MSGTYPE_AC_STAT:
                        reply = self.ac_reply
                    elif frame.msg_type == MSGTYPE_GRP_STAT:
                        reply = self.group_reply
                    if reply is not None:
                        writer.write(reply)
        except ConnectionError:
            pass
        finally:
            if writer in self._writers:
                self._writers.remove(writer)
            self._handlers.discard(task)
            writer.close()
