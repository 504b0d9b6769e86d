"""TCP session with an AirTouch touchpad controller.

The connection owns the socket.  It writes control and status-query
frames, reads the byte stream into frames, decodes AC and group status,
and hands the records to registered listeners.  Transport errors close
the socket and schedule a reconnect.

Example:
    >>> conn = AirtouchConnection()
    >>> conn.add_ac_status_listener(lambda units: print(units))
    >>> await conn.connect("192.168.1.20")
    >>> conn.ac_set_heating_cooling_state(0, 2)   # on, cooling
    >>> conn.zone_set_damper_position(3, 40)
"""

import asyncio
import enum
import logging
from typing import Callable

from airtouch.commands import (
    encode_ac_control,
    encode_group_control,
    fan_speed_control,
    heating_cooling_control,
    target_temperature_control,
    zone_active_control,
    zone_control_type_control,
    zone_damper_control,
    zone_temperature_control,
)
from airtouch.config import (
    CONNECT_TIMEOUT_MS,
    DEBOUNCE_MS,
    INITIAL_STAGGER_MS,
    POLL_THROTTLE_MS,
    PORT,
    RECONNECT_DELAY_MS,
)
from airtouch.coordinator import RequestCoordinator, StatusCallback
from airtouch.protocol import (
    MSGTYPE_AC_CTRL,
    MSGTYPE_AC_STAT,
    MSGTYPE_GRP_CTRL,
    MSGTYPE_GRP_STAT,
    STATUS_QUERY_PAYLOAD,
    Frame,
    FrameReader,
    encode_frame,
)
from airtouch.status import decode_ac_status, decode_group_status

log = logging.getLogger(__name__)

_READ_SIZE = 4096


class ConnectionState(enum.Enum):
    """Lifecycle of an AirtouchConnection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"


class AirtouchConnection:
    """Client side of one controller connection.

    Write operations never block and never report failure; a command
    issued while disconnected is logged and dropped.

    Args:
        port: Controller TCP port.
        auto_reconnect: Reconnect by itself once the backoff expires.
            When False the connection only notifies reconnect listeners,
            which are expected to call ``connect`` again.
        resync: Passed to ``FrameReader``; scan for the next header
            after a corrupt frame instead of resuming at its declared end.
        debounce_ms, throttle_ms: Passed to ``RequestCoordinator``.
        initial_stagger_ms: Delay of the group status query that
            follows the AC status query on connect.
        reconnect_delay_ms: Backoff after a transport error.
        connect_timeout_ms: Limit on opening the TCP connection.
    """

    def __init__(
        self,
        port: int = PORT,
        *,
        auto_reconnect: bool = True,
        resync: bool = False,
        debounce_ms: int = DEBOUNCE_MS,
        throttle_ms: int = POLL_THROTTLE_MS,
        initial_stagger_ms: int = INITIAL_STAGGER_MS,
        reconnect_delay_ms: int = RECONNECT_DELAY_MS,
        connect_timeout_ms: int = CONNECT_TIMEOUT_MS,
    ):
        self.host: str | None = None
        self.port = port
        self.auto_reconnect = auto_reconnect
        self.state = ConnectionState.DISCONNECTED

        self._initial_stagger_s = initial_stagger_ms / 1000.0
        self._reconnect_delay_s = reconnect_delay_ms / 1000.0
        self._connect_timeout_s = connect_timeout_ms / 1000.0

        self._writer: asyncio.StreamWriter | None = None
        self._frames = FrameReader(resync=resync)
        self._read_task: asyncio.Task | None = None
        self._connect_task: asyncio.Task | None = None
        self._startup: list[asyncio.Handle] = []
        self._reconnect: asyncio.TimerHandle | None = None

        self._coordinator = RequestCoordinator(
            self.send_ac_status_query,
            self.send_group_status_query,
            debounce_ms=debounce_ms,
            throttle_ms=throttle_ms,
        )

        self._ac_listeners: list[Callable] = []
        self._group_listeners: list[Callable] = []
        self._reconnect_listeners: list[Callable] = []

    @property
    def connected(self) -> bool:
        """True while the socket is open and usable."""
        return self.state is ConnectionState.CONNECTED

    @property
    def coordinator(self) -> RequestCoordinator:
        """The status request coordinator owned by this connection."""
        return self._coordinator

    # -- Listeners -------------------------------------------------------------

    def add_ac_status_listener(self, callback: Callable[[list], None]) -> Callable[[], None]:
        """Call *callback* with the ACStatus list of every AC status response.

        Returns a function that removes the listener.
        """
        return self._subscribe(self._ac_listeners, callback)

    def add_group_status_listener(self, callback: Callable[[list], None]) -> Callable[[], None]:
        """Call *callback* with the GroupStatus list of every group status response."""
        return self._subscribe(self._group_listeners, callback)

    def add_reconnect_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call *callback* when a reconnect is due after a transport error."""
        return self._subscribe(self._reconnect_listeners, callback)

    @staticmethod
    def _subscribe(listeners: list, callback: Callable) -> Callable[[], None]:
        """Append *callback* to *listeners*; return its remover."""
        listeners.append(callback)

        def remove() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return remove

    def _emit(self, listeners: list, *args) -> None:
        """Call every listener with *args*, logging any that raise."""
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception:
                log.exception("listener %r failed", listener)

    # -- Connection lifecycle --------------------------------------------------

    async def connect(self, host: str) -> bool:
        """Open the TCP connection to *host*.

        Returns True once connected.  A failed attempt is handled like any
        other transport error and returns False.  Calling this while a
        connection is open or opening does nothing.
        """
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            log.debug("connect(%s) ignored while %s", host, self.state.value)
            return self.state is ConnectionState.CONNECTED

        self.host = host
        self._cancel_reconnect()
        self.state = ConnectionState.CONNECTING
        log.info("connecting to %s:%d", host, self.port)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, self.port),
                timeout=self._connect_timeout_s,
            )
        except (asyncio.TimeoutError, OSError) as exc:
            if self.state is ConnectionState.CONNECTING:
                self._transport_error(exc)
            return False

        if self.state is not ConnectionState.CONNECTING:
            # closed while the connect was in flight
            writer.transport.abort()
            return False

        self._writer = writer
        self._frames.clear()
        self.state = ConnectionState.CONNECTED
        log.info("connected to AirTouch at %s:%d", host, self.port)

        loop = asyncio.get_running_loop()
        # Group status follows AC status after the stagger.
        self._startup = [
            loop.call_soon(self.send_ac_status_query),
            loop.call_later(self._initial_stagger_s, self.send_group_status_query),
        ]
        self._read_task = loop.create_task(self._read_loop(reader))
        return True

    async def close(self) -> None:
        """Close the connection for good; no reconnect follows."""
        self._cancel_reconnect()
        self._coordinator.cancel()
        read_task = self._read_task
        self._drop_connection()
        self.state = ConnectionState.DISCONNECTED
        if read_task is not None and read_task is not asyncio.current_task():
            try:
                await read_task
            except asyncio.CancelledError:
                pass
        log.info("disconnected from AirTouch")

    def _drop_connection(self) -> None:
        """Force-close the socket and forget any partial frame."""
        for handle in self._startup:
            handle.cancel()
        self._startup = []

        task, self._read_task = self._read_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        writer, self._writer = self._writer, None
        if writer is not None:
            writer.transport.abort()
        self._frames.clear()

    def _transport_error(self, exc: BaseException) -> None:
        """Drop the connection after *exc* and schedule one reconnect.

        Further errors while a reconnect is pending do not reschedule it.
        """
        log.error("connection error: %s", str(exc) or type(exc).__name__)
        self._drop_connection()
        self.state = ConnectionState.RECONNECT_PENDING
        if self._reconnect is None:
            loop = asyncio.get_running_loop()
            self._reconnect = loop.call_later(self._reconnect_delay_s, self._reconnect_due)
            log.info("reconnect in %.1fs", self._reconnect_delay_s)

    def _reconnect_due(self) -> None:
        """Reconnect timer callback: notify listeners, then maybe connect."""
        self._reconnect = None
        if self.state is not ConnectionState.RECONNECT_PENDING:
            log.debug("reconnect skipped, connection is %s", self.state.value)
            return
        log.info("attempting reconnect")
        self._emit(self._reconnect_listeners)
        if self.auto_reconnect and self.state is ConnectionState.RECONNECT_PENDING:
            self._connect_task = asyncio.get_running_loop().create_task(
                self.connect(self.host)
            )

    def _cancel_reconnect(self) -> None:
        """Cancel a scheduled reconnect, if any."""
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    # -- Receiving -------------------------------------------------------------

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Feed socket data to the frame reader until EOF or error.

        EOF counts as a transport error.  The loop ends quietly when it
        is no longer the connection's current read task.
        """
        try:
            while True:
                data = await reader.read(_READ_SIZE)
                if not data:
                    raise ConnectionResetError("connection closed by controller")
                for frame in self._frames.feed(data):
                    self._dispatch(frame)
        except OSError as exc:
            if self._read_task is asyncio.current_task():
                self._transport_error(exc)

    def _dispatch(self, frame: Frame) -> None:
        """Decode a status frame, notify listeners and drain waiting callbacks."""
        if frame.msg_type == MSGTYPE_AC_STAT:
            units = decode_ac_status(frame.payload)
            log.info("AC status: %d unit(s)", len(units))
            self._emit(self._ac_listeners, units)
            self._coordinator.ac_status_received(units)
        elif frame.msg_type == MSGTYPE_GRP_STAT:
            groups = decode_group_status(frame.payload)
            log.info("group status: %d group(s)", len(groups))
            self._emit(self._group_listeners, groups)
            self._coordinator.group_status_received(groups)
        else:
            log.debug("ignoring message type 0x%02X", frame.msg_type)

    # -- Sending ---------------------------------------------------------------

    def _send(self, msg_type: int, payload: bytes) -> None:
        """Frame *payload* and write it, or log and drop it when disconnected."""
        writer = self._writer
        if writer is None or writer.is_closing():
            log.warning(
                "not connected, dropping message type 0x%02X", msg_type
            )
            return
        frame = encode_frame(msg_type, payload)
        log.debug(
            "sending message %d type 0x%02X: %s", frame[4], msg_type, payload.hex()
        )
        writer.write(frame)

    def send_ac_status_query(self) -> None:
        """Ask the controller for the status of every AC unit."""
        self._send(MSGTYPE_AC_STAT, STATUS_QUERY_PAYLOAD)

    def send_group_status_query(self) -> None:
        """Ask the controller for the status of every group."""
        self._send(MSGTYPE_GRP_STAT, STATUS_QUERY_PAYLOAD)

    def ac_set_heating_cooling_state(self, unit_number: int, state: int) -> None:
        """Switch an AC unit off (0), to heat (1), cool (2) or auto (other)."""
        ctrl = heating_cooling_control(unit_number, state)
        log.info("setting AC heating/cooling state: %s", ctrl)
        self._send(MSGTYPE_AC_CTRL, encode_ac_control(ctrl))

    def ac_set_target_temperature(self, unit_number: int, celsius: int) -> None:
        """Set an AC unit's setpoint in whole degrees Celsius."""
        ctrl = target_temperature_control(unit_number, celsius)
        log.info("setting AC target temperature: %s", ctrl)
        self._send(MSGTYPE_AC_CTRL, encode_ac_control(ctrl))

    def ac_set_fan_speed(self, unit_number: int, speed: int) -> None:
        """Set an AC unit's fan speed (an ``ACFanSpeed`` value)."""
        ctrl = fan_speed_control(unit_number, speed)
        log.info("setting AC fan speed: %s", ctrl)
        self._send(MSGTYPE_AC_CTRL, encode_ac_control(ctrl))

    def zone_set_active(self, group_number: int, active: bool) -> None:
        """Switch a zone on or off."""
        ctrl = zone_active_control(group_number, active)
        log.info("setting zone state: %s", ctrl)
        self._send(MSGTYPE_GRP_CTRL, encode_group_control(ctrl))

    def zone_set_damper_position(self, group_number: int, percent: int) -> None:
        """Set a zone's damper opening in percent."""
        ctrl = zone_damper_control(group_number, percent)
        log.info("setting damper position: %s", ctrl)
        self._send(MSGTYPE_GRP_CTRL, encode_group_control(ctrl))

    def zone_set_control_type(self, group_number: int, control: int) -> None:
        """Select damper (0) or temperature (1) control for a zone."""
        ctrl = zone_control_type_control(group_number, control)
        log.info("setting control type: %s", ctrl)
        self._send(MSGTYPE_GRP_CTRL, encode_group_control(ctrl))

    def zone_set_target_temperature(self, group_number: int, celsius: int) -> None:
        """Set a zone's target temperature in whole degrees Celsius."""
        ctrl = zone_temperature_control(group_number, celsius)
        log.info("setting zone target temperature: %s", ctrl)
        self._send(MSGTYPE_GRP_CTRL, encode_group_control(ctrl))

    # -- Status requests -------------------------------------------------------

    def request_status(self) -> bool:
        """Poll AC and group status, at most once per throttle window."""
        return self._coordinator.request_status()

    def request_ac_status(self, callback: StatusCallback | None) -> None:
        """Call *callback* with the AC records of the next AC status.

        Requests within the debounce window share one query.
        """
        self._coordinator.request_ac_status(callback)

    def request_group_status(self, callback: StatusCallback | None) -> None:
        """Call *callback* with the group records of the next group status."""
        self._coordinator.request_group_status(callback)
