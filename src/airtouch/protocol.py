"""Frame encoding and decoding for the AirTouch touchpad protocol.

Frame layout::

    HEADER(2) ADDR(2) MSGID MSGTYPE LEN_HI LEN_LO PAYLOAD... CRC_HI CRC_LO

The CRC covers ADDR through the end of PAYLOAD.  Multi-byte fields are
big-endian.

Example:
    >>> from airtouch.protocol import encode_frame, decode_frame, MSGTYPE_AC_STAT
    >>> raw = encode_frame(MSGTYPE_AC_STAT, b"\\x01", msg_id=1)
    >>> raw[:9].hex(' ')
    '55 55 80 b0 01 2d 00 01 01'
    >>> decode_frame(raw).msg_type == MSGTYPE_AC_STAT
    True
"""

import logging
import random
import struct
from dataclasses import dataclass

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

HEADER = b"\x55\x55"
# Host-to-controller address; the controller swaps the two bytes in replies.
ADDRESS = b"\x80\xb0"
REPLY_ADDRESS = b"\xb0\x80"

MSGTYPE_GRP_CTRL = 0x2A
MSGTYPE_GRP_STAT = 0x2B
MSGTYPE_AC_CTRL = 0x2C
MSGTYPE_AC_STAT = 0x2D

# HEADER + ADDR + MSGID + MSGTYPE + LEN
HEADER_LEN = 8
CRC_LEN = 2
MAX_PAYLOAD_LEN = 0xFFFF

# The controller ignores status queries with an empty payload.
STATUS_QUERY_PAYLOAD = b"\x01"


@dataclass
class Frame:
    """Decoded protocol frame."""

    msg_id: int
    msg_type: int
    payload: bytes


# -- CRC-16/MODBUS -----------------------------------------------------------


def crc16_modbus(data: bytes) -> int:
    """Compute CRC-16/MODBUS over a byte sequence.

    Reflected polynomial 0xA001, initial value 0xFFFF, no final XOR.

    Example:
        >>> hex(crc16_modbus(b"123456789"))
        '0x4b37'
    """
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


# -- Encoding ----------------------------------------------------------------


def new_msg_id() -> int:
    """Return a random message id in the range 1-255."""
    return random.randint(1, 255)


def encode_frame(
    msg_type: int,
    payload: bytes,
    address: bytes = ADDRESS,
    msg_id: int | None = None,
) -> bytes:
    """Build a complete protocol frame.

    Args:
        msg_type: Message type byte (e.g. ``MSGTYPE_AC_CTRL``).
        payload: Payload bytes, at most 65535 of them.
        address: Two address bytes; replies use ``REPLY_ADDRESS``.
        msg_id: Message id; a fresh random id is used when omitted.

    Raises:
        ValueError: If the payload does not fit the 16-bit length field.
    """
    if len(payload) > MAX_PAYLOAD_LEN:
        raise ValueError(
            "payload too long: {} bytes, maximum is {}".format(
                len(payload), MAX_PAYLOAD_LEN
            )
        )
    if msg_id is None:
        msg_id = new_msg_id()
    body = (
        address
        + bytes([msg_id & 0xFF, msg_type & 0xFF])
        + struct.pack(">H", len(payload))
        + payload
    )
    return HEADER + body + struct.pack(">H", crc16_modbus(body))


# -- Decoding ----------------------------------------------------------------


def frame_length(header: bytes) -> int:
    """Return the total frame length declared by an 8-byte header."""
    (payload_len,) = struct.unpack_from(">H", header, 6)
    return HEADER_LEN + payload_len + CRC_LEN


def decode_frame(data: bytes) -> Frame:
    """Parse one complete frame.

    A wrong magic header or address byte is logged and otherwise
    ignored; the declared length is trusted either way.

    Raises:
        ValueError: If the frame is short, its length disagrees with the
            LEN field, or the CRC does not match.
    """
    if len(data) < HEADER_LEN + CRC_LEN:
        raise ValueError(
            "frame too short: {} bytes, minimum is {}".format(
                len(data), HEADER_LEN + CRC_LEN
            )
        )

    if data[0:2] != HEADER or data[3] != ADDRESS[0]:
        log.warning("invalid header %s", data[:HEADER_LEN].hex())

    expected = frame_length(data)
    if len(data) != expected:
        raise ValueError(
            "length mismatch: LEN field says {} payload bytes, "
            "but frame is {} bytes (expected {})".format(
                expected - HEADER_LEN - CRC_LEN, len(data), expected
            )
        )

    msg_id = data[4]
    msg_type = data[5]
    payload = bytes(data[HEADER_LEN:-CRC_LEN])
    (crc_received,) = struct.unpack_from(">H", data, len(data) - CRC_LEN)
    crc_computed = crc16_modbus(data[2:-CRC_LEN])

    if crc_received != crc_computed:
        raise ValueError(
            "CRC mismatch: received 0x{:04X}, computed 0x{:04X}".format(
                crc_received, crc_computed
            )
        )

    return Frame(msg_id, msg_type, payload)


class FrameReader:
    """Accumulates TCP stream data into complete frames.

    Bytes are appended as they arrive; a frame is parsed only once its
    header, declared payload and CRC trailer are all buffered.

    With ``resync=False`` a frame that fails its CRC is dropped and
    parsing resumes right after it, exactly where its LEN field said it
    ends.  With ``resync=True`` the reader instead discards bytes up to
    the next magic header, both after a bad frame and whenever the buffer
    does not start with one.

    Example:
        >>> reader = FrameReader()
        >>> reader.feed(raw[:5])
        []
        >>> [f.msg_type for f in reader.feed(raw[5:])]
        [45]
    """

    def __init__(self, resync: bool = False):
        self._buffer = bytearray()
        self._resync = resync

    def __len__(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        """Drop any partially buffered frame."""
        self._buffer.clear()

    def feed(self, data: bytes) -> list[Frame]:
        """Append *data* and return the frames it completed."""
        self._buffer.extend(data)
        frames = []
        while True:
            if self._resync and not self._seek_header():
                break
            if len(self._buffer) < HEADER_LEN:
                break
            total = frame_length(self._buffer)
            if len(self._buffer) < total:
                break

            raw = bytes(self._buffer[:total])
            try:
                frame = decode_frame(raw)
            except ValueError as exc:
                log.debug("dropping frame: %s", exc)
                if self._resync:
                    del self._buffer[:1]
                else:
                    del self._buffer[:total]
                continue

            del self._buffer[:total]
            log.debug(
                "received message %d type 0x%02X: %s",
                frame.msg_id, frame.msg_type, frame.payload.hex(),
            )
            frames.append(frame)
        return frames

    def _seek_header(self) -> bool:
        """Discard bytes before the next magic header.

        Returns False when no complete header start is buffered yet.
        """
        idx = self._buffer.find(HEADER)
        if idx < 0:
            # Keep a trailing first magic byte; its partner may follow.
            keep = 1 if self._buffer[-1:] == HEADER[:1] else 0
            dropped = len(self._buffer) - keep
            if dropped:
                log.debug("discarding %d bytes while seeking header", dropped)
                del self._buffer[:dropped]
            return False
        if idx:
            log.debug("discarding %d bytes while seeking header", idx)
            del self._buffer[:idx]
        return True
