"""Tests for airtouch.protocol."""

import logging
import struct

import pytest

from airtouch.protocol import (
    ADDRESS,
    CRC_LEN,
    HEADER,
    HEADER_LEN,
    MSGTYPE_AC_STAT,
    MSGTYPE_GRP_CTRL,
    MSGTYPE_GRP_STAT,
    REPLY_ADDRESS,
    FrameReader,
    crc16_modbus,
    decode_frame,
    encode_frame,
)


# -- CRC-16/MODBUS -----------------------------------------------------------


class TestCrc16Modbus:
    """CRC-16/MODBUS computation tests."""

    def test_check_value(self):
        """Standard check string gives the published MODBUS check value."""
        assert crc16_modbus(b"123456789") == 0x4B37

    def test_empty_input(self):
        """CRC of empty data is the initial value 0xFFFF."""
        assert crc16_modbus(b"") == 0xFFFF

    def test_single_byte(self):
        """A single zero byte changes the register."""
        result = crc16_modbus(b"\x00")
        assert result != 0xFFFF
        assert 0 <= result <= 0xFFFF

    def test_accepts_list(self):
        """Any iterable of ints works, not only bytes."""
        assert crc16_modbus([0x31, 0x32]) == crc16_modbus(b"12")


# -- encode_frame ------------------------------------------------------------


class TestEncodeFrame:
    """Tests for the frame encoder."""

    def test_layout(self):
        """Header, address, id, type, length and CRC sit at fixed offsets."""
        frame = encode_frame(MSGTYPE_AC_STAT, b"\x01", msg_id=0x42)
        assert frame[0:2] == HEADER
        assert frame[2:4] == ADDRESS
        assert frame[4] == 0x42
        assert frame[5] == MSGTYPE_AC_STAT
        assert frame[6:8] == b"\x00\x01"
        assert frame[8:9] == b"\x01"
        assert len(frame) == HEADER_LEN + 1 + CRC_LEN

    def test_crc_is_big_endian_over_address_to_payload(self):
        """CRC covers address through payload and is sent high byte first."""
        frame = encode_frame(MSGTYPE_GRP_CTRL, b"\x03\x63\x28\x00", msg_id=7)
        expected = crc16_modbus(frame[2:-2])
        assert struct.unpack(">H", frame[-2:])[0] == expected

    def test_length_is_big_endian(self):
        """A 300-byte payload has length bytes 01 2C."""
        frame = encode_frame(MSGTYPE_AC_STAT, bytes(300), msg_id=1)
        assert frame[6:8] == b"\x01\x2c"

    def test_random_msg_id_in_range(self):
        """Generated message ids are always 1-255."""
        ids = {encode_frame(MSGTYPE_AC_STAT, b"\x01")[4] for _ in range(500)}
        assert 0 not in ids
        assert min(ids) >= 1
        assert max(ids) <= 255
        assert len(ids) > 1

    def test_reply_address(self):
        """Replies can be built with the controller's address."""
        frame = encode_frame(MSGTYPE_AC_STAT, b"", address=REPLY_ADDRESS)
        assert frame[2:4] == REPLY_ADDRESS

    def test_payload_too_long(self):
        """Payloads beyond the 16-bit length field are rejected."""
        with pytest.raises(ValueError, match="too long"):
            encode_frame(MSGTYPE_AC_STAT, bytes(0x10000))


# -- decode_frame ------------------------------------------------------------


class TestDecodeFrame:
    """Tests for frame decoding and validation."""

    @pytest.mark.parametrize("size", [0, 1, 8, 255, 256, 65535])
    def test_roundtrip(self, size):
        """decode(encode(type, P)) recovers type and payload."""
        payload = bytes(i % 251 for i in range(size))
        frame = decode_frame(encode_frame(MSGTYPE_GRP_STAT, payload, address=REPLY_ADDRESS))
        assert frame.msg_type == MSGTYPE_GRP_STAT
        assert frame.payload == payload

    def test_msg_id(self):
        frame = decode_frame(encode_frame(MSGTYPE_AC_STAT, b"\x01", msg_id=99))
        assert frame.msg_id == 99

    def test_every_checked_byte_flip_rejected(self):
        """Flipping any byte after the magic header fails validation."""
        raw = encode_frame(MSGTYPE_AC_STAT, b"\x10\x20\x30\x40", address=REPLY_ADDRESS)
        for i in range(2, len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0xFF
            with pytest.raises(ValueError):
                decode_frame(bytes(tampered))

    def test_error_bad_crc(self):
        raw = bytearray(encode_frame(MSGTYPE_AC_STAT, b"\x01"))
        raw[-1] ^= 0xFF
        with pytest.raises(ValueError, match="CRC mismatch"):
            decode_frame(bytes(raw))

    def test_error_short_frame(self):
        with pytest.raises(ValueError, match="too short"):
            decode_frame(b"\x55\x55\xb0\x80")

    def test_error_length_mismatch(self):
        raw = encode_frame(MSGTYPE_AC_STAT, b"\x01") + b"\x00"
        with pytest.raises(ValueError, match="length mismatch"):
            decode_frame(raw)

    def test_bad_magic_logged_not_rejected(self, caplog):
        """A wrong magic header is only logged; the frame still decodes."""
        raw = bytearray(encode_frame(MSGTYPE_AC_STAT, b"\x01", address=REPLY_ADDRESS))
        raw[0] = 0x00
        with caplog.at_level(logging.WARNING, logger="airtouch.protocol"):
            frame = decode_frame(bytes(raw))
        assert frame.payload == b"\x01"
        assert "invalid header" in caplog.text

    def test_host_address_logged(self, caplog):
        """A frame not addressed to the host is logged but decoded."""
        raw = encode_frame(MSGTYPE_AC_STAT, b"\x01", address=ADDRESS)
        with caplog.at_level(logging.WARNING, logger="airtouch.protocol"):
            frame = decode_frame(raw)
        assert frame.msg_type == MSGTYPE_AC_STAT
        assert "invalid header" in caplog.text

    def test_reply_address_not_logged(self, caplog):
        raw = encode_frame(MSGTYPE_AC_STAT, b"\x01", address=REPLY_ADDRESS)
        with caplog.at_level(logging.WARNING, logger="airtouch.protocol"):
            decode_frame(raw)
        assert "invalid header" not in caplog.text


# -- FrameReader -------------------------------------------------------------


def _reply(msg_type, payload):
    return encode_frame(msg_type, payload, address=REPLY_ADDRESS)


class TestFrameReader:
    """Tests for stream accumulation."""

    def test_partial_then_complete(self):
        raw = _reply(MSGTYPE_AC_STAT, b"\x01\x02\x03")
        reader = FrameReader()
        assert reader.feed(raw[:5]) == []
        assert reader.feed(raw[5:9]) == []
        frames = reader.feed(raw[9:])
        assert len(frames) == 1
        assert frames[0].payload == b"\x01\x02\x03"
        assert len(reader) == 0

    def test_byte_at_a_time(self):
        raw = _reply(MSGTYPE_GRP_STAT, bytes(range(12)))
        reader = FrameReader()
        frames = []
        for b in raw:
            frames += reader.feed(bytes([b]))
        assert [f.payload for f in frames] == [bytes(range(12))]

    def test_two_frames_in_one_chunk(self):
        a = _reply(MSGTYPE_AC_STAT, b"\x01")
        b = _reply(MSGTYPE_GRP_STAT, b"\x02\x03")
        frames = FrameReader().feed(a + b)
        assert [f.msg_type for f in frames] == [MSGTYPE_AC_STAT, MSGTYPE_GRP_STAT]

    def test_frame_plus_partial(self):
        a = _reply(MSGTYPE_AC_STAT, b"\x01")
        b = _reply(MSGTYPE_GRP_STAT, b"\x02\x03")
        reader = FrameReader()
        assert len(reader.feed(a + b[:4])) == 1
        assert len(reader) == 4
        assert len(reader.feed(b[4:])) == 1

    def test_bad_crc_dropped_next_frame_kept(self):
        """A corrupt frame is skipped at its declared length."""
        bad = bytearray(_reply(MSGTYPE_AC_STAT, b"\x01"))
        bad[-1] ^= 0xFF
        good = _reply(MSGTYPE_GRP_STAT, b"\x02")
        frames = FrameReader().feed(bytes(bad) + good)
        assert [f.msg_type for f in frames] == [MSGTYPE_GRP_STAT]

    def test_tampered_frame_never_emitted(self):
        """No single flipped byte after the magic yields a frame."""
        raw = _reply(MSGTYPE_AC_STAT, b"\x10\x20\x30\x40\x50\x60\x70\x01")
        for i in range(2, len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0xFF
            assert FrameReader().feed(bytes(tampered)) == []

    def test_resync_tampered_frame_never_emitted(self):
        """With resync on, no single flipped byte anywhere yields a frame."""
        raw = _reply(MSGTYPE_AC_STAT, b"\x10\x20\x30\x40\x50\x60\x70\x01")
        for i in range(len(raw)):
            tampered = bytearray(raw)
            tampered[i] ^= 0xFF
            assert FrameReader(resync=True).feed(bytes(tampered)) == []

    def test_resync_skips_garbage(self):
        good = _reply(MSGTYPE_GRP_STAT, b"\x02")
        reader = FrameReader(resync=True)
        frames = reader.feed(b"\x00\x13\x55\x37" + good)
        assert [f.payload for f in frames] == [b"\x02"]

    def test_resync_after_truncated_frame(self):
        """A frame cut short is abandoned at the next header."""
        cut = _reply(MSGTYPE_AC_STAT, bytes(16))[:12]
        good = _reply(MSGTYPE_GRP_STAT, b"\x02")
        reader = FrameReader(resync=True)
        frames = reader.feed(cut + good + good)
        assert [f.msg_type for f in frames] == [MSGTYPE_GRP_STAT, MSGTYPE_GRP_STAT]

    def test_resync_keeps_split_magic(self):
        good = _reply(MSGTYPE_GRP_STAT, b"\x02")
        reader = FrameReader(resync=True)
        assert reader.feed(b"\x00\x00" + good[:1]) == []
        assert len(reader) == 1
        assert len(reader.feed(good[1:])) == 1

    def test_clear(self):
        reader = FrameReader()
        reader.feed(b"\x55\x55\xb0")
        reader.clear()
        assert len(reader) == 0
