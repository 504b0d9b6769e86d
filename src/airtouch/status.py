"""AC and group status records.

Status responses carry a run of fixed-size records: 8 bytes per AC unit
and 6 bytes per group.  Trailing bytes that do not fill a whole record
are ignored.

Temperatures arrive as an 11-bit raw value spread over two bytes and
convert as ``(raw - 500) / 10`` degrees Celsius.

Example:
    >>> from airtouch.status import decode_ac_status
    >>> units = decode_ac_status(bytes.fromhex("41 12 56 00 7d 00 00 00"))
    >>> units[0].unit_number, units[0].target, units[0].temperature
    (1, 22.0, 50.0)
"""

from dataclasses import dataclass

AC_RECORD_LEN = 8
GROUP_RECORD_LEN = 6


@dataclass
class ACStatus:
    """State of one AC unit."""

    unit_number: int
    power_state: int
    mode: int
    fan_speed: int
    spill: bool
    timer: bool
    target: float
    temperature: float
    error_code: int


@dataclass
class GroupStatus:
    """State of one group (zone)."""

    group_number: int
    power_state: int
    control_type: int
    damper_position: int
    battery_low: bool
    turbo: bool
    target: float
    has_sensor: bool
    temperature: float
    spill: bool


def raw_to_celsius(raw: int) -> float:
    """Convert an 11-bit raw temperature to degrees Celsius.

    Example:
        >>> raw_to_celsius(0), raw_to_celsius(500), raw_to_celsius(1000)
        (-50.0, 0.0, 50.0)
    """
    return (raw - 500) / 10


def celsius_to_raw(celsius: float) -> int:
    """Inverse of raw_to_celsius, clamped to the 11-bit field."""
    return max(0, min(0x7FF, round(celsius * 10) + 500))


def fmt_temp(t: float | None) -> str:
    """Format a temperature for log output.

    Example:
        >>> fmt_temp(23.5)
        '23.5'
        >>> fmt_temp(None)
        '--.-'
    """
    return f"{t:.1f}" if t is not None else "--.-"


def _temperature(hi: int, lo: int) -> float:
    """Decode the 11-bit temperature split over *hi* and the top bits of *lo*."""
    return raw_to_celsius((hi << 3) | ((lo & 0b11100000) >> 5))


def _records(data: bytes, size: int):
    """Yield whole *size*-byte records; a short tail is dropped."""
    for i in range(len(data) // size):
        yield data[i * size : (i + 1) * size]


# -- Decoding ----------------------------------------------------------------


def decode_ac_status(data: bytes) -> list[ACStatus]:
    """Split an AC_STAT payload into ACStatus records."""
    units = []
    for unit in _records(data, AC_RECORD_LEN):
        units.append(ACStatus(
            unit_number=unit[0] & 0b00111111,
            power_state=(unit[0] & 0b11000000) >> 6,
            mode=(unit[1] & 0b11110000) >> 4,
            fan_speed=unit[1] & 0b00001111,
            spill=bool(unit[2] & 0b10000000),
            timer=bool(unit[2] & 0b01000000),
            target=float(unit[2] & 0b00111111),
            temperature=_temperature(unit[4], unit[5]),
            error_code=(unit[6] << 8) | unit[7],
        ))
    return units


def decode_group_status(data: bytes) -> list[GroupStatus]:
    """Split a GRP_STAT payload into GroupStatus records."""
    groups = []
    for group in _records(data, GROUP_RECORD_LEN):
        groups.append(GroupStatus(
            group_number=group[0] & 0b00111111,
            power_state=(group[0] & 0b11000000) >> 6,
            control_type=(group[1] & 0b10000000) >> 7,
            damper_position=group[1] & 0b01111111,
            battery_low=bool(group[2] & 0b10000000),
            turbo=bool(group[2] & 0b01000000),
            target=float(group[2] & 0b00111111),
            has_sensor=bool(group[3] & 0b10000000),
            temperature=_temperature(group[4], group[5]),
            spill=bool(group[5] & 0b00010000),
        ))
    return groups


# -- Encoding ----------------------------------------------------------------
#
# Controller side of the same layouts, for the simulator and tests.


def _temperature_bytes(celsius: float) -> tuple[int, int]:
    """Inverse of _temperature: the (hi, lo) byte pair for *celsius*."""
    raw = celsius_to_raw(celsius)
    return raw >> 3, (raw & 0b111) << 5


def encode_ac_status(units: list[ACStatus]) -> bytes:
    """Pack ACStatus records into an AC_STAT payload."""
    out = bytearray()
    for u in units:
        hi, lo = _temperature_bytes(u.temperature)
        out += bytes([
            (u.unit_number & 0x3F) | ((u.power_state & 0x03) << 6),
            (u.fan_speed & 0x0F) | ((u.mode & 0x0F) << 4),
            (int(u.target) & 0x3F) | (u.timer << 6) | (u.spill << 7),
            0,
            hi,
            lo,
            (u.error_code >> 8) & 0xFF,
            u.error_code & 0xFF,
        ])
    return bytes(out)


def encode_group_status(groups: list[GroupStatus]) -> bytes:
    """Pack GroupStatus records into a GRP_STAT payload."""
    out = bytearray()
    for g in groups:
        hi, lo = _temperature_bytes(g.temperature)
        out += bytes([
            (g.group_number & 0x3F) | ((g.power_state & 0x03) << 6),
            (g.damper_position & 0x7F) | ((g.control_type & 0x01) << 7),
            (int(g.target) & 0x3F) | (g.turbo << 6) | (g.battery_low << 7),
            g.has_sensor << 7,
            hi,
            lo | (g.spill << 4),
        ])
    return bytes(out)
