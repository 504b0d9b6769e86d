"""AC and group control payloads.

Each control message is a fixed 4-byte payload.  Fields left as
``None`` are sent as the field's KEEP value, which tells the controller
to leave that attribute unchanged.  Values are masked to their bit
width; nothing is range-checked.

Example:
    >>> from airtouch.commands import ACControl, ACPower, encode_ac_control
    >>> encode_ac_control(ACControl(unit_number=1, power_state=ACPower.OFF)).hex(' ')
    '81 57 3f 00'
"""

from dataclasses import dataclass
from enum import IntEnum


class ACPower(IntEnum):
    KEEP = 0
    NEXT = 1
    OFF = 2
    ON = 3


class ACMode(IntEnum):
    AUTO = 0
    HEAT = 1
    DRY = 2
    FAN = 3
    COOL = 4
    KEEP = 5


class ACFanSpeed(IntEnum):
    AUTO = 0
    QUIET = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    POWERFUL = 5
    TURBO = 6
    KEEP = 7


class ACTargetType(IntEnum):
    KEEP = 0
    TEMPERATURE = 1
    DECREMENT = 2
    INCREMENT = 3


# Setpoint value sent when the target is left unchanged.
AC_TARGET_KEEP = 0x3F
AC_UNIT_DEFAULT = 0


class GroupPower(IntEnum):
    KEEP = 0
    NEXT = 1
    OFF = 2
    ON = 3
    TURBO = 5


class GroupControlType(IntEnum):
    KEEP = 0
    NEXT = 1
    DAMPER = 2
    TEMPERATURE = 3


class GroupTargetType(IntEnum):
    KEEP = 0
    DECREMENT = 2
    INCREMENT = 3
    DAMPER = 4
    TEMPERATURE = 5


GROUP_NUMBER_DEFAULT = 0


@dataclass
class ACControl:
    """One AC control request; ``None`` means keep."""

    unit_number: int | None = None
    power_state: ACPower | None = None
    mode: ACMode | None = None
    fan_speed: ACFanSpeed | None = None
    target_type: ACTargetType | None = None
    target_value: int | None = None


@dataclass
class GroupControl:
    """One group (zone) control request; ``None`` means keep."""

    group_number: int | None = None
    power_state: GroupPower | None = None
    control_type: GroupControlType | None = None
    target_type: GroupTargetType | None = None
    target: int | None = None


def _or(value, keep):
    """Return *keep* for an unset field, else the value as a plain int."""
    return keep if value is None else int(value)


def encode_ac_control(ctrl: ACControl) -> bytes:
    """Pack an ACControl into its 4-byte payload.

    Layout: unit | power<<6, fan | mode<<4, target | target_type<<6, 0.
    """
    unit = _or(ctrl.unit_number, AC_UNIT_DEFAULT) & 0x3F
    power = _or(ctrl.power_state, ACPower.KEEP) & 0x03
    fan = _or(ctrl.fan_speed, ACFanSpeed.KEEP) & 0x0F
    mode = _or(ctrl.mode, ACMode.KEEP) & 0x0F
    target = _or(ctrl.target_value, AC_TARGET_KEEP) & 0x3F
    target_type = _or(ctrl.target_type, ACTargetType.KEEP) & 0x03
    return bytes([
        unit | (power << 6),
        fan | (mode << 4),
        target | (target_type << 6),
        0,
    ])


def encode_group_control(ctrl: GroupControl) -> bytes:
    """Pack a GroupControl into its 4-byte payload.

    Layout: group, power | control_type<<3 | target_type<<5, target, 0.
    """
    group = _or(ctrl.group_number, GROUP_NUMBER_DEFAULT) & 0xFF
    power = _or(ctrl.power_state, GroupPower.KEEP) & 0x07
    control_type = _or(ctrl.control_type, GroupControlType.KEEP) & 0x03
    target_type = _or(ctrl.target_type, GroupTargetType.KEEP) & 0x07
    target = _or(ctrl.target, 0) & 0xFF
    return bytes([
        group,
        power | (control_type << 3) | (target_type << 5),
        target,
        0,
    ])


# -- High-level configurations -----------------------------------------------


def heating_cooling_control(unit_number: int, state: int) -> ACControl:
    """Map an abstract heating/cooling state to an ACControl.

    0 is off, 1 heat, 2 cool; anything else turns the unit on in auto.
    """
    if state == 0:
        return ACControl(unit_number=unit_number, power_state=ACPower.OFF)
    if state == 1:
        mode = ACMode.HEAT
    elif state == 2:
        mode = ACMode.COOL
    else:
        mode = ACMode.AUTO
    return ACControl(
        unit_number=unit_number, power_state=ACPower.ON, mode=mode,
    )


def target_temperature_control(unit_number: int, celsius: int) -> ACControl:
    """Set an AC unit's setpoint, leaving the target type as KEEP."""
    return ACControl(unit_number=unit_number, target_value=celsius)


def fan_speed_control(unit_number: int, speed: int) -> ACControl:
    """Set an AC unit's fan speed (an ``ACFanSpeed`` value)."""
    return ACControl(unit_number=unit_number, fan_speed=speed)


def zone_active_control(group_number: int, active: bool) -> GroupControl:
    """Switch a zone on or off."""
    return GroupControl(
        group_number=group_number,
        power_state=GroupPower.ON if active else GroupPower.OFF,
    )


def zone_damper_control(group_number: int, percent: int) -> GroupControl:
    """Set a zone's damper opening.

    Args:
        group_number: Zone to change.
        percent: Opening in percent; sent as is, masked to one byte.
    """
    return GroupControl(
        group_number=group_number,
        target_type=GroupTargetType.DAMPER,
        target=percent,
    )


def zone_control_type_control(group_number: int, control: int) -> GroupControl:
    """Select damper (0) or temperature (1) control for a zone."""
    return GroupControl(
        group_number=group_number,
        control_type=GroupControlType.DAMPER + control,
    )


def zone_temperature_control(group_number: int, celsius: int) -> GroupControl:
    """Set a zone's target temperature in whole degrees Celsius."""
    return GroupControl(
        group_number=group_number,
        target_type=GroupTargetType.TEMPERATURE,
        target=celsius,
    )
