"""Catalogue of common Axpert (PI30) commands and their reply parsers.

Each entry is a ``CommandDescriptor``; ``operation()`` wraps one in a
``DeviceOperation`` ready to issue against a serial channel.

Example:
    >>> op = operation("QMOD")
    >>> op.issue(channel)
    <OperatingMode.BATTERY: 'B'>
    >>> operation("POP").issue(channel, "02")
    True
"""

import enum

from voltronic.command import PLACEHOLDER, CommandDescriptor
from voltronic.operation import DeviceOperation

ACK = "ACK"
NAK = "NAK"


class OperatingMode(enum.Enum):
    """Inverter operating mode reported by QMOD."""

    POWER_ON = "P"
    STANDBY = "S"
    LINE = "L"
    BATTERY = "B"
    FAULT = "F"
    POWER_SAVING = "H"
    SHUTDOWN = "D"


class BatteryType(enum.Enum):
    AGM = "0"
    FLOODED = "1"
    USER = "2"


class InputVoltageRange(enum.Enum):
    APPLIANCE = "0"
    UPS = "1"


class OutputSourcePriority(enum.Enum):
    UTILITY_FIRST = "0"
    SOLAR_FIRST = "1"
    SBU = "2"


class ChargerSourcePriority(enum.Enum):
    UTILITY_FIRST = "0"
    SOLAR_FIRST = "1"
    SOLAR_AND_UTILITY = "2"
    ONLY_SOLAR = "3"


# -- Reply field layouts -----------------------------------------------------

# Field name and converter, in reply order.  Replies may carry more
# trailing fields than listed; older firmware may omit the optional tail.
QPIGS_FIELDS = (
    ("grid_voltage", float),
    ("grid_frequency", float),
    ("ac_output_voltage", float),
    ("ac_output_frequency", float),
    ("output_apparent_power", int),
    ("output_active_power", int),
    ("load_percent", int),
    ("bus_voltage", int),
    ("battery_voltage", float),
    ("battery_charging_current", int),
    ("battery_capacity", int),
    ("inverter_heat_sink_temperature", int),
    ("pv_input_current", float),
    ("pv_input_voltage", float),
    ("scc_battery_voltage", float),
    ("battery_discharge_current", int),
    ("device_status", str),
)
QPIGS_OPTIONAL_FIELDS = (
    ("battery_voltage_offset", int),
    ("eeprom_version", str),
    ("pv_charging_power", int),
    ("device_status_2", str),
)

QPIRI_FIELDS = (
    ("rated_grid_voltage", float),
    ("rated_input_current", float),
    ("rated_ac_output_voltage", float),
    ("rated_output_frequency", float),
    ("rated_output_current", float),
    ("rated_output_apparent_power", int),
    ("rated_output_active_power", int),
    ("rated_battery_voltage", float),
    ("battery_recharge_voltage", float),
    ("battery_under_voltage", float),
    ("battery_bulk_voltage", float),
    ("battery_float_voltage", float),
    ("battery_type", BatteryType),
    ("max_ac_charging_current", int),
    ("max_charging_current", int),
    ("input_voltage_range", InputVoltageRange),
    ("output_source_priority", OutputSourcePriority),
    ("charger_source_priority", ChargerSourcePriority),
)
QPIRI_OPTIONAL_FIELDS = (
    ("parallel_max_number", int),
    ("machine_type", str),
    ("topology", str),
    ("output_mode", str),
    ("battery_redischarge_voltage", float),
    ("pv_ok_condition", str),
    ("pv_power_balance", str),
)

# QPIWS warning bits a0..a31; None marks reserved bits.
QPIWS_WARNINGS = (
    None, "inverter_fault", "bus_over", "bus_under",
    "bus_soft_fail", "line_fail", "opv_short", "inverter_voltage_too_low",
    "inverter_voltage_too_high", "over_temperature", "fan_locked",
    "battery_voltage_high", "battery_low_alarm", None,
    "battery_under_shutdown", None, "over_load", "eeprom_fault",
    "inverter_over_current", "inverter_soft_fail", "self_test_fail",
    "op_dc_voltage_over", "battery_open", "current_sensor_fail",
    "battery_short", "power_limit", "pv_voltage_high",
    "mppt_overload_fault", "mppt_overload_warning",
    "battery_too_low_to_charge", None, None,
)


# -- Parsers -----------------------------------------------------------------


def _convert(convert, value):
    """Apply *convert*; enum lookups fall back to the raw value."""
    if isinstance(convert, type) and issubclass(convert, enum.Enum):
        try:
            return convert(value).name
        except ValueError:
            return value
    return convert(value)


def _parse_fields(frame, fields, optional) -> dict:
    """Split a space-separated reply and convert it field by field.

    Raises:
        ValueError: If the reply has fewer values than *fields*.
    """
    values = frame.payload.split()
    if len(values) < len(fields):
        raise ValueError(
            "expected at least {} fields, got {}".format(len(fields), len(values))
        )
    layout = fields + optional
    return {
        name: _convert(convert, value)
        for (name, convert), value in zip(layout, values)
    }


def parse_general_status(frame) -> dict:
    """Parse a QPIGS reply into a dict of readings."""
    return _parse_fields(frame, QPIGS_FIELDS, QPIGS_OPTIONAL_FIELDS)


def parse_rating_info(frame) -> dict:
    """Parse a QPIRI reply; enumerated settings are returned by name."""
    return _parse_fields(frame, QPIRI_FIELDS, QPIRI_OPTIONAL_FIELDS)


def parse_mode(frame) -> OperatingMode:
    """Parse a QMOD reply.

    Raises:
        ValueError: If the mode letter is unknown.
    """
    return OperatingMode(frame.payload.strip()[:1])


def parse_warnings(frame) -> list[str]:
    """Parse a QPIWS reply into the names of active warnings."""
    bits = frame.payload.strip()
    if len(bits) < len(QPIWS_WARNINGS) or set(bits) - {"0", "1"}:
        raise ValueError("malformed warning status {!r}".format(bits))
    return [
        name for name, bit in zip(QPIWS_WARNINGS, bits)
        if name is not None and bit == "1"
    ]


def parse_protocol_id(frame) -> dict:
    return {"protocol_id": frame.payload}


def parse_serial_number(frame) -> dict:
    return {"serial_number": frame.payload}


def parse_firmware_version(frame) -> dict:
    """Parse a QVFW reply such as ``(VERFW:00072.70``."""
    version = frame.payload.split(":", 1)[-1]
    return {"firmware_version": version}


def parse_ack(frame) -> bool:
    """Parse a setter reply: True for ACK, False for NAK.

    Raises:
        ValueError: If the reply is neither.
    """
    payload = frame.payload.upper()
    if payload == ACK:
        return True
    if payload == NAK:
        return False
    raise ValueError("expected ACK or NAK, got {!r}".format(frame.payload))


# -- Catalogue ---------------------------------------------------------------

_DESCRIPTORS = (
    CommandDescriptor("QPI", parser=parse_protocol_id,
                      description="device protocol ID"),
    CommandDescriptor("QID", parser=parse_serial_number,
                      description="device serial number"),
    CommandDescriptor("QVFW", parser=parse_firmware_version,
                      description="main CPU firmware version"),
    CommandDescriptor("QMOD", parser=parse_mode,
                      description="operating mode"),
    CommandDescriptor("QPIGS", parser=parse_general_status,
                      description="general status readings"),
    CommandDescriptor("QPIRI", parser=parse_rating_info,
                      description="rating information and settings"),
    CommandDescriptor("QPIWS", parser=parse_warnings,
                      description="active warnings"),
    CommandDescriptor("POP{}", ("00", "01", "02"), parser=parse_ack,
                      description="set output source priority "
                                  "(00 utility, 01 solar, 02 SBU)"),
    CommandDescriptor("PCP{}", ("00", "01", "02", "03"), parser=parse_ack,
                      description="set charger source priority "
                                  "(00 utility, 01 solar, 02 both, "
                                  "03 solar only)"),
    CommandDescriptor("PGR{}", ("00", "01"), parser=parse_ack,
                      description="set AC input range (00 appliance, 01 UPS)"),
)

# Keyed by the command keyword without its placeholder, e.g. "POP".
COMMANDS = {d.name.replace(PLACEHOLDER, ""): d for d in _DESCRIPTORS}


def operation(name: str, **options) -> DeviceOperation:
    """Return a DeviceOperation for the catalogue command *name*.

    Keyword arguments are passed to ``DeviceOperation``.

    Raises:
        KeyError: If *name* is not in the catalogue.
    """
    key = name.strip().upper()
    if key not in COMMANDS:
        raise KeyError("unknown command: %s" % name)
    return DeviceOperation.from_descriptor(COMMANDS[key], **options)
