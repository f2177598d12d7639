"""
Read one temperature sensor through ``ipmitool sdr get``.

Typical output::

    Sensor ID              : Ambient Temp (0x1)
     Entity ID             : 7.1 (System Board)
     Sensor Type (Threshold)  : Temperature (0x01)
     Sensor Reading        : 28 (+/- 1) degrees C
     Status                : ok

Only the "Sensor Reading" line is used. The format belongs to ipmitool, so
all knowledge of it stays in parse_sensor_reading().
"""

import time
import logging
from dataclasses import dataclass, field

from .errors import IPMICommandError, SensorNotFoundError, SensorParseError, SensorReadError
from .ipmi import sensor_command

log = logging.getLogger(__name__)

READING_FIELD = 'Sensor Reading'
# "Sensor Reading : 28 ..." -> the value is the 4th token
READING_TOKEN = 3


@dataclass(frozen=True)
class TemperatureReading:
    sensor: str
    value: int
    timestamp: float = field(default_factory=time.time)


def parse_sensor_reading(output):
    """
    Extract the integer reading from ``sdr get`` output.

    :param output: Text printed by ipmitool.
    :return: The reading in degrees.
    :raises SensorParseError: If the reading is not an integer.
    :raises SensorNotFoundError: If no reading line is present.
    """
    for line in output.splitlines():
        if READING_FIELD not in line:
            continue
        parts = line.split()
        if len(parts) <= READING_TOKEN:
            continue
        try:
            return int(parts[READING_TOKEN])
        except ValueError as e:
            raise SensorParseError(f"error parsing temperature: {e}") from e
    raise SensorNotFoundError(f"temperature reading not found in output: {output.strip()}")


def read_temperature(ipmi, sensor):
    """
    Query the BMC for a sensor and parse its reading.

    Any non-zero exit is a failure here; the benign rsp=0xcc rule only
    covers fan control commands.

    :param ipmi: An IPMITool instance.
    :param sensor: Sensor name, e.g. "Ambient Temp".
    :return: A TemperatureReading.
    """
    try:
        output = ipmi.run(sensor_command(sensor), allow_benign=False)
    except IPMICommandError as e:
        raise SensorReadError(f"error running IPMI temperature command: {e}") from e
    return TemperatureReading(sensor, parse_sensor_reading(output))
