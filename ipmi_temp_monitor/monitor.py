import time
import logging
from enum import Enum

from .errors import RetriesExhausted, SensorReadError
from .ipmi import FAN_MODE_AUTO, FAN_MODE_MANUAL, fan_speed_command
from .sensor import read_temperature

log = logging.getLogger(__name__)


class Status(Enum):
    OK = "OK"
    WARN = "WARN"
    BAD = "BAD"


def evaluate(temp, warn_temp, max_temp):
    """
    Classify a reading against the two thresholds.

    :param temp: Reading in degrees.
    :param warn_temp: Above this the fans go to the high tier.
    :param max_temp: Above this fan control goes back to the BMC.
    :return: A Status.
    """
    if temp > max_temp:
        return Status.BAD
    elif temp > warn_temp:
        return Status.WARN
    else:
        return Status.OK


def commands_for(status, config):
    """Return the commands to issue, in order, for a status."""
    if status is Status.BAD:
        return [FAN_MODE_AUTO]
    elif status is Status.WARN:
        return [FAN_MODE_MANUAL, fan_speed_command(config.high_speed)]
    else:
        return [FAN_MODE_MANUAL, fan_speed_command(config.low_speed)]


class TemperatureMonitor:
    """
    Poll the sensor and set the fans every poll_interval seconds.

    Fan state is never remembered: each tick sends the mode and speed
    commands again, so a BMC that drifted on its own is put back.

    :param config: A Config.
    :param ipmi: An IPMITool bound to the BMC.
    :param sleep: Called with the poll interval between ticks.
    """

    def __init__(self, config, ipmi, sleep=time.sleep):
        self.config = config
        self.ipmi = ipmi
        self.sleep = sleep

    def tick(self):
        """
        Read the sensor once and act on the reading.

        :return: The Status acted on, or None if the read failed.
        """
        cfg = self.config
        try:
            reading = read_temperature(self.ipmi, cfg.sensor)
        except SensorReadError as e:
            log.error(f"Error getting temperature: {e}")
            return None

        temp = reading.value
        log.info(f"Current temperature ({reading.sensor}): {temp}°C")

        status = evaluate(temp, cfg.warn_temp, cfg.max_temp)
        if status is Status.BAD:
            log.info(f"Temperature is BAD ({temp}°C). Setting fans to auto.")
        elif status is Status.WARN:
            log.info(f"Temperature is WARN ({temp}°C). Setting fans to manual mode, {cfg.high_rpm} RPM.")
        else:
            log.info(f"Temperature is OK ({temp}°C). Setting fans to lower speed, {cfg.low_rpm} RPM.")

        # Each command stands alone: a failed mode-set does not stop the speed-set
        for args in commands_for(status, cfg):
            try:
                self.ipmi.run_with_retry(args, cfg.retries, cfg.retry_delay)
            except RetriesExhausted as e:
                log.error(str(e))
        return status

    def run(self):
        """Main loop. Only returns by raising."""
        log.info(
            f"Monitoring '{self.config.sensor}' on {self.config.host} every {self.config.poll_interval}s "
            f"(warn > {self.config.warn_temp}°C, max > {self.config.max_temp}°C)"
        )
        while True:
            self.tick()
            self.sleep(self.config.poll_interval)
