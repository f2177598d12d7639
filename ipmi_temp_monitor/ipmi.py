import time
import logging
import subprocess

from .errors import IPMICommandError, RetriesExhausted

log = logging.getLogger(__name__)

# Raw fan control commands
FAN_MODE_AUTO = ['raw', '0x30', '0x30', '0x01', '0x01']
FAN_MODE_MANUAL = ['raw', '0x30', '0x30', '0x01', '0x00']
FAN_SPEED_PREFIX = ['raw', '0x30', '0x30', '0x02', '0xff']

# The BMC answers some raw commands with "Invalid data field" even though
# they took effect. Only this exact response is treated as success.
BENIGN_RESPONSE_CODE = 'rsp=0xcc'
BENIGN_RESPONSE_TEXT = 'Invalid data field in request'


def fan_speed_command(code):
    """Build the raw command that sets fan duty to a device speed code."""
    return FAN_SPEED_PREFIX + [code]


def sensor_command(sensor):
    return ['sdr', 'get', sensor]


def is_benign_response(output):
    return BENIGN_RESPONSE_CODE in output and BENIGN_RESPONSE_TEXT in output


def _partial_output(error):
    # TimeoutExpired keeps whatever was read before the kill, as bytes on POSIX
    output = getattr(error, 'output', None) or ""
    if isinstance(output, bytes):
        output = output.decode(errors='replace')
    return output


class SubprocessRunner:
    """
    Run a command and return its combined output and exit status.

    :param timeout: Seconds to wait before the process is killed.
    """

    def __init__(self, timeout=None):
        self.timeout = timeout

    def execute(self, argv):
        result = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=self.timeout,
        )
        return result.stdout, result.returncode


class IPMITool:
    """
    ipmitool bound to one BMC over lanplus.

    :param host: BMC address.
    :param username: BMC user.
    :param password: BMC password, passed through to ipmitool.
    :param runner: Object with ``execute(argv) -> (output, returncode)``.
    :param binary: ipmitool executable.
    :param sleep: Called with the backoff delay between retries.
    """

    def __init__(self, host, username, password, runner=None, binary='ipmitool', sleep=time.sleep):
        self.host = host
        self.username = username
        self.password = password
        self.runner = runner if runner is not None else SubprocessRunner()
        self.binary = binary
        self.sleep = sleep

    @classmethod
    def from_config(cls, config, runner=None, sleep=time.sleep):
        if runner is None:
            runner = SubprocessRunner(timeout=config.command_timeout)
        return cls(config.host, config.username, config.password,
                   runner=runner, binary=config.ipmitool, sleep=sleep)

    def argv(self, args):
        return [self.binary, '-I', 'lanplus', '-H', self.host,
                '-U', self.username, '-P', self.password] + list(args)

    def run(self, args, allow_benign=True):
        """
        Execute one ipmitool command.

        :param args: Command arguments after the connection parameters.
        :param allow_benign: Accept the known rsp=0xcc response as success.
        :return: The captured output.
        :raises IPMICommandError: On any failure other than an accepted benign response.
        """
        try:
            output, returncode = self.runner.execute(self.argv(args))
        except (OSError, subprocess.SubprocessError) as e:
            log.error(f"Error running IPMI command {args}: {e}")
            raise IPMICommandError(args, output=_partial_output(e), cause=e) from e

        if returncode == 0:
            log.info(f"IPMI command {args} successful. Output: {output.strip()}")
            return output

        if allow_benign and is_benign_response(output):
            log.info(f"IPMI command {args} executed with a minor error (rsp=0xcc), continuing")
            return output

        log.error(f"Error running IPMI command {args}: exit status {returncode}. Output: {output.strip()}")
        raise IPMICommandError(args, returncode=returncode, output=output)

    def run_with_retry(self, args, retries, delay):
        """
        Execute a command, retrying failures with exponential backoff.

        Only idempotent commands should go through here.

        :param args: Command arguments after the connection parameters.
        :param retries: Maximum number of attempts.
        :param delay: Seconds to wait after the first failure, doubled after each further one.
        :return: The captured output of the successful attempt.
        :raises RetriesExhausted: When every attempt failed.
        """
        for attempt in range(1, retries + 1):
            try:
                return self.run(args)
            except IPMICommandError as e:
                log.warning(f"Attempt {attempt}: {e}")
                if attempt < retries:
                    self.sleep(delay)
                    delay *= 2
        raise RetriesExhausted(args, retries)
