class MonitorError(Exception):
    pass


class ConfigError(MonitorError):
    pass


class IPMICommandError(MonitorError):
    """
    An ipmitool invocation that failed for real.

    :param args: The command arguments, without the connection parameters.
    :param returncode: Exit status, or None if the process never completed.
    :param output: Combined stdout/stderr captured from the process.
    :param cause: The underlying OS or timeout error, if any.
    """

    def __init__(self, args, returncode=None, output="", cause=None):
        self.command = list(args)
        self.returncode = returncode
        self.output = output
        self.cause = cause
        reason = cause if cause is not None else f"exit status {returncode}"
        super().__init__(f"critical error running IPMI command {self.command}: {reason}")


class RetriesExhausted(MonitorError):
    def __init__(self, args, attempts):
        self.command = list(args)
        self.attempts = attempts
        super().__init__(f"failed to run IPMI command {self.command} after {attempts} retries")


class SensorReadError(MonitorError):
    pass


class SensorNotFoundError(SensorReadError):
    pass


class SensorParseError(SensorReadError):
    pass
