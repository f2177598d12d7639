import sys
import argparse
import logging
from logging.handlers import TimedRotatingFileHandler
from dataclasses import replace

from .config import load_config
from .errors import ConfigError
from .ipmi import IPMITool
from .monitor import TemperatureMonitor
from .supervisor import install_signal_handlers, supervise


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'


def setup_logging(log_file, level='INFO', backup_count=7):
    """
    Send log records to stdout and to a file rotated at midnight.

    :param log_file: Path of the log file, opened for append.
    :param level: Root logger level name.
    :param backup_count: Number of rotated files to keep.
    :raises ValueError: If the level name is unknown.
    :raises OSError: If the log file cannot be opened.
    """
    levelno = logging.getLevelName(level.upper())
    if not isinstance(levelno, int):
        raise ValueError(f"Unknown level: {level!r}")

    file_handler = TimedRotatingFileHandler(log_file, when='midnight', interval=1,
                                            backupCount=backup_count, encoding='utf-8')
    console_handler = logging.StreamHandler(sys.stdout)

    formatter = logging.Formatter(LOG_FORMAT)
    logger = logging.getLogger()
    logger.setLevel(levelno)
    for handler in (console_handler, file_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog='ipmi-temp-monitor',
        description="Set server fan speed from an IPMI temperature sensor",
    )
    parser.add_argument('--config', metavar='PATH', help='YAML config file; environment variables override it')
    parser.add_argument('--once', action='store_true', help='Run a single poll and exit')
    parser.add_argument('--log-level', metavar='LEVEL', help='Log level, e.g. DEBUG')
    return parser, parser.parse_args(argv)


def main(argv=None):
    parser, args = parse_arguments(argv)

    try:
        config = load_config(args.config)
        if args.log_level:
            config = replace(config, log_level=args.log_level)
    except ConfigError as e:
        parser.error(str(e))

    try:
        setup_logging(config.log_file, config.log_level, config.log_backup_count)
    except ValueError as e:
        parser.error(f"invalid log level: {e}")
    except OSError as e:
        print(f"Failed to open log file: {e}", file=sys.stderr)
        sys.exit(0)

    if args.once:
        TemperatureMonitor(config, IPMITool.from_config(config)).tick()
        return

    install_signal_handlers()
    supervise(lambda: TemperatureMonitor(config, IPMITool.from_config(config)))


if __name__ == '__main__':
    main()
