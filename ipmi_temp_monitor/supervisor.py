import sys
import time
import signal
import logging

log = logging.getLogger(__name__)


def shutdown(signum, frame):
    log.info("Shutting down gracefully...")
    sys.exit(0)


def install_signal_handlers():
    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)


def supervise(factory, restart_delay=1.0, sleep=time.sleep):
    """
    Run monitors built by *factory*, starting a fresh one after every crash.

    SystemExit and KeyboardInterrupt are not caught, so a shutdown signal
    ends the loop.

    :param factory: Callable returning an object with a ``run()`` method. Errors
        raised while building the monitor are restarted like any other crash.
    :param restart_delay: Seconds to wait before restarting after a crash.
    """
    while True:
        try:
            factory().run()
        except Exception as e:
            log.exception(f"Program crashed with error: {e}. Restarting...")
            sleep(restart_delay)
