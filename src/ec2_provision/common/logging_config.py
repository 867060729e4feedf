"""
Logging configuration with millisecond timestamps.
"""
import datetime
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S.%f"


class MicrosecondFormatter(logging.Formatter):
    """
    A formatter that honors %f in datefmt and truncates it to milliseconds.
    The standard logging.Formatter passes datefmt to time.strftime, which has no %f.
    """

    def formatTime(self, record, datefmt=None):
        ct = datetime.datetime.fromtimestamp(record.created)
        if not datefmt:
            return ct.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        if ".%f" not in datefmt:
            return ct.strftime(datefmt)
        head, _, tail = datefmt.partition(".%f")
        # Keep only 3 of the 6 microsecond digits
        millis = ct.strftime(".%f")[:4]
        return ct.strftime(head) + millis + (ct.strftime(tail) if tail else "")


def configure_logging(level=logging.INFO):
    """
    Configure the root logger with a single console handler.

    Args:
        level: Logging level to use (default: INFO)

    Returns:
        The root logger
    """
    formatter = MicrosecondFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Calling this more than once must not duplicate output
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def set_verbosity(verbose: int) -> None:
    """Map a repeated --verbose count onto the root logger level."""
    if verbose == 1:
        logging.getLogger().setLevel(logging.WARNING)
    elif verbose == 2:
        logging.getLogger().setLevel(logging.INFO)
    elif verbose > 2:
        logging.getLogger().setLevel(logging.DEBUG)
