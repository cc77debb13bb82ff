import logging

LOGGER = logging.getLogger("stunnel_purge")

_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter(fmt="%(levelname)s: %(message)s"))

LOGGER.addHandler(_handler)


def set_verbosity(verbose: int) -> None:
    """Map the number of ``-v`` flags onto the log level: errors only by
    default, then warnings, info and debug messages.

    """
    if verbose > 0:
        LOGGER.setLevel((4 - min(verbose, 3)) * 10)
    else:
        LOGGER.setLevel(logging.ERROR)
