import logging

from colorlog import ColoredFormatter

WIKIVOTE_LOGGER_NAME = "WIKIVOTE"


def _build_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(
        ColoredFormatter(
            "%(log_color)s[WIKIVOTE:%(levelname)-1.1s %(asctime)s]%(reset)s %(message)s",
            datefmt="%H:%M:%S",
            reset=True,
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
    )
    return handler


_logger = logging.getLogger(WIKIVOTE_LOGGER_NAME)
# the trainer, the updater and the CLI all report through this one handler.
_logger.propagate = False
_handler = _build_handler()
_logger.addHandler(_handler)
_logger.setLevel(logging.INFO)


def get_default_logger() -> logging.Logger:
    return _logger


def set_verbosity(verbose: bool) -> None:
    """Shows the debug messages (page ids, tokens, file writes) if ``verbose``."""
    _logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def disable_default_handler() -> None:
    _logger.removeHandler(_handler)


__all__ = ["get_default_logger", "set_verbosity", "disable_default_handler"]
