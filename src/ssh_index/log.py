import sys
from typing import Protocol

from loguru import logger


class LogCallback(Protocol):
    def __call__(self, message: str, verbose: bool = False) -> None: ...


def default_log(message: str, verbose: bool = False) -> None:
    if verbose:
        logger.debug(message)
    else:
        logger.info(message)


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<level>{message}</level>",
    )
