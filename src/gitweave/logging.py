import logging
import os

debug_env_var = "GITWEAVE_DEBUG"


class ConsoleFormatter(logging.Formatter):
    """
    Progress goes out as is, problems are prefixed with their level.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"{record.levelname.lower()}: {message}"
        return message


def set_verbose(verbose: bool):
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


logger = logging.getLogger("gitweave")
if len(logger.handlers) == 0:
    _handler = logging.StreamHandler()
    _handler.setFormatter(ConsoleFormatter())
    logger.addHandler(_handler)
set_verbose(os.environ.get(debug_env_var, "") != "")


def debug(msg: str, *args: object):
    logger.debug(msg, *args)


def info(msg: str, *args: object):
    logger.info(msg, *args)


def warning(msg: str, *args: object):
    logger.warning(msg, *args)


def error(msg: str, *args: object):
    logger.error(msg, *args)
