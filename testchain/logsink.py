import logging

from .messages import Log

logger = logging.getLogger("testchain")

_LEVELS = {
    "log": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogSink:
    """Writes each record locally and mirrors it to the consumer as a Log event."""

    def __init__(self, transport) -> None:
        self.transport = transport

    def _emit(self, level: str, message) -> None:
        text = str(message)
        logger.log(_LEVELS[level], text)
        self.transport.send(Log(message=text, level=level))

    def log(self, message) -> None:
        self._emit("log", message)

    def info(self, message) -> None:
        self._emit("info", message)

    def warning(self, message) -> None:
        self._emit("warning", message)

    def error(self, message) -> None:
        self._emit("error", message)
