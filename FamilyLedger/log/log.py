"""Logging setup for FamilyLedger.

Everything logs through the root logger. :func:`setup_logging` gives it a stdout
handler and a bounded in-memory :class:`TankHandler`, and routes Qt's own messages
through Python logging. The tank keeps the session's recent history so the UI can
explain a failed sync without asking the user to dig through the console.
"""
import collections
import logging
import sys
from typing import List, Optional

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

#: Records kept by the tank before the oldest are dropped.
TANK_CAPACITY: int = 2000

VALID_LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level: int) -> None:
    """Apply a standard logging level to the root logger and all of its handlers.

    Raises:
        ValueError: If level is not one of the standard integer levels.
    """
    if not isinstance(level, int) or isinstance(level, bool) or level not in VALID_LEVELS:
        raise ValueError(f'Invalid logging level {level!r}, expected e.g. logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Forward a Qt message to the ``Qt`` logger. A fatal message exits the process."""
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler: bool = True, enable_qt_handler: bool = True,
                  log_level: int = LOG_LEVEL, capacity: int = TANK_CAPACITY) -> 'TankHandler':
    """Configure the root logger.

    Existing handlers are removed so repeated calls do not duplicate output.

    Args:
        enable_stream_handler: Also print records to stdout.
        enable_qt_handler: Route Qt's own messages through Python logging.
        log_level: Level applied to the root logger and its handlers.
        capacity: Number of records the tank keeps.

    Returns:
        TankHandler: The installed tank.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler(capacity=capacity)
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    root_logger.addHandler(tank_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)
    return tank_handler


def get_tank() -> Optional['TankHandler']:
    """Return the tank installed on the root logger, or None before :func:`setup_logging`."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, TankHandler):
            return handler
    return None


def recent_messages(level: int = logging.WARNING, limit: int = 5) -> List[str]:
    """Return the newest formatted messages at or above level, oldest first.

    Returns an empty list when no tank is installed.
    """
    tank = get_tank()
    if tank is None:
        return []
    return tank.get_logs(level, limit=limit)


class TankHandler(logging.Handler):
    """Keeps the most recent formatted records in memory.

    Args:
        capacity: Maximum number of records kept. Older records are dropped first.
    """

    def __init__(self, capacity: int = TANK_CAPACITY):
        super().__init__()
        self.tank = collections.deque(maxlen=max(int(capacity), 1))

    @property
    def capacity(self) -> int:
        return self.tank.maxlen

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)

    def get_logs(self, level: int = logging.NOTSET, limit: Optional[int] = None) -> List[str]:
        """Return stored messages at or above level, oldest first.

        Args:
            level: Minimum level.
            limit: Only return the newest ``limit`` matching messages.
        """
        messages = [msg for lvl, msg in self.tank if lvl >= level]
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def clear_logs(self):
        self.tank.clear()
