import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime

LOG_FMT = "%(asctime)s │ %(levelname)-7s │ %(message)s"

def setup_logger(name: str = "AiroBot", level: int = logging.INFO) -> logging.Logger:
    logging.basicConfig(level=level, format=LOG_FMT, datefmt="%H:%M:%S")
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger

@dataclass
class LogEntry:
    timestamp: datetime
    level: str
    message: str

class LogBuffer(logging.Handler):
    """Keeps the newest entries for the display log panel."""

    def __init__(self, maxlen: int = 20, level: int = logging.INFO):
        super().__init__(level)
        self.entries: deque[LogEntry] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord):
        try:
            msg = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self.entries.appendleft(LogEntry(
            timestamp=datetime.fromtimestamp(record.created),
            level=record.levelname,
            message=msg,
        ))

    def clear(self):
        self.entries.clear()

log = setup_logger()
