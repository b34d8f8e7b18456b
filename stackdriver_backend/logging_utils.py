import json
import logging
import os
import sys
import time
import uuid
from logging.handlers import RotatingFileHandler
from contextvars import ContextVar
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname.lower(),
            "ts": getattr(record, "ts", time.time()),
            "message": record.getMessage(),
            "logger": record.name,
        }
        for k, v in vars(record).items():
            if k not in _RESERVED and k not in payload:
                payload[k] = v
        # Attach flush_id from context when available
        fid = get_flush_id()
        if fid and "flush_id" not in payload:
            payload["flush_id"] = fid
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_root(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    # Ensure stream handler
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        root.addHandler(h)
    # Optional file logging
    log_file = os.getenv("LOG_FILE")
    log_to_file = os.getenv("LOG_TO_FILE", "0") == "1" or bool(log_file)
    if log_to_file:
        if not log_file:
            log_dir = os.getenv("LOG_DIR", "logs")
            os.makedirs(log_dir, exist_ok=True)
            log_file = os.path.join(log_dir, "stackdriver-backend.jsonl")
        # Avoid duplicate handlers to the same file
        if not any(isinstance(h, RotatingFileHandler) and getattr(h, 'baseFilename', None) == os.path.abspath(log_file) for h in root.handlers):
            fh = RotatingFileHandler(log_file, maxBytes=int(os.getenv("LOG_MAX_BYTES", "10485760")), backupCount=int(os.getenv("LOG_BACKUP_COUNT", "5")))
            fh.setFormatter(JsonFormatter())
            root.addHandler(fh)


def get_logger(name: str) -> logging.Logger:
    setup_root()
    return logging.getLogger(name)


def set_debug(enabled: bool) -> None:
    """Switch the backend's loggers to DEBUG (config `debug: true`)."""
    logging.getLogger("stackdriver").setLevel(logging.DEBUG if enabled else logging.NOTSET)


def new_flush_id() -> str:
    return uuid.uuid4().hex[:16]


# One id per flush cycle; copied into delivery threads with the context
_FLUSH_ID: ContextVar[Optional[str]] = ContextVar("flush_id", default=None)


def set_flush_id(fid: Optional[str]) -> None:
    _FLUSH_ID.set(fid)


def get_flush_id() -> Optional[str]:
    return _FLUSH_ID.get()
