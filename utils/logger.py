# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Structured Logger - JSON log lines for sync events and TP/Canvas API calls
"""
import json
import logging
from typing import Any, Dict, Optional

import config
from utils.timezone import get_local_time

SERVICE_NAME = 'tp-canvas-sync'

# Substrings of an event type that raise its log level
ERROR_MARKERS = ('error', 'failed')
WARNING_MARKERS = ('warning', 'anomaly')


def _base_entry(**fields) -> Dict[str, Any]:
    return {
        "timestamp": get_local_time().isoformat(),
        "timezone": config.LOCAL_TIMEZONE,
        "service": SERVICE_NAME,
        **fields,
    }


def _is_json(message: str) -> bool:
    if not message.startswith('{'):
        return False
    try:
        json.loads(message)
    except ValueError:
        return False
    return True


def level_for_event(event_type: str) -> int:
    lowered = event_type.lower()
    if any(marker in lowered for marker in ERROR_MARKERS):
        return logging.ERROR
    if any(marker in lowered for marker in WARNING_MARKERS):
        return logging.WARNING
    return logging.INFO


class StructuredLogger:
    """Writes one JSON object per sync event or API call through a standard logger"""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, entry: Dict[str, Any]):
        self.logger.log(level, json.dumps(entry, default=str, ensure_ascii=False))

    def log_sync_event(self, event_type: str, details: Dict[str, Any]):
        """e.g. course_reconciled, event_delete_failed, course_mapping_anomaly"""
        entry = _base_entry(event_type=event_type, logger=self.name)
        entry.update(details)
        self._emit(level_for_event(event_type), entry)

    def log_api_call(self, method: str, endpoint: str, status_code: Optional[int] = None,
                     duration_ms: Optional[float] = None, error: Optional[str] = None):
        """One HTTP round trip. Successful calls are only logged at DEBUG."""
        entry = _base_entry(event_type="api_call", logger=self.name, method=method, endpoint=endpoint)
        if status_code is not None:
            entry["status_code"] = status_code
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 1)
        if error:
            entry["error"] = error

        if error or (status_code or 0) >= 500:
            level = logging.ERROR
        elif (status_code or 0) >= 400:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        self._emit(level, entry)


class JsonFormatter(logging.Formatter):
    """Wraps plain log records in JSON; records that already are JSON pass through"""

    def format(self, record):
        message = record.getMessage()
        if _is_json(message):
            return message

        entry = _base_entry(level=record.levelname, logger=record.name, message=message)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: Optional[str] = None, structured: Optional[bool] = None):
    """Configure the root logger once for the whole process"""
    level = level or config.LOG_LEVEL
    structured = config.STRUCTURED_LOGGING if structured is None else structured

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    # pika is chatty at INFO
    logging.getLogger('pika').setLevel(logging.WARNING)
