# agent_runtime/logger.py
import json
import os
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

LOG_LEVEL = os.getenv("AGENT_LOG_LEVEL", "INFO").upper()
LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "CRITICAL": 50}

def _should_log(level: str) -> bool:
    return LEVELS.get(level, 20) >= LEVELS.get(LOG_LEVEL, 20)

def _entry(level: str, event: str, message: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "message": message,
        "payload": payload,
    }

def log(level: str, event: str, message: str = "", **kwargs: Any) -> None:
    """One JSON object per line on stdout; payload values that json can't encode are stringified."""
    if not _should_log(level):
        return
    try:
        line = json.dumps(_entry(level, event, str(message), kwargs), default=str)
    except (TypeError, ValueError) as e:
        line = json.dumps(_entry("ERROR", "log_serialization_error", f"Failed to log event {event}: {e}",
                                 {"original_message": str(message)}))
    print(line, flush=True)

def log_exception(event: str, message: str, error: BaseException, **kwargs: Any) -> None:
    log("ERROR", event, message, error=str(error), error_type=type(error).__name__,
        tb="".join(traceback.format_exception(type(error), error, error.__traceback__)), **kwargs)
