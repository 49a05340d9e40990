"""
Agent error handling: retry with backoff, severity classification and an
error log collection the dashboard can read back.
"""
import time
import logging
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from database import db, create_document, as_utc
from schemas import ErrorLog

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAYS = [1, 2, 4]  # seconds

_NETWORK_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout, ConnectionError, TimeoutError)


def _status(error: Exception) -> Optional[int]:
    status = getattr(error, "status", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: Exception) -> bool:
    if isinstance(error, _NETWORK_ERRORS):
        return True

    status = _status(error)
    if status == 429:
        return True
    if status is not None and 500 <= status < 600:
        return True

    message = str(error).lower()
    return any(s in message for s in ("rate limit", "timeout", "temporarily unavailable"))


def determine_severity(error: Exception) -> str:
    if isinstance(error, PermissionError):
        return "critical"
    message = str(error).lower()
    if any(s in message for s in ("authentication", "unauthorized", "database")):
        return "critical"

    status = _status(error)
    if status is not None and status >= 500:
        return "high"
    if "validation" in message:
        return "high"
    if status is not None and 400 <= status < 500:
        return "medium"
    return "low"


def handle_agent_error(agent_name: str, error: Exception, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error_log = {
        "agent": agent_name,
        "error": {
            "message": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "code": getattr(error, "code", None) or type(error).__name__,
        },
        "context": context or {},
        "timestamp": datetime.now(timezone.utc),
        "severity": determine_severity(error),
        "resolved": False,
    }

    logger.error("[%s] Error: %s", agent_name, error)

    if db is not None:
        try:
            create_document("errorlog", ErrorLog(**error_log))
        except Exception as db_error:
            logger.error("Failed to log error to database: %s", db_error)

    if error_log["severity"] == "critical":
        logger.critical("CRITICAL ERROR in %s: %s", agent_name, error)

    return error_log


def with_retry(
    fn: Callable[[], Any],
    agent_name: str,
    max_retries: int = MAX_RETRIES,
    retry_on: Callable[[Exception], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    last_error = None
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if attempt < max_retries and retry_on(e):
                delay = RETRY_DELAYS[attempt] if attempt < len(RETRY_DELAYS) else RETRY_DELAYS[-1]
                logger.info("[%s] Retry %d/%d in %ss...", agent_name, attempt + 1, max_retries, delay)
                sleep(delay)
            else:
                break

    handle_agent_error(agent_name, last_error, {"retries": max_retries})
    raise last_error


def get_recent_errors(agent_name: str, limit: int = 10) -> List[dict]:
    if db is None:
        return []
    try:
        return list(db["errorlog"].find({"agent": agent_name}).sort("timestamp", -1).limit(limit))
    except Exception as e:
        logger.error("Failed to get recent errors: %s", e)
        return []


def get_error_stats(hours: int = 24) -> Dict[str, Any]:
    stats = {"total": 0, "by_agent": {}, "by_severity": {"low": 0, "medium": 0, "high": 0, "critical": 0}}
    if db is None:
        return stats
    try:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        errors = [e for e in db["errorlog"].find({}) if e.get("timestamp") and as_utc(e["timestamp"]) >= since]
    except Exception as e:
        logger.error("Failed to get error stats: %s", e)
        return stats

    stats["total"] = len(errors)
    for err in errors:
        agent = err.get("agent", "unknown")
        stats["by_agent"][agent] = stats["by_agent"].get(agent, 0) + 1
        severity = err.get("severity", "low")
        stats["by_severity"][severity] = stats["by_severity"].get(severity, 0) + 1
    return stats
