"""
Base agent shared by every GhostFounder agent: user lookup, token usage
bookkeeping, notifications and the retried LLM call.
"""
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument

import gemini
from database import db
from errors import with_retry
from notifications import send_email, send_whatsapp
from schemas import User

logger = logging.getLogger(__name__)


def add_usage(total: Dict[str, Any], usage: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("prompt_tokens", "completion_tokens", "total_tokens", "cost"):
        total[key] = total.get(key, 0) + usage.get(key, 0)
    return total


class BaseAgent:
    def __init__(self, agent_name: str, model_name: str):
        self.agent_name = agent_name
        self.model_name = model_name
        self.start_time: Optional[float] = None

    def _users(self):
        if db is None:
            raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
        return db["user"]

    def get_or_create_user(self, firebase_uid: str, email: Optional[str] = None, display_name: str = "") -> dict:
        defaults = User(firebase_uid=firebase_uid, email=email or "", display_name=display_name or "").model_dump()
        defaults.pop("firebase_uid")
        now = datetime.now(timezone.utc)
        defaults["created_at"] = now
        defaults["updated_at"] = now
        return self._users().find_one_and_update(
            {"firebase_uid": firebase_uid},
            {"$setOnInsert": defaults},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def log_usage(self, firebase_uid: str, tokens: int, cost: float) -> None:
        try:
            entry = {"date": datetime.now(timezone.utc), "agent": self.agent_name, "tokens": tokens, "cost": cost}
            self._users().update_one({"firebase_uid": firebase_uid}, {"$push": {"token_usage": entry}})
        except Exception as e:
            logger.error("Error logging usage for %s: %s", self.agent_name, e)

    def notify(self, firebase_uid: str, notification: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        user = self._users().find_one({"firebase_uid": firebase_uid})
        if not user:
            logger.warning("User %s not found for notification", firebase_uid)
            return None

        prefs = user.get("notification_preferences") or {}
        results: Dict[str, Any] = {}

        email = notification.get("email")
        if prefs.get("email", True) and email and user.get("email"):
            results["email"] = send_email(user["email"], email["subject"], email["html"])

        whatsapp = notification.get("whatsapp")
        if prefs.get("whatsapp") and prefs.get("whatsapp_number") and whatsapp:
            results["whatsapp"] = send_whatsapp(prefs["whatsapp_number"], whatsapp["message"])

        return results

    def start_timer(self) -> None:
        self.start_time = time.monotonic()

    def get_execution_time(self) -> int:
        if self.start_time is None:
            return 0
        return int((time.monotonic() - self.start_time) * 1000)

    def generate(self, prompt: str, **options) -> Tuple[str, Dict[str, Any]]:
        return with_retry(
            lambda: gemini.generate_content(self.model_name, prompt, **options),
            self.agent_name,
        )
