import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from database import db, create_document, get_documents, serialize_doc
from errors import get_recent_errors, get_error_stats
from schemas import Project

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

# flat settings key -> stored user field
SETTINGS_FIELDS = {
    "display_name": "display_name",
    "email": "email",
    "photo_url": "photo_url",
    "selected_repo": "selected_repo",
    "wallet_address": "blockchain_wallet",
    "phone_number": "notification_preferences.whatsapp_number",
    "email_notifications": "notification_preferences.email",
    "whatsapp_notifications": "notification_preferences.whatsapp",
    "daily_news": "preferences.daily_news",
    "weekly_spy_report": "preferences.weekly_spy_report",
    "vc_motivation": "preferences.vc_motivation",
    "critical_alerts_only": "preferences.critical_alerts_only",
    "theme": "preferences.theme",
    "compact_mode": "preferences.compact_mode",
    "show_token_usage": "preferences.show_token_usage",
    "news_keywords": "preferences.news_keywords",
    "news_categories": "preferences.news_categories",
}


class SettingsUpdate(BaseModel):
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None
    selected_repo: Optional[str] = None
    wallet_address: Optional[str] = None
    phone_number: Optional[str] = None
    email_notifications: Optional[bool] = None
    whatsapp_notifications: Optional[bool] = None
    daily_news: Optional[bool] = None
    weekly_spy_report: Optional[bool] = None
    vc_motivation: Optional[bool] = None
    critical_alerts_only: Optional[bool] = None
    theme: Optional[str] = None
    compact_mode: Optional[bool] = None
    show_token_usage: Optional[bool] = None
    news_keywords: Optional[List[str]] = None
    news_categories: Optional[List[str]] = None


class SettingsRequest(BaseModel):
    firebase_uid: Optional[str] = None
    settings: SettingsUpdate = SettingsUpdate()


class ProjectRequest(BaseModel):
    firebase_uid: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    industry: str = "Technology"
    target_market: Optional[str] = None
    competitors: List[Dict[str, Any]] = []


def _collection(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db[name]


def _require_user(firebase_uid: Optional[str]) -> str:
    if not firebase_uid:
        raise HTTPException(status_code=400, detail="firebase_uid is required")
    return firebase_uid


def flatten_settings(user: Dict[str, Any]) -> Dict[str, Any]:
    notify = user.get("notification_preferences") or {}
    prefs = user.get("preferences") or {}
    return {
        "display_name": user.get("display_name", ""),
        "email": user.get("email", ""),
        "photo_url": user.get("photo_url", ""),
        "github_connected": user.get("github_connected", False),
        "github_username": user.get("github_username", ""),
        "selected_repo": user.get("selected_repo", ""),
        "wallet_address": user.get("blockchain_wallet", ""),
        "phone_number": notify.get("whatsapp_number", ""),
        "email_notifications": notify.get("email", True),
        "whatsapp_notifications": notify.get("whatsapp", False),
        "daily_news": prefs.get("daily_news", True),
        "weekly_spy_report": prefs.get("weekly_spy_report", True),
        "vc_motivation": prefs.get("vc_motivation", False),
        "critical_alerts_only": prefs.get("critical_alerts_only", False),
        "theme": prefs.get("theme", "dark"),
        "compact_mode": prefs.get("compact_mode", False),
        "show_token_usage": prefs.get("show_token_usage", True),
        "news_keywords": prefs.get("news_keywords", []),
        "news_categories": prefs.get("news_categories", ["startups", "technology", "funding"]),
    }


# ----------------------
# Settings
# ----------------------
@router.get("/api/users/settings")
def get_settings(firebase_uid: Optional[str] = None):
    _require_user(firebase_uid)
    user = _collection("user").find_one({"firebase_uid": firebase_uid})
    if not user:
        return {"success": True, "settings": {}}
    return {"success": True, "settings": flatten_settings(user)}


@router.post("/api/users/settings")
def update_settings(req: SettingsRequest):
    _require_user(req.firebase_uid)
    provided = req.settings.model_dump(exclude_none=True)
    now = datetime.now(timezone.utc)
    update = {SETTINGS_FIELDS[k]: v for k, v in provided.items()}
    update["updated_at"] = now

    _collection("user").update_one(
        {"firebase_uid": req.firebase_uid},
        {"$set": update, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    user = _collection("user").find_one({"firebase_uid": req.firebase_uid})
    return {"success": True, "message": "Settings updated successfully", "settings": flatten_settings(user)}


# ----------------------
# Token usage
# ----------------------
def summarize_usage(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    summary = {"total_tokens": 0, "total_cost": 0.0, "by_agent": {}}
    for entry in entries:
        tokens = entry.get("tokens") or 0
        cost = entry.get("cost") or 0.0
        summary["total_tokens"] += tokens
        summary["total_cost"] += cost
        agent = summary["by_agent"].setdefault(entry.get("agent", "unknown"), {"tokens": 0, "cost": 0.0, "calls": 0})
        agent["tokens"] += tokens
        agent["cost"] += cost
        agent["calls"] += 1
    summary["total_cost"] = round(summary["total_cost"], 6)
    return summary


@router.get("/api/users/usage")
def get_usage(firebase_uid: Optional[str] = None):
    _require_user(firebase_uid)
    user = _collection("user").find_one({"firebase_uid": firebase_uid}, {"token_usage": 1})
    return {"success": True, "usage": summarize_usage((user or {}).get("token_usage") or [])}


# ----------------------
# Projects (scanned by the weekly spy cron)
# ----------------------
@router.post("/api/projects")
def create_project(req: ProjectRequest):
    _require_user(req.firebase_uid)
    if not req.name:
        raise HTTPException(status_code=400, detail="Project name is required")
    _collection("project")
    project_id = create_document("project", Project(
        firebase_uid=req.firebase_uid,
        name=req.name,
        description=req.description,
        industry=req.industry or "Technology",
        target_market=req.target_market,
        competitors=req.competitors,
    ))
    return {"success": True, "project_id": project_id}


@router.get("/api/projects")
def list_projects(firebase_uid: Optional[str] = None):
    _require_user(firebase_uid)
    projects = get_documents("project", {"firebase_uid": firebase_uid, "is_active": {"$ne": False}},
                             sort=[("created_at", -1)])
    return {"success": True, "projects": [serialize_doc(p) for p in projects]}


# ----------------------
# Agent errors
# ----------------------
@router.get("/api/errors")
def list_errors(agent: Optional[str] = None, limit: int = 10):
    if not agent:
        raise HTTPException(status_code=400, detail="agent is required")
    return {"success": True, "errors": [serialize_doc(e) for e in get_recent_errors(agent, limit)]}


@router.get("/api/errors/stats")
def error_stats(hours: int = 24):
    return {"success": True, "stats": get_error_stats(hours)}
