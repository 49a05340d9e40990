"""
Scheduled jobs. An external scheduler POSTs here with the cron secret; GET
describes each job for health checks.
"""
import os
import random
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Header, Depends

from agents import NewsBanshee, ShadowScout, InvestorGhoul
from agents.investor_ghoul import SEND_CHANCE
from database import db

logger = logging.getLogger(__name__)

CRON_SECRET = os.getenv("CRON_SECRET")
VC_HOURS = (9, 18)  # UTC

router = APIRouter(prefix="/api/cron", tags=["cron"])

rng = random.Random()


def verify_cron_secret(authorization: Optional[str] = Header(None)):
    if CRON_SECRET and authorization != f"Bearer {CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def _users():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db["user"]


def _utc_hour() -> int:
    return datetime.now(timezone.utc).hour


# ----------------------
# Daily news (News Banshee)
# ----------------------
@router.post("/daily-news", dependencies=[Depends(verify_cron_secret)])
def run_daily_news():
    agent = NewsBanshee()
    users = list(_users().find({"is_active": {"$ne": False}, "preferences.daily_news": {"$ne": False}}))
    results = {"processed": 0, "failed": 0, "errors": []}

    for user in users:
        uid = user.get("firebase_uid")
        prefs = user.get("preferences") or {}
        try:
            agent.fetch_daily_news(uid, prefs.get("news_keywords") or [],
                                   prefs.get("news_categories") or ["startups", "technology", "funding"])
            results["processed"] += 1
        except Exception as e:
            results["failed"] += 1
            results["errors"].append({"firebase_uid": uid, "error": str(e)})

    logger.info("Daily news cron completed: %d users processed, %d failed", results["processed"], results["failed"])
    return {"success": True, "message": "Daily news aggregation completed", "results": results}


@router.get("/daily-news")
def daily_news_status():
    return {"endpoint": "daily-news", "status": "active", "schedule": "Daily at 8:00 AM UTC", "agent": "News Banshee"}


# ----------------------
# Weekly spy report (Shadow Scout)
# ----------------------
@router.post("/weekly-spy", dependencies=[Depends(verify_cron_secret)])
def run_weekly_spy():
    agent = ShadowScout()
    users = list(_users().find({"is_active": {"$ne": False}, "preferences.weekly_spy_report": {"$ne": False}}))
    results = {"processed": 0, "failed": 0, "reports": [], "errors": []}

    for user in users:
        uid = user.get("firebase_uid")
        try:
            projects = list(db["project"].find({"firebase_uid": uid, "is_active": {"$ne": False}}))
            for project in projects:
                project_id = str(project["_id"])
                try:
                    project_data = {
                        "name": project.get("name"),
                        "description": project.get("description") or project.get("name"),
                        "industry": project.get("industry") or "Technology",
                        "target_market": project.get("target_market"),
                    }
                    report = agent.generate_weekly_report(uid, project_data, project.get("competitors") or [])
                    results["reports"].append({"firebase_uid": uid, "project_id": project_id, "report_id": report["report_id"]})
                    results["processed"] += 1
                except Exception as e:
                    results["failed"] += 1
                    results["errors"].append({"firebase_uid": uid, "project_id": project_id, "error": str(e)})
        except Exception as e:
            results["failed"] += 1
            results["errors"].append({"firebase_uid": uid, "error": str(e)})

    logger.info("Weekly spy cron completed: %d reports generated, %d failed", results["processed"], results["failed"])
    return {"success": True, "message": "Weekly spy report generation completed", "results": results}


@router.get("/weekly-spy")
def weekly_spy_status():
    return {"endpoint": "weekly-spy", "status": "active", "schedule": "Weekly on Mondays at 6:00 AM UTC",
            "agent": "Shadow Scout"}


# ----------------------
# Random VC message (Investor Ghoul)
# ----------------------
@router.post("/random-vc-message", dependencies=[Depends(verify_cron_secret)])
def run_random_vc_message():
    hour = _utc_hour()
    if hour < VC_HOURS[0] or hour > VC_HOURS[1]:
        return {"success": True, "message": "Outside business hours, no messages sent", "skipped": True}
    if rng.random() > SEND_CHANCE:
        return {"success": True, "message": "Random check passed, no messages this time", "skipped": True}

    agent = InvestorGhoul()
    users = list(_users().find({
        "is_active": {"$ne": False},
        "preferences.vc_motivation": True,
        "notification_preferences.whatsapp_number": {"$exists": True, "$nin": [None, ""]},
    }))
    results = {"sent": 0, "failed": 0, "errors": []}

    for user in users:
        uid = user.get("firebase_uid")
        try:
            outcome = agent.deliver_random_message(user, rng)
        except Exception as e:
            outcome = {"sent": False, "reason": str(e)}

        if outcome.get("sent"):
            results["sent"] += 1
        else:
            results["failed"] += 1
            results["errors"].append({"firebase_uid": uid, "error": outcome.get("reason")})

    logger.info("Random VC messages: %d sent, %d failed", results["sent"], results["failed"])
    return {"success": True, "message": "Random VC messages processed", "results": results}


@router.get("/random-vc-message")
def random_vc_status():
    return {
        "endpoint": "random-vc-message",
        "status": "active",
        "schedule": "3 times daily (9 AM, 1 PM, 5 PM UTC)",
        "agent": "Investor Ghoul",
        "description": "Sends random tough love motivation messages to opted-in users",
    }
