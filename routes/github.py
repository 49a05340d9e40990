"""
GitHub integration: OAuth account linking and the pull request webhook that
triggers Phantom Code Guardian.
"""
import os
import hmac
import json
import hashlib
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from agents import PhantomCodeGuardian
from agents.code_guardian import format_review_comment, review_event
from database import db, create_document, as_utc
from schemas import OAuthState

logger = logging.getLogger(__name__)

GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID")
GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET")
GITHUB_REDIRECT_URI = os.getenv("GITHUB_REDIRECT_URI", "http://localhost:8000/api/github/callback")
GITHUB_WEBHOOK_SECRET = os.getenv("GITHUB_WEBHOOK_SECRET")
GITHUB_API_URL = "https://api.github.com"
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

OAUTH_SCOPES = ["read:user", "user:email", "repo", "write:repo_hook"]
STATE_TTL = timedelta(minutes=10)
REVIEW_ACTIONS = ("opened", "synchronize", "reopened")

router = APIRouter(prefix="/api/github", tags=["github"])


def _dashboard(**params) -> RedirectResponse:
    return RedirectResponse(f"{APP_URL}/dashboard?{urlencode(params)}")


def _github_headers(token: Optional[str] = None) -> Dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


# ----------------------
# OAuth
# ----------------------
@router.get("/authorize")
def authorize(firebase_uid: Optional[str] = None):
    if not GITHUB_CLIENT_ID:
        raise HTTPException(status_code=500, detail="GitHub OAuth not configured")
    if not firebase_uid:
        raise HTTPException(status_code=400, detail="firebase_uid is required")

    state = secrets.token_urlsafe(24)
    create_document("oauthstate", OAuthState(
        state=state,
        firebase_uid=firebase_uid,
        expires_at=datetime.now(timezone.utc) + STATE_TTL,
    ))

    query = urlencode({
        "client_id": GITHUB_CLIENT_ID,
        "redirect_uri": GITHUB_REDIRECT_URI,
        "scope": " ".join(OAUTH_SCOPES),
        "state": state,
    })
    return RedirectResponse(f"https://github.com/login/oauth/authorize?{query}")


def _consume_state(state: Optional[str]) -> Optional[dict]:
    if not state or db is None:
        return None
    doc = db["oauthstate"].find_one({"state": state, "used": False})
    if not doc or as_utc(doc["expires_at"]) < datetime.now(timezone.utc):
        return None
    db["oauthstate"].update_one({"_id": doc["_id"]}, {"$set": {"used": True}})
    return doc


@router.get("/callback")
def callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None):
    if error:
        return _dashboard(error="github_auth_failed")
    if not code:
        return _dashboard(error="no_code")

    oauth_state = _consume_state(state)
    if oauth_state is None:
        return _dashboard(error="invalid_state")

    try:
        token_resp = requests.post(
            "https://github.com/login/oauth/access_token",
            json={
                "client_id": GITHUB_CLIENT_ID,
                "client_secret": GITHUB_CLIENT_SECRET,
                "code": code,
                "redirect_uri": GITHUB_REDIRECT_URI,
            },
            headers={"Accept": "application/json"},
            timeout=30,
        )
        token_data = token_resp.json()
        if token_data.get("error") or not token_data.get("access_token"):
            logger.error("GitHub token error: %s", token_data.get("error"))
            return _dashboard(error="token_exchange_failed")

        access_token = token_data["access_token"]
        user_resp = requests.get(f"{GITHUB_API_URL}/user", headers=_github_headers(access_token), timeout=30)
        user_resp.raise_for_status()
        github_user = user_resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("GitHub OAuth error: %s", e)
        return _dashboard(error="oauth_failed")

    db["user"].update_one(
        {"firebase_uid": oauth_state["firebase_uid"]},
        {"$set": {
            "github_connected": True,
            "github_username": github_user.get("login", ""),
            "github_access_token": access_token,
            "updated_at": datetime.now(timezone.utc),
        }},
        upsert=True,
    )
    logger.info("Linked GitHub account %s to %s", github_user.get("login"), oauth_state["firebase_uid"])
    return _dashboard(github_connected="true", github_username=github_user.get("login", ""))


# ----------------------
# Webhook
# ----------------------
def verify_signature(payload: bytes, signature: Optional[str]) -> bool:
    if not GITHUB_WEBHOOK_SECRET:
        return True
    expected = "sha256=" + hmac.new(GITHUB_WEBHOOK_SECRET.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode(), (signature or "").encode("utf-8", "replace"))


def fetch_pr_files(repo_full_name: str, pr_number: int, token: Optional[str]) -> List[Dict[str, Any]]:
    resp = requests.get(
        f"{GITHUB_API_URL}/repos/{repo_full_name}/pulls/{pr_number}/files",
        params={"per_page": 100},
        headers=_github_headers(token),
        timeout=30,
    )
    resp.raise_for_status()
    return [
        {
            "path": f.get("filename"),
            "additions": f.get("additions", 0),
            "deletions": f.get("deletions", 0),
            "patch": f.get("patch"),
        }
        for f in resp.json()
    ]


def post_review_comment(token: str, repo_full_name: str, pr_number: int, review: Dict[str, Any]) -> bool:
    try:
        resp = requests.post(
            f"{GITHUB_API_URL}/repos/{repo_full_name}/pulls/{pr_number}/reviews",
            json={"body": format_review_comment(review), "event": review_event(review)},
            headers=_github_headers(token),
            timeout=30,
        )
        if not resp.ok:
            logger.error("Failed to post review on %s#%s: %s", repo_full_name, pr_number, resp.text[:200])
        return resp.ok
    except requests.RequestException as e:
        logger.error("Error posting review on %s#%s: %s", repo_full_name, pr_number, e)
        return False


def handle_pull_request(data: Dict[str, Any]) -> Dict[str, Any]:
    action = data.get("action")
    pr = data.get("pull_request") or {}
    repo = (data.get("repository") or {}).get("full_name")
    number = pr.get("number")
    logger.info("PR %s: %s#%s", action, repo, number)

    if action not in REVIEW_ACTIONS:
        return {"message": f'PR action "{action}" does not require review'}

    login = (data.get("sender") or {}).get("login")
    user = db["user"].find_one({"github_username": login}) if db is not None else None
    if not user:
        logger.info("No linked user for GitHub login %s, skipping review", login)
        return {"success": True, "message": f"No linked account for {login}, review skipped"}

    token = user.get("github_access_token") or None
    try:
        files = fetch_pr_files(repo, number, token)
        result = PhantomCodeGuardian().execute(
            repo_name=repo,
            pr_number=number,
            files=files,
            firebase_uid=user["firebase_uid"],
            pr_title=pr.get("title") or "",
            pr_author=(pr.get("user") or {}).get("login") or "",
            pr_url=pr.get("html_url") or "",
            email=user.get("email"),
            display_name=user.get("display_name") or "",
        )
    except Exception as e:
        logger.error("PR processing error for %s#%s: %s", repo, number, e)
        raise HTTPException(status_code=500, detail="Failed to process pull request")

    review = result["review"]
    if token:
        post_review_comment(token, repo, number, review)
    return {"success": True, "message": "Code review triggered", "review_id": review.get("_id")}


@router.post("/webhook")
async def webhook(request: Request):
    payload = await request.body()
    event = request.headers.get("x-github-event")
    logger.info("GitHub webhook event: %s, delivery: %s", event, request.headers.get("x-github-delivery"))

    if not verify_signature(payload, request.headers.get("x-hub-signature-256")):
        logger.error("GitHub webhook: invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(payload or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if event == "ping":
        return {"message": "pong"}
    if event == "pull_request":
        return await run_in_threadpool(handle_pull_request, data)
    if event == "push":
        commits = data.get("commits") or []
        logger.info("Push to %s:%s (%d commits)", (data.get("repository") or {}).get("full_name"),
                    data.get("ref"), len(commits))
        return {"message": "Push event received", "ref": data.get("ref"), "commits": len(commits)}
    if event in ("installation", "installation_repositories"):
        return {"message": f"Installation {data.get('action')}",
                "installation_id": (data.get("installation") or {}).get("id")}
    return {"message": f"Event {event} received but not handled"}
