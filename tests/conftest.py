import os
import json

import mongomock
import pymongo
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "ghostfounder_test"
for name in ("GEMINI_API_KEY", "CRON_SECRET", "GITHUB_WEBHOOK_SECRET", "TWILIO_ACCOUNT_SID",
             "TWILIO_AUTH_TOKEN", "EMAIL_USER", "EMAIL_PASSWORD", "SENDGRID_API_KEY", "NEWS_API_KEY",
             "S3_ENDPOINT", "GOOGLE_SHEETS_CLIENT_EMAIL"):
    os.environ.pop(name, None)

# database.py opens its client at import time
pymongo.MongoClient = mongomock.MongoClient

import database  # noqa: E402
import gemini  # noqa: E402
import storage  # noqa: E402

USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15, "cost": 0.001}


class FakeLLM:
    """Stands in for gemini.generate_content. Replies are consumed in order."""

    def __init__(self):
        self.replies = []
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def __call__(self, model_name, prompt, **options):
        self.calls.append({"model": model_name, "prompt": prompt, "options": options})
        reply = self.replies.pop(0) if self.replies else "Sorry, no structured answer."
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            reply = "```json\n" + json.dumps(reply) + "\n```"
        return reply, dict(USAGE)


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    yield database.db


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "STORAGE_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def llm(monkeypatch):
    fake = FakeLLM()
    monkeypatch.setattr(gemini, "generate_content", fake)
    return fake


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def user(clean_db):
    clean_db["user"].insert_one({
        "firebase_uid": "uid-1",
        "email": "founder@example.com",
        "display_name": "Ada Founder",
        "token_usage": [],
        "notification_preferences": {"email": True, "whatsapp": False, "whatsapp_number": ""},
        "preferences": {"daily_news": True, "weekly_spy_report": True, "vc_motivation": False},
        "is_active": True,
    })
    return clean_db["user"].find_one({"firebase_uid": "uid-1"})
