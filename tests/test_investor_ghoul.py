import random
from datetime import datetime

from agents import InvestorGhoul
from agents import investor_ghoul
from agents.investor_ghoul import DEFAULT_ROAST, FALLBACK_MESSAGES, GHOUL_QUOTES


class FixedRandom(random.Random):
    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


PHONE_USER = {
    "firebase_uid": "uid-1",
    "company": {"name": "Acme"},
    "notification_preferences": {"whatsapp_number": "+15550001111"},
}


def test_roast_is_parsed_and_stored(clean_db, llm, user):
    llm.queue({"overall_score": 31, "verdict": "FAIL", "roast": "Nobody wants this."})
    result = InvestorGhoul().roast_idea("uid-1", "Uber for houseplants", {"stage": "Idea"}, "brutal")

    assert result["roast_mode"] == "brutal"
    assert result["result"]["verdict"] == "FAIL"
    assert "Stage: Idea" in llm.calls[0]["prompt"]
    assert "Hold nothing back" in llm.calls[0]["prompt"]

    stored = clean_db["roast"].find_one({"firebase_uid": "uid-1"})
    assert stored["result"]["overall_score"] == 31
    assert InvestorGhoul().get_roast_history("uid-1")[0]["_id"] == result["roast_id"]


def test_roast_defaults_on_garbage(clean_db, llm, user):
    llm.queue("I refuse to answer in JSON.")
    result = InvestorGhoul().roast_idea("uid-1", "Uber for houseplants", roast_mode="gentle")

    assert result["roast_mode"] == "standard"
    assert result["result"] == DEFAULT_ROAST
    result["result"]["what_works"].append("mutated")
    assert "mutated" not in DEFAULT_ROAST["what_works"]


def test_random_message_falls_back_per_type(llm):
    llm.queue(ValueError("bad api key"))
    message = InvestorGhoul().generate_random_message(message_type="reality_check")
    assert message == {**FALLBACK_MESSAGES["reality_check"], "type": "reality_check"}


def test_random_message_from_llm(llm):
    llm.queue({"message": "Ship it today.", "emoji": "🚢", "urgency": "high"})
    message = InvestorGhoul().generate_random_message({"startup": "Acme"}, "productivity_push")
    assert message["message"] == "Ship it today."
    assert message["type"] == "productivity_push"
    assert "Their startup: Acme" in llm.calls[0]["prompt"]


def test_send_gated_by_chance_and_hours():
    agent = InvestorGhoul()
    noon = datetime(2025, 5, 5, 12)

    skipped = agent.send_random_message_to_user(PHONE_USER, FixedRandom(0.9), noon)
    assert skipped == {"sent": False, "reason": "Random chance - no message sent"}

    late = agent.send_random_message_to_user(PHONE_USER, FixedRandom(0.1), datetime(2025, 5, 5, 22))
    assert late == {"sent": False, "reason": "Outside business hours"}

    no_twilio = agent.send_random_message_to_user(PHONE_USER, FixedRandom(0.1), noon)
    assert no_twilio == {"sent": False, "reason": "No phone number or Twilio not configured"}


def test_deliver_sends_whatsapp(monkeypatch, llm):
    sent = []
    monkeypatch.setattr(investor_ghoul, "twilio_client", object())
    monkeypatch.setattr(investor_ghoul, "send_whatsapp",
                        lambda to, body: sent.append((to, body)) or {"success": True, "sid": "SM1"})
    llm.queue({"message": "Call a customer.", "emoji": "📞", "type": "productivity_push"})

    result = InvestorGhoul().deliver_random_message(PHONE_USER, FixedRandom(0.1))

    assert result["sent"] is True
    assert sent == [("+15550001111", "📞 *The Ghoul says:*\n\nCall a customer.")]


def test_deliver_reports_twilio_failure(monkeypatch, llm):
    monkeypatch.setattr(investor_ghoul, "twilio_client", object())
    monkeypatch.setattr(investor_ghoul, "send_whatsapp", lambda to, body: {"success": False, "error": "bad number"})
    result = InvestorGhoul().deliver_random_message(PHONE_USER)
    assert result == {"sent": False, "reason": "bad number"}


def test_quick_feedback_default(llm):
    llm.queue("meh")
    feedback = InvestorGhoul().quick_feedback("We sell ice to penguins")
    assert feedback["verdict"] == "NEEDS_WORK"
    assert len(feedback["bullets"]) == 3


def test_quotes():
    quotes = InvestorGhoul().get_ghoul_quotes()
    assert len(quotes) == 12
    quotes.clear()
    assert len(GHOUL_QUOTES) == 12


def test_routes(client, llm, user):
    short = client.post("/api/agents/investor-ghoul", json={"firebase_uid": "uid-1", "idea": "app"})
    assert short.status_code == 400
    assert client.get("/api/agents/investor-ghoul").status_code == 400

    llm.queue({"overall_score": 70, "verdict": "PASS"})
    roast = client.post("/api/agents/investor-ghoul", json={
        "firebase_uid": "uid-1", "idea": "A marketplace for used lab equipment",
    })
    assert roast.status_code == 200
    assert roast.json()["data"]["result"]["verdict"] == "PASS"

    history = client.get("/api/agents/investor-ghoul", params={"firebase_uid": "uid-1", "action": "history"})
    assert len(history.json()["data"]) == 1
    quotes = client.get("/api/agents/investor-ghoul", params={"firebase_uid": "uid-1"})
    assert len(quotes.json()["data"]) == 12
    motivation = client.get("/api/agents/investor-ghoul", params={"firebase_uid": "uid-1", "action": "motivation"})
    assert motivation.json()["data"]["message"]
    bad = client.get("/api/agents/investor-ghoul", params={"firebase_uid": "uid-1", "action": "haunt"})
    assert bad.status_code == 400

    quick = client.post("/api/agents/investor-ghoul/quick", json={"firebase_uid": "uid-1", "pitch": "Ice for penguins"})
    assert quick.json()["data"]["score"] == 50


def _ghoul_tokens(db):
    usage = db["user"].find_one({"firebase_uid": "uid-1"})["token_usage"]
    return sum(e["tokens"] for e in usage if e["agent"] == "investor-ghoul")


def test_deliver_logs_usage(monkeypatch, clean_db, llm, user):
    monkeypatch.setattr(investor_ghoul, "twilio_client", object())
    monkeypatch.setattr(investor_ghoul, "send_whatsapp", lambda to, body: {"success": True, "sid": "SM1"})
    llm.queue({"message": "Ship it.", "emoji": "🚀", "type": "productivity_push"})

    assert InvestorGhoul().deliver_random_message(PHONE_USER)["sent"] is True
    assert _ghoul_tokens(clean_db) == 15


def test_quick_feedback_logs_usage(clean_db, llm, user):
    InvestorGhoul().quick_feedback("We sell ice to penguins", "uid-1")
    assert _ghoul_tokens(clean_db) == 15


def test_motivation_and_quick_routes_log_usage(client, clean_db, llm, user):
    client.get("/api/agents/investor-ghoul", params={"firebase_uid": "uid-1", "action": "motivation"})
    assert _ghoul_tokens(clean_db) == 15
    client.post("/api/agents/investor-ghoul/quick", json={"firebase_uid": "uid-1", "pitch": "Ice for penguins"})
    assert _ghoul_tokens(clean_db) == 30
