"""
Investor Ghoul: harsh-but-fair VC feedback, plus the occasional unsolicited
WhatsApp message from "The Ghoul".
"""
import json
import random
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.base import BaseAgent
from database import db, create_document, serialize_doc
from gemini import GEMINI_MODELS, extract_json
from notifications import send_whatsapp, twilio_client
from schemas import Roast

logger = logging.getLogger(__name__)

SEND_CHANCE = 0.3
ACTIVE_HOURS = (9, 20)

ROAST_TONES = {
    "standard": "Be harsh but fair. Don't be mean for the sake of it - be mean because you want them to build something great.",
    "brutal": "Hold nothing back. This founder asked for the full roast, so be savage, blunt and relentless, but stay factual.",
    "constructive": "Stay tough, but lead with what can be fixed. Every criticism must come with a concrete next step.",
}

MESSAGE_TYPES = [
    "tough_love",
    "market_insight",
    "productivity_push",
    "reality_check",
    "motivation",
    "metric_reminder",
]

FALLBACK_MESSAGES = {
    "tough_love": {"message": "Your burn rate is eating your runway. Cut costs or raise now.", "emoji": "🔥", "urgency": "high"},
    "market_insight": {"message": "Your competitor just raised $10M. Time to differentiate or die.", "emoji": "⚔️", "urgency": "medium"},
    "productivity_push": {"message": "It's 10 AM. Have you talked to a customer yet today?", "emoji": "📞", "urgency": "medium"},
    "reality_check": {"message": "90% of startups fail. Are you doing what the 10% do?", "emoji": "💀", "urgency": "high"},
    "motivation": {"message": "I've seen founders with less pull off miracles. You've got this.", "emoji": "👻", "urgency": "low"},
    "metric_reminder": {"message": "What's your CAC:LTV ratio this month? If you don't know, that's a problem.", "emoji": "📊", "urgency": "medium"},
}

GHOUL_QUOTES = [
    "In the startup graveyard, every headstone reads: 'But the idea was great.'",
    "Your pitch deck is beautiful. Your unit economics are terrifying.",
    "I don't invest in ideas. I invest in founders who can execute despite bad ideas.",
    "If you can't explain your business to me in 30 seconds, you don't understand it.",
    "The market doesn't care about your passion. It cares about your solution.",
    "You're not running out of money. You're running out of mistakes you can afford to make.",
    "A startup without metrics is a hobby with anxiety.",
    "I've seen better pivots from drunk basketball players.",
    "Your competitor is working right now. Are you?",
    "The best time to raise money was when you didn't need it. The second best time is never showing desperation.",
    "Every founder thinks they're the exception. The data says otherwise.",
    "Your burn rate is a timer on how long I have to believe in you.",
]

DEFAULT_ROAST = {
    "overall_score": 50,
    "verdict": "NEEDS_WORK",
    "first_impression": "Interesting concept, but the execution needs serious work.",
    "roast": "I've seen this pitch 100 times. What makes YOU different?",
    "critical_flaws": [
        {"flaw": "Unclear value proposition", "severity": "critical", "advice": "Define your 10x improvement"},
    ],
    "what_works": ["You have an idea, which is a start"],
    "hard_questions": ["Who is your customer and why do they care?", "How will you acquire customers profitably?"],
    "market_reality": "Market may exist but you need to prove it",
    "competition_warning": "Someone is already working on this",
    "unit_economics_check": "Show me the numbers",
    "advice_if_they_continue": ["Talk to 100 potential customers", "Build an MVP in 30 days"],
    "advice_if_they_pivot": "Consider a more focused niche",
    "parting_words": "Come back when you have traction. Ideas are worthless, execution is everything.",
    "ghoul_quote": 'In the startup graveyard, the headstones all read: "But the idea was great."',
}

DEFAULT_QUICK_FEEDBACK = {
    "score": 50,
    "verdict": "NEEDS_WORK",
    "bullets": [
        "Be more specific about your value proposition",
        "Show me numbers, not dreams",
        "Who pays for this and why?",
    ],
    "one_advice": "Talk to 10 potential customers this week",
}


def _copy(value):
    return json.loads(json.dumps(value))


class InvestorGhoul(BaseAgent):
    def __init__(self):
        super().__init__("investor-ghoul", GEMINI_MODELS["VC_ROAST"])

    def roast_idea(self, firebase_uid: str, idea: str, context: Optional[Dict[str, Any]] = None,
                   roast_mode: str = "standard") -> Dict[str, Any]:
        self.start_timer()
        context = context or {}
        if roast_mode not in ROAST_TONES:
            roast_mode = "standard"

        details = "\n".join(
            f"{label}: {context[key]}"
            for key, label in (("stage", "Stage"), ("traction", "Traction"), ("funding", "Funding sought"), ("team", "Team"))
            if context.get(key)
        )
        prompt = f"""You are a legendary venture capitalist known as "The Ghoul." You've been in the game for 25 years, seen 10,000+ pitches, and funded 50+ unicorns. You're known for brutally honest feedback that, while harsh, has helped many founders succeed.

Your personality:
- Direct and unfiltered, you don't sugarcoat
- Skeptical by default, you've seen every type of failure
- Data-driven, you want metrics, not dreams
- Secretly caring, you're tough because you want them to succeed
- Occasionally add dark humor

A founder has come to you with this idea:
"{idea}"

{details}

Provide your analysis in JSON format:
{{
  "overall_score": 0,
  "verdict": "PASS/NEEDS_WORK/FAIL",
  "first_impression": "Your gut reaction in 1-2 sentences",
  "roast": "Your harshest but fair critique (2-3 sentences)",
  "critical_flaws": [{{"flaw": "Major issue", "severity": "critical/major/minor", "advice": "How to fix it"}}],
  "what_works": ["Thing that's actually good"],
  "hard_questions": ["Tough question 1", "Tough question 2", "Tough question 3"],
  "market_reality": "What the market actually looks like for this idea",
  "competition_warning": "Who they're really competing against",
  "unit_economics_check": "Quick assessment of whether the math can work",
  "advice_if_they_continue": ["What they MUST do if they proceed", "Next critical milestone"],
  "advice_if_they_pivot": "Alternative direction they should consider",
  "parting_words": "Your final harsh but motivating message",
  "ghoul_quote": "A memorable one-liner in your signature style"
}}

{ROAST_TONES[roast_mode]}

Return ONLY valid JSON."""

        text, usage = self.generate(prompt)
        result = extract_json(text)
        if result is None:
            logger.warning("[%s] Failed to parse roast response, using default", self.agent_name)
            result = _copy(DEFAULT_ROAST)

        roast = Roast(firebase_uid=firebase_uid, idea=idea, context=context, roast_mode=roast_mode,
                      result=result, token_usage=usage)
        roast_id = create_document("roast", roast)
        self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])

        return {
            "roast_id": roast_id,
            "roast_mode": roast_mode,
            "result": result,
            "token_usage": usage,
            "execution_time": self.get_execution_time(),
        }

    def generate_random_message(self, user_context: Optional[Dict[str, Any]] = None,
                                message_type: Optional[str] = None,
                                rng: Optional[random.Random] = None,
                                firebase_uid: Optional[str] = None) -> Dict[str, Any]:
        user_context = user_context or {}
        rng = rng or random.Random()
        if message_type not in MESSAGE_TYPES:
            message_type = rng.choice(MESSAGE_TYPES)

        extra = []
        if user_context.get("startup"):
            extra.append(f"Their startup: {user_context['startup']}")
        if user_context.get("last_metric"):
            extra.append(f"Their last reported metric: {user_context['last_metric']}")

        prompt = f"""You are "The Ghoul," a legendary VC known for sending random messages to founders in your portfolio. Today's message type: {message_type}.

{chr(10).join(extra)}

Generate a short, punchy message (2-3 sentences max) that fits the type. Be direct, slightly intimidating, but ultimately helpful.

Message types:
- tough_love: Harsh reminder about what matters
- market_insight: Quick market observation they should know
- productivity_push: Push them to work harder/smarter
- reality_check: Remind them of harsh startup realities
- motivation: Surprisingly encouraging (rare from you)
- metric_reminder: Ask about a specific metric

Return JSON:
{{
  "message": "The actual message",
  "type": "{message_type}",
  "emoji": "Single relevant emoji",
  "urgency": "high/medium/low"
}}

Return ONLY valid JSON."""

        try:
            text, usage = self.generate(prompt)
            self._log_call(firebase_uid, usage)
            parsed = extract_json(text)
        except Exception as e:
            logger.error("[%s] Random message generation error: %s", self.agent_name, e)
            parsed = None

        if parsed and parsed.get("message"):
            parsed.setdefault("type", message_type)
            return parsed
        return {**FALLBACK_MESSAGES[message_type], "type": message_type}

    def send_random_message_to_user(self, user: Dict[str, Any], rng: Optional[random.Random] = None,
                                    now: Optional[datetime] = None) -> Dict[str, Any]:
        rng = rng or random.Random()
        now = now or datetime.now()

        if rng.random() > SEND_CHANCE:
            return {"sent": False, "reason": "Random chance - no message sent"}
        if now.hour < ACTIVE_HOURS[0] or now.hour > ACTIVE_HOURS[1]:
            return {"sent": False, "reason": "Outside business hours"}
        return self.deliver_random_message(user, rng)

    def deliver_random_message(self, user: Dict[str, Any], rng: Optional[random.Random] = None) -> Dict[str, Any]:
        number = (user.get("notification_preferences") or {}).get("whatsapp_number")
        if not number or twilio_client is None:
            return {"sent": False, "reason": "No phone number or Twilio not configured"}

        context = {"startup": (user.get("company") or {}).get("name")}
        message = self.generate_random_message(context, rng=rng, firebase_uid=user.get("firebase_uid"))
        result = send_whatsapp(number, f"{message.get('emoji', '')} *The Ghoul says:*\n\n{message['message']}")
        if not result.get("success"):
            return {"sent": False, "reason": result.get("error")}

        logger.info("[%s] Sent %s message to %s", self.agent_name, message.get("type"), user.get("firebase_uid"))
        return {"sent": True, "message": message}

    def quick_feedback(self, pitch: str, firebase_uid: Optional[str] = None) -> Dict[str, Any]:
        prompt = f"""You are "The Ghoul," a legendary VC. Give quick feedback on this pitch in 3 bullet points max.

Pitch: "{pitch}"

Be harsh and direct. Format:
{{
  "score": 0,
  "verdict": "PASS/NEEDS_WORK/FAIL",
  "bullets": ["Point 1", "Point 2", "Point 3"],
  "one_advice": "Single most important thing to do next"
}}

Return ONLY valid JSON."""

        try:
            text, usage = self.generate(prompt)
            self._log_call(firebase_uid, usage)
            parsed = extract_json(text)
        except Exception as e:
            logger.error("[%s] Quick feedback error: %s", self.agent_name, e)
            parsed = None
        return parsed if parsed is not None else _copy(DEFAULT_QUICK_FEEDBACK)

    def _log_call(self, firebase_uid: Optional[str], usage: Dict[str, Any]) -> None:
        if firebase_uid:
            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])

    def get_ghoul_quotes(self) -> List[str]:
        return list(GHOUL_QUOTES)

    def get_roast_history(self, firebase_uid: str, limit: int = 10) -> List[dict]:
        cursor = db["roast"].find({"firebase_uid": firebase_uid}).sort("created_at", -1).limit(limit)
        return [serialize_doc(r) for r in cursor]
