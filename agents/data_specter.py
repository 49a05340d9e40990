"""
Data Specter: natural-language questions over the caller's own data.
The LLM plans an aggregation pipeline which is sanitized before it runs.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from agents.base import BaseAgent, add_usage
from database import db, serialize_doc, to_object_id
from gemini import GEMINI_MODELS, empty_usage, extract_json
from schemas import ChatMessage

logger = logging.getLogger(__name__)

DATA_SPECTER_SYSTEM_PROMPT = """You are Data Specter, an AI assistant that helps users query their data using natural language. You convert user questions into MongoDB aggregation pipelines.

Available collections and their fields:

1. users - User profiles
   - firebase_uid, email, display_name, github_connected, subscription, token_usage[] (date, agent, tokens, cost), created_at

2. codereviews - Code review results
   - firebase_uid, repo_name, pr_number, pr_title, analysis (summary, bugs[], security_issues[], overall_score), token_usage, status, created_at

3. financialreports - Financial reports
   - firebase_uid, period (Q1/Q2/Q3/Q4/yearly), year, data (revenue, expenses, totals), analysis (health_score), status, created_at

Respond in JSON format:
{
  "collection": "collectionName",
  "pipeline": [...aggregation stages...],
  "explanation": "What this query does",
  "visualization": "table|bar|line|pie|none"
}

Rules:
- Only read data, never delete or update
- Limit results to 100 documents max
- Use $match for filtering, $group for aggregation, $project for field selection
- For token usage queries, $unwind and sum the token_usage array"""

ALLOWED_COLLECTIONS = {
    "users": "user",
    "user": "user",
    "codereviews": "codereview",
    "codereview": "codereview",
    "financialreports": "financialreport",
    "financialreport": "financialreport",
}

# $facet can nest any of the others in its sub-pipelines
BLOCKED_STAGES = {"$out", "$merge", "$unset", "$lookup", "$unionWith", "$graphLookup", "$facet"}

MAX_RESULTS = 100

SUGGESTED_QUERIES = [
    "How many code reviews have I done this month?",
    "What's my total token usage this week?",
    "Show me my code reviews with critical bugs",
    "What's my average code review score?",
    "List my most recent financial reports",
    "How much have I spent on AI tokens?",
    "Show me code reviews for my main repository",
    "What security issues were found in my code?",
]


def sanitize_pipeline(pipeline: List[Dict[str, Any]], firebase_uid: str) -> List[Dict[str, Any]]:
    """Scope every $match to the caller, drop write and cross-collection stages, bound the output."""
    safe = [{"$match": {"firebase_uid": firebase_uid}}]
    for stage in pipeline or []:
        if not isinstance(stage, dict) or len(stage) != 1:
            continue
        op = next(iter(stage))
        if op in BLOCKED_STAGES:
            continue
        if op == "$match":
            match = dict(stage["$match"]) if isinstance(stage["$match"], dict) else {}
            match["firebase_uid"] = firebase_uid
            stage = {"$match": match}
        safe.append(stage)

    if not any("$limit" in stage for stage in safe):
        safe.append({"$limit": MAX_RESULTS})
    return safe


def add_message(session_id, role: str, content: str, tokens: int = 0, query_result: Any = None) -> None:
    now = datetime.now(timezone.utc)
    entry = {"role": role, "content": content, "timestamp": now, "tokens": tokens, "query_result": query_result}
    db["chatmessage"].update_one(
        {"_id": session_id},
        {"$push": {"messages": entry}, "$set": {"last_activity": now}, "$inc": {"total_tokens": tokens}},
    )


class DataSpecter(BaseAgent):
    def __init__(self):
        super().__init__("data-specter", GEMINI_MODELS["DATABASE"])

    def _get_or_create_session(self, firebase_uid: str, session_id: Optional[str], email, display_name):
        sessions = db["chatmessage"]
        if session_id:
            oid = to_object_id(session_id)
            session = sessions.find_one({"_id": oid, "firebase_uid": firebase_uid}) if oid else None
            if session:
                return session["_id"]

        user = self.get_or_create_user(firebase_uid, email, display_name)
        now = datetime.now(timezone.utc)
        doc = ChatMessage(
            user_id=str(user["_id"]),
            firebase_uid=firebase_uid,
            agent="data-specter",
            session_started=now,
            last_activity=now,
        ).model_dump()
        doc["created_at"] = now
        return sessions.insert_one(doc).inserted_id

    def execute(
        self,
        question: str,
        firebase_uid: str,
        session_id: Optional[str] = None,
        email: Optional[str] = None,
        display_name: str = "",
    ) -> Dict[str, Any]:
        self.start_timer()
        sid = self._get_or_create_session(firebase_uid, session_id, email, display_name)

        try:
            add_message(sid, "user", question)

            prompt = (
                f"{DATA_SPECTER_SYSTEM_PROMPT}\n\n"
                f"User ID for filtering: {firebase_uid}\n\n"
                f"User Question: {question}\n\n"
                "Generate the MongoDB aggregation pipeline to answer this question."
            )
            text, usage = self.generate(prompt, temperature=0.2, max_output_tokens=2048)
            plan = self.parse_query_plan(text)

            results = None
            error = None
            if plan.get("collection") and plan.get("pipeline"):
                try:
                    results = self.execute_query(plan["collection"], plan["pipeline"], firebase_uid)
                except Exception as e:
                    logger.warning("[%s] Query failed: %s", self.agent_name, e)
                    error = str(e)

            response_text, answer_usage = self.generate_response(question, plan, results, error)
            total = add_usage(add_usage(empty_usage(), usage), answer_usage)

            add_message(sid, "assistant", response_text, total["total_tokens"], results)
            db["chatmessage"].update_one({"_id": sid}, {"$inc": {"total_cost": total["cost"]}})
            self.log_usage(firebase_uid, total["total_tokens"], total["cost"])
        except Exception as e:
            add_message(sid, "assistant", f"Error: {e}")
            raise

        return {
            "success": True,
            "session_id": str(sid),
            "response": response_text,
            "results": results,
            "visualization": plan.get("visualization") or "table",
            "execution_time": self.get_execution_time(),
            "token_usage": total,
        }

    def parse_query_plan(self, text: str) -> Dict[str, Any]:
        parsed = extract_json(text)
        if parsed is None:
            return {"collection": None, "pipeline": None, "explanation": text, "visualization": "none"}
        return parsed

    def execute_query(self, collection: str, pipeline: List[Dict[str, Any]], firebase_uid: str) -> List[dict]:
        name = ALLOWED_COLLECTIONS.get(str(collection).lower())
        if name is None:
            raise ValueError(f"Collection '{collection}' is not accessible")
        if not isinstance(pipeline, list):
            raise ValueError("Pipeline must be a list of stages")

        safe = sanitize_pipeline(pipeline, firebase_uid)
        return [serialize_doc(doc) for doc in db[name].aggregate(safe)]

    def generate_response(self, question: str, plan: Dict[str, Any], results, error):
        if error:
            return f"I encountered an error while querying: {error}. Could you try rephrasing your question?", empty_usage()
        if not results:
            return (
                f"I searched your data but found no results matching your query. {plan.get('explanation') or ''}".strip(),
                empty_usage(),
            )

        prompt = (
            f'The user asked: "{question}"\n\n'
            f"Query explanation: {plan.get('explanation')}\n\n"
            f"Results ({len(results)} items):\n"
            f"{json.dumps(results[:5], indent=2, default=str)}\n\n"
            "Generate a natural, helpful response summarizing these results. Be concise but informative."
        )
        return self.generate(prompt, temperature=0.7, max_output_tokens=1024)

    def get_chat_history(self, session_id: str, firebase_uid: str) -> Optional[dict]:
        oid = to_object_id(session_id)
        if oid is None:
            return None
        session = db["chatmessage"].find_one({"_id": oid, "firebase_uid": firebase_uid})
        return serialize_doc(session) if session else None

    def get_user_sessions(self, firebase_uid: str, limit: int = 10) -> List[dict]:
        cursor = (
            db["chatmessage"]
            .find({"firebase_uid": firebase_uid, "agent": "data-specter"})
            .sort("last_activity", -1)
            .limit(limit)
        )
        return [serialize_doc(s) for s in cursor]

    def get_suggested_queries(self) -> List[str]:
        return list(SUGGESTED_QUERIES)
