"""
Phantom Code Guardian: reviews pull request diffs and reports bugs,
security issues and suggestions by email (always) and WhatsApp (critical only).
"""
import logging
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, List, Optional

from agents.base import BaseAgent
from database import db, serialize_doc, to_object_id
from gemini import GEMINI_MODELS, extract_json
from schemas import CodeReview

logger = logging.getLogger(__name__)

CODE_REVIEW_SYSTEM_PROMPT = """You are the Phantom Code Guardian, an expert code reviewer AI. Analyze the pull request changes and provide comprehensive, actionable feedback.

Respond in the following JSON format:
{
  "summary": "A brief 2-3 sentence summary of the changes",
  "functions": [
    { "name": "functionName", "lines": "45-67", "description": "What this function does" }
  ],
  "bugs": [
    { "line": 123, "file": "path/to/file.py", "severity": "critical|warning|info", "description": "Description of the bug", "suggestion": "How to fix it" }
  ],
  "security_issues": [
    { "line": 234, "file": "path/to/file.py", "severity": "critical|high|medium|low", "type": "SQL Injection|XSS|etc", "description": "Description", "recommendation": "How to fix" }
  ],
  "code_smells": [
    { "line": 89, "file": "path/to/file.py", "type": "unused-variable|duplicate-code|etc", "description": "Description" }
  ],
  "suggestions": [
    { "category": "Performance|Readability|Best Practices|Testing", "description": "Suggestion", "priority": "high|medium|low" }
  ],
  "overall_score": 85
}

Rules:
1. Be thorough but constructive and give actionable feedback
2. Prioritize security issues above all else
3. Score from 0-100 based on code quality, security, and best practices
4. Only include items you actually find
5. Be specific with line numbers and file paths"""

ANALYSIS_LISTS = ("functions", "bugs", "security_issues", "code_smells", "suggestions")


def is_critical(analysis: Dict[str, Any]) -> bool:
    bugs = analysis.get("bugs") or []
    issues = analysis.get("security_issues") or []
    return any(b.get("severity") == "critical" for b in bugs) or any(
        s.get("severity") in ("critical", "high") for s in issues
    )


def critical_count(analysis: Dict[str, Any]) -> int:
    bugs = [b for b in analysis.get("bugs") or [] if b.get("severity") == "critical"]
    issues = [s for s in analysis.get("security_issues") or [] if s.get("severity") in ("critical", "high")]
    return len(bugs) + len(issues)


class PhantomCodeGuardian(BaseAgent):
    def __init__(self):
        super().__init__("phantom-code-guardian", GEMINI_MODELS["CODE_REVIEW"])

    def execute(
        self,
        repo_name: str,
        pr_number: int,
        files: List[Dict[str, Any]],
        firebase_uid: str,
        pr_title: str = "",
        pr_author: str = "",
        pr_url: str = "",
        email: Optional[str] = None,
        display_name: str = "",
    ) -> Dict[str, Any]:
        self.start_timer()
        reviews = db["codereview"]
        key = {"repo_name": repo_name, "pr_number": pr_number}

        existing = reviews.find_one(key)
        if existing is None:
            user = self.get_or_create_user(firebase_uid, email, display_name)
            doc = CodeReview(
                user_id=str(user["_id"]),
                firebase_uid=firebase_uid,
                repo_name=repo_name,
                pr_number=pr_number,
                pr_title=pr_title,
                pr_author=pr_author,
                pr_url=pr_url,
                files_reviewed=files,
                status="processing",
            ).model_dump()
            doc["created_at"] = datetime.now(timezone.utc)
            reviews.insert_one(doc)
        else:
            reviews.update_one(key, {"$set": {"status": "processing", "updated_at": datetime.now(timezone.utc)}})

        logger.info("[%s] Reviewing %s#%s (%d files)", self.agent_name, repo_name, pr_number, len(files))

        try:
            text, usage = self.generate(self.build_prompt(files), temperature=0.3, max_output_tokens=4096)
            analysis = self.parse_analysis(text)

            reviews.update_one(key, {"$set": {
                "analysis": analysis,
                "token_usage": usage,
                "status": "completed",
                "completed_at": datetime.now(timezone.utc),
                "updated_at": datetime.now(timezone.utc),
            }})

            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])
            review = reviews.find_one(key)
            self.send_notifications(firebase_uid, review)
        except Exception as e:
            reviews.update_one(key, {"$set": {"status": "failed", "error_message": str(e)}})
            raise

        return {
            "success": True,
            "review": serialize_doc(reviews.find_one(key)),
            "execution_time": self.get_execution_time(),
        }

    def build_prompt(self, files: List[Dict[str, Any]]) -> str:
        parts = [CODE_REVIEW_SYSTEM_PROMPT, "", "## Pull Request Changes", ""]
        for f in files:
            parts.append(f"### File: {f.get('path')}")
            parts.append(f"Additions: {f.get('additions') or 0}, Deletions: {f.get('deletions') or 0}")
            parts.append("")
            parts.append("```diff")
            parts.append(f.get("patch") or "No changes available")
            parts.append("```")
            parts.append("")
        parts.append("Provide your analysis in the specified JSON format.")
        return "\n".join(parts)

    def parse_analysis(self, text: str) -> Dict[str, Any]:
        parsed = extract_json(text)
        if parsed is None:
            logger.warning("[%s] Could not parse analysis, using fallback", self.agent_name)
            parsed = {"summary": (text or "")[:500], "overall_score": 50}
        for name in ANALYSIS_LISTS:
            if not isinstance(parsed.get(name), list):
                parsed[name] = []
        parsed.setdefault("summary", "")
        parsed.setdefault("overall_score", 50)
        return parsed

    def send_notifications(self, firebase_uid: str, review: dict) -> None:
        critical = is_critical(review.get("analysis") or {})
        self.notify(firebase_uid, {
            "email": {
                "subject": f"🛡️ Code Review: PR #{review['pr_number']} in {review['repo_name']}",
                "html": self.generate_email_html(review),
            },
            "whatsapp": {"message": self.generate_whatsapp_message(review)} if critical else None,
        })
        db["codereview"].update_one(
            {"_id": review["_id"]},
            {"$set": {"notifications": {
                "email_sent": True,
                "whatsapp_sent": critical,
                "sent_at": datetime.now(timezone.utc),
            }}},
        )

    def generate_email_html(self, review: dict) -> str:
        analysis = review.get("analysis") or {}
        usage = review.get("token_usage") or {}
        score = analysis.get("overall_score", 0)
        score_class = "score-good" if score >= 80 else "score-warning" if score >= 60 else "score-bad"

        sections = []
        functions = analysis.get("functions") or []
        if functions:
            items = "".join(
                f"<li><strong>{escape(str(f.get('name')))}</strong> (lines {escape(str(f.get('lines')))}): "
                f"{escape(str(f.get('description')))}</li>"
                for f in functions
            )
            sections.append(f"<h2>✅ Functions Detected</h2><ul>{items}</ul>")

        bugs = analysis.get("bugs") or []
        if bugs:
            colors = {"critical": "#ff3366", "warning": "#ffd700"}
            items = "".join(
                f'<li style="margin-bottom: 10px;"><span style="color: {colors.get(b.get("severity"), "#9ca3af")}; '
                f'font-weight: bold;">{escape(str(b.get("severity", "info")).upper())}</span>: '
                f'{escape(str(b.get("description")))} ({escape(str(b.get("file")))}:{b.get("line")})'
                f'<br><em style="color: #00d4ff;">Fix: {escape(str(b.get("suggestion")))}</em></li>'
                for b in bugs
            )
            sections.append(f"<h2>⚠️ Issues Found</h2><ul>{items}</ul>")
        else:
            sections.append("<h2>✅ No Bugs Found</h2>")

        issues = analysis.get("security_issues") or []
        if issues:
            items = "".join(
                f'<li style="margin-bottom: 10px;"><span style="color: #ff3366; font-weight: bold;">'
                f'🔒 {escape(str(s.get("type")))}</span>: {escape(str(s.get("description")))}'
                f'<br><em style="color: #00d4ff;">Recommendation: {escape(str(s.get("recommendation")))}</em></li>'
                for s in issues
            )
            sections.append(f"<h2>🔒 Security Issues</h2><ul>{items}</ul>")

        suggestions = analysis.get("suggestions") or []
        if suggestions:
            items = "".join(
                f"<li><strong>[{escape(str(s.get('priority')))}]</strong> {escape(str(s.get('description')))}</li>"
                for s in suggestions
            )
            sections.append(f"<h2>💡 Suggestions</h2><ul>{items}</ul>")

        return f"""<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: #0a0a0f; color: #e8e8ed; padding: 20px; }}
    .container {{ max-width: 600px; margin: 0 auto; background: #12121a; border-radius: 12px; padding: 24px; }}
    .score {{ display: inline-block; padding: 8px 16px; border-radius: 50px; font-size: 20px; font-weight: bold; }}
    .score-good {{ background: #00ff8820; color: #00ff88; }}
    .score-warning {{ background: #ffd70020; color: #ffd700; }}
    .score-bad {{ background: #ff336620; color: #ff3366; }}
    h2 {{ color: #00d4ff; border-bottom: 1px solid #ffffff10; padding-bottom: 8px; }}
    .footer {{ margin-top: 24px; text-align: center; color: #9ca3af; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div style="text-align: center; color: #00d4ff; font-size: 24px; font-weight: bold;">👻 Phantom Code Guardian</div>
    <h2>PR #{review.get('pr_number')}: {escape(review.get('pr_title') or 'Pull Request')}</h2>
    <p><strong>Repository:</strong> {escape(review.get('repo_name', ''))}</p>
    <p><a href="{escape(review.get('pr_url') or '')}" style="color: #00d4ff;">View Pull Request</a></p>
    <div style="text-align: center; margin: 20px 0;"><span class="score {score_class}">Score: {score}/100</span></div>
    <h2>📋 Summary</h2>
    <p>{escape(str(analysis.get('summary') or 'No summary available.'))}</p>
    {''.join(sections)}
    <div class="footer">
      <p>Token Usage: {usage.get('total_tokens', 0)} tokens (${usage.get('cost', 0.0):.4f})</p>
      <p>Powered by GhostFounder</p>
    </div>
  </div>
</body>
</html>"""

    def generate_whatsapp_message(self, review: dict) -> str:
        analysis = review.get("analysis") or {}
        lines = [
            "🚨 *CRITICAL ALERT* - Phantom Code Guardian",
            "",
            f"PR #{review['pr_number']} in {review['repo_name']} has {critical_count(analysis)} critical issue(s)!",
            "",
            f"Score: {analysis.get('overall_score', 0)}/100",
        ]
        issues = analysis.get("security_issues") or []
        if issues:
            lines.append(f"🔒 Security Issues: {len(issues)}")
        bugs = [b for b in analysis.get("bugs") or [] if b.get("severity") == "critical"]
        if bugs:
            lines.append(f"🐛 Critical Bugs: {len(bugs)}")
        lines += ["", "Check your email for the full report.", "", "- GhostFounder 👻"]
        return "\n".join(lines)

    def get_review_history(self, firebase_uid: str, limit: int = 10) -> List[dict]:
        cursor = db["codereview"].find({"firebase_uid": firebase_uid}).sort("created_at", -1).limit(limit)
        return [serialize_doc(r) for r in cursor]

    def get_review(self, review_id: str, firebase_uid: str) -> Optional[dict]:
        oid = to_object_id(review_id)
        if oid is None:
            return None
        review = db["codereview"].find_one({"_id": oid, "firebase_uid": firebase_uid})
        return serialize_doc(review) if review else None


def format_review_comment(review: Dict[str, Any]) -> str:
    """Markdown body for the GitHub PR review."""
    analysis = review.get("analysis") or {}
    lines = [
        "## 👻 Phantom Code Guardian Review",
        "",
        f"**Score:** {analysis.get('overall_score', 0)}/100",
        "",
        "### Summary",
        str(analysis.get("summary") or "No summary available."),
        "",
    ]

    bugs = analysis.get("bugs") or []
    if bugs:
        lines.append("### ⚠️ Issues Found")
        for b in bugs:
            lines.append(f"- **{str(b.get('severity', 'info')).upper()}** `{b.get('file')}:{b.get('line')}`: {b.get('description')}")
            if b.get("suggestion"):
                lines.append(f"  - Fix: {b.get('suggestion')}")
        lines.append("")

    issues = analysis.get("security_issues") or []
    if issues:
        lines.append("### 🔒 Security Issues")
        for s in issues:
            lines.append(f"- **{s.get('type')}** ({s.get('severity')}) `{s.get('file')}:{s.get('line')}`: {s.get('description')}")
            if s.get("recommendation"):
                lines.append(f"  - Recommendation: {s.get('recommendation')}")
        lines.append("")

    suggestions = analysis.get("suggestions") or []
    if suggestions:
        lines.append("### 💡 Suggestions")
        for s in suggestions:
            lines.append(f"- [{s.get('priority')}] {s.get('description')}")
        lines.append("")

    lines += ["---", "*Powered by GhostFounder*"]
    return "\n".join(lines)


def review_event(review: Dict[str, Any]) -> str:
    return "REQUEST_CHANGES" if is_critical(review.get("analysis") or {}) else "COMMENT"
