"""
Shadow Scout: weekly competitive intelligence. Three LLM passes (competitors,
market trends, strategic insights) rendered into a 5 page letter-size PDF.
"""
import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from agents.base import BaseAgent, add_usage
from database import db, create_document, serialize_doc, to_object_id
from gemini import GEMINI_MODELS, empty_usage, extract_json
from schemas import SpyReport
from storage import save_to_storage

logger = logging.getLogger(__name__)

COLORS = {
    "primary": Color(0, 0.52, 0.63),
    "secondary": Color(0.2, 0.2, 0.25),
    "text": Color(0.2, 0.2, 0.2),
    "muted": Color(0.5, 0.5, 0.5),
    "white": Color(1, 1, 1),
    "light": Color(0.9, 0.9, 0.9),
}

BOLD = "Helvetica-Bold"
REGULAR = "Helvetica"

DEFAULT_ANALYSIS = {
    "direct_competitors": [],
    "indirect_competitors": [],
    "emerging_threats": [],
    "our_advantages": ["First mover advantage", "Technical innovation"],
    "competitive_gaps": ["Underserved market segment"],
    "recommendations": ["Focus on differentiation", "Build strong moat"],
}

DEFAULT_TRENDS = {
    "current_trends": [],
    "market_size": {"current": "N/A", "projected": "N/A", "cagr": "N/A"},
    "key_drivers": ["Digital transformation", "AI adoption"],
    "challenges": ["Market saturation", "Regulatory uncertainty"],
    "emerging_technologies": ["AI/ML", "Blockchain"],
    "investment_activity": {"trend": "Stable", "notable_deals": []},
    "forecast": "Market expected to continue growth trajectory",
}

DEFAULT_INSIGHTS = {
    "key_insights": [],
    "opportunities": [],
    "threats": [],
    "strategic_recommendations": [],
    "quick_wins": ["Improve messaging", "Enhance UX"],
    "watch_list": ["Key competitor activities", "Market changes"],
    "summary": "Continue building competitive advantage through innovation and customer focus.",
}


def wrap_text(text: str, max_chars: int) -> List[str]:
    lines, current = [], ""
    for word in str(text).split():
        if current and len(current) + 1 + len(word) > max_chars:
            lines.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        lines.append(current)
    return lines


def _safe(text: Any) -> str:
    return str(text).encode("latin-1", "replace").decode("latin-1")


class ShadowScout(BaseAgent):
    def __init__(self):
        super().__init__("shadow-scout", GEMINI_MODELS["SPY"])

    def generate_weekly_report(self, firebase_uid: str, project_data: Dict[str, Any],
                               competitors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        self.start_timer()
        competitors = competitors or []
        project_name = project_data.get("name") or "Your Startup"
        industry = project_data.get("industry") or "Technology"
        usage = empty_usage()

        try:
            analysis = self.analyze_competitors(project_data, competitors, usage)
            trends = self.analyze_market_trends(industry, usage)
            insights = self.generate_insights(analysis, trends, project_data, usage)

            pdf_bytes = self.create_report(analysis, trends, insights, project_data)
            storage_path = save_to_storage(firebase_uid, "shadow-scout-report.pdf", pdf_bytes)

            report = SpyReport(
                firebase_uid=firebase_uid,
                project_name=project_name,
                industry=industry,
                competitors=competitors,
                analysis=analysis,
                trends=trends,
                insights=insights,
                storage_path=storage_path,
                token_usage=usage,
                status="completed",
            )
            report_id = create_document("spyreport", report)
            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])
        except Exception as e:
            logger.error("[%s] Report generation failed: %s", self.agent_name, e)
            if db is not None:
                create_document("spyreport", SpyReport(
                    firebase_uid=firebase_uid, project_name=project_name, industry=industry,
                    competitors=competitors, status="failed", error_message=str(e),
                ))
            raise

        logger.info("[%s] Report ready for %s (%d competitors)", self.agent_name, project_name, len(competitors))
        return {
            "report_id": report_id,
            "analysis": analysis,
            "trends": trends,
            "insights": insights,
            "storage_path": storage_path,
            "token_usage": usage,
            "execution_time": self.get_execution_time(),
        }

    def _ask(self, prompt: str, default: Dict[str, Any], usage: Dict[str, Any], label: str) -> Dict[str, Any]:
        text, call_usage = self.generate(prompt)
        add_usage(usage, call_usage)
        parsed = extract_json(text)
        if parsed is None:
            logger.warning("[%s] Failed to parse %s, using defaults", self.agent_name, label)
            return json.loads(json.dumps(default))
        return parsed

    def analyze_competitors(self, project_data, competitors, usage):
        if competitors:
            listing = "\n".join(f"- {c.get('name')}: {c.get('description') or 'No description'}" for c in competitors)
        else:
            listing = "No specific competitors provided"

        prompt = f"""You are a competitive intelligence analyst. Analyze the competitive landscape for this startup.

Our Project:
- Name: {project_data.get('name')}
- Description: {project_data.get('description')}
- Industry: {project_data.get('industry') or 'Technology'}
- Target Market: {project_data.get('target_market') or 'Not specified'}

Known Competitors:
{listing}

Provide a comprehensive competitive analysis in JSON format:
{{
  "direct_competitors": [{{"name": "...", "description": "...", "strengths": [], "weaknesses": [], "market_share": "...", "funding": "...", "threat_level": "high/medium/low"}}],
  "indirect_competitors": [{{"name": "...", "description": "...", "overlap": "..."}}],
  "emerging_threats": [{{"threat": "...", "likelihood": "high/medium/low", "timeframe": "Short/Medium/Long term"}}],
  "our_advantages": ["Advantage 1"],
  "competitive_gaps": ["Gap we can exploit"],
  "recommendations": ["Strategic recommendation"]
}}

Return ONLY valid JSON."""
        return self._ask(prompt, DEFAULT_ANALYSIS, usage, "competitor analysis")

    def analyze_market_trends(self, industry, usage):
        prompt = f"""You are a market research analyst. Provide current market trends and insights for the {industry or 'technology'} industry.

Return your analysis in JSON format:
{{
  "current_trends": [{{"trend": "...", "description": "...", "impact": "high/medium/low", "opportunity": "..."}}],
  "market_size": {{"current": "$X billion", "projected": "$Y billion by 2028", "cagr": "X%"}},
  "key_drivers": ["Driver 1"],
  "challenges": ["Challenge 1"],
  "emerging_technologies": ["Tech 1"],
  "investment_activity": {{"trend": "Increasing/Stable/Decreasing", "notable_deals": []}},
  "regulatory_changes": ["Regulatory change 1"],
  "forecast": "Brief market outlook for next 12 months"
}}

Return ONLY valid JSON."""
        return self._ask(prompt, DEFAULT_TRENDS, usage, "market trends")

    def generate_insights(self, analysis, trends, project_data, usage):
        prompt = f"""Based on the following competitive and market analysis, provide strategic insights for {project_data.get('name')}.

Competitive Analysis:
{json.dumps(analysis, indent=2)}

Market Trends:
{json.dumps(trends, indent=2)}

Provide strategic insights in JSON format:
{{
  "key_insights": [{{"insight": "...", "importance": "high/medium/low", "action_item": "..."}}],
  "opportunities": [{{"opportunity": "...", "timeline": "Short/Medium/Long term", "effort": "Low/Medium/High"}}],
  "threats": [{{"threat": "...", "probability": "High/Medium/Low", "mitigation": "..."}}],
  "strategic_recommendations": [{{"recommendation": "...", "priority": 1, "rationale": "..."}}],
  "quick_wins": ["Quick win 1"],
  "watch_list": ["Thing to monitor"],
  "summary": "Executive summary in 2-3 sentences"
}}

Return ONLY valid JSON."""
        return self._ask(prompt, DEFAULT_INSIGHTS, usage, "insights")

    def create_report(self, analysis, trends, insights, project_data) -> bytes:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=letter)
        pdf.setTitle("Competitive Intelligence Report")
        self.page_height = letter[1]

        self._draw_cover(pdf, project_data)
        pdf.showPage()
        self._draw_executive_summary(pdf, insights)
        pdf.showPage()
        self._draw_competitors(pdf, analysis)
        pdf.showPage()
        self._draw_trends(pdf, trends)
        pdf.showPage()
        self._draw_recommendations(pdf, insights)
        pdf.showPage()

        pdf.save()
        return buffer.getvalue()

    def _text(self, pdf, text, x, y, font, size, color):
        pdf.setFillColor(COLORS[color])
        pdf.setFont(font, size)
        pdf.drawString(x, y, _safe(text))

    def _heading(self, pdf, title):
        self._text(pdf, title, 50, self.page_height - 60, BOLD, 20, "primary")
        return self.page_height - 120

    def _section(self, pdf, title, y):
        self._text(pdf, title, 50, y, BOLD, 14, "secondary")
        return y - 30

    def _draw_cover(self, pdf, project_data):
        width, height = letter
        pdf.setFillColor(COLORS["primary"])
        pdf.rect(0, height - 120, width, 120, stroke=0, fill=1)
        self._text(pdf, "COMPETITIVE INTELLIGENCE REPORT", 50, height - 70, BOLD, 24, "white")
        self._text(pdf, f"Weekly Analysis for {project_data.get('name') or 'Your Startup'}", 50, height - 100, REGULAR, 14, "light")
        self._text(pdf, datetime.now(timezone.utc).strftime("%B %d, %Y"), 50, height - 180, REGULAR, 16, "muted")
        self._text(pdf, "Shadow Scout Report", 50, height - 220, BOLD, 18, "secondary")
        self._text(pdf, "This report provides comprehensive competitive intelligence", 50, height / 2, REGULAR, 14, "text")
        self._text(pdf, "including market analysis, competitor tracking, and strategic insights.", 50, height / 2 - 25, REGULAR, 14, "text")
        self._text(pdf, "Powered by GhostFounder AI", 50, 50, REGULAR, 10, "muted")

    def _draw_executive_summary(self, pdf, insights):
        y = self._heading(pdf, "EXECUTIVE SUMMARY")
        for line in wrap_text(insights.get("summary") or "", 80):
            self._text(pdf, line, 50, y, REGULAR, 12, "text")
            y -= 20

        y = self._section(pdf, "Key Insights", y - 30)
        for item in (insights.get("key_insights") or [])[:5]:
            label = item.get("insight") if isinstance(item, dict) else item
            self._text(pdf, f"- {label}", 60, y, REGULAR, 11, "text")
            y -= 25

        y = self._section(pdf, "Quick Wins", y - 20)
        for win in (insights.get("quick_wins") or [])[:3]:
            self._text(pdf, f"+ {win}", 60, y, REGULAR, 11, "text")
            y -= 25

    def _draw_competitors(self, pdf, analysis):
        y = self._heading(pdf, "COMPETITOR ANALYSIS")
        y = self._section(pdf, "Direct Competitors", y)
        for comp in (analysis.get("direct_competitors") or [])[:4]:
            if not isinstance(comp, dict):
                continue
            self._text(pdf, f"{comp.get('name')} ({comp.get('threat_level') or 'unknown'} threat)", 60, y, BOLD, 12, "text")
            y -= 20
            for line in wrap_text(comp.get("description") or "", 70)[:2]:
                self._text(pdf, line, 70, y, REGULAR, 10, "muted")
                y -= 15
            y -= 15

        y = self._section(pdf, "Our Competitive Advantages", y - 20)
        for adv in (analysis.get("our_advantages") or [])[:5]:
            self._text(pdf, f"> {adv}", 60, y, REGULAR, 11, "text")
            y -= 25

    def _draw_trends(self, pdf, trends):
        y = self._heading(pdf, "MARKET TRENDS")
        size = trends.get("market_size")
        if isinstance(size, dict):
            y = self._section(pdf, "Market Size", y)
            for label, key in (("Current", "current"), ("Projected", "projected"), ("CAGR", "cagr")):
                self._text(pdf, f"{label}: {size.get(key)}", 60, y, REGULAR, 11, "text")
                y -= 20
            y -= 20

        y = self._section(pdf, "Current Trends", y)
        for trend in (trends.get("current_trends") or [])[:4]:
            if isinstance(trend, dict):
                self._text(pdf, f"- {trend.get('trend')} ({trend.get('impact')} impact)", 60, y, REGULAR, 11, "text")
                y -= 25

        y = self._section(pdf, "Market Outlook", y - 20)
        for line in wrap_text(trends.get("forecast") or "", 70):
            self._text(pdf, line, 60, y, REGULAR, 11, "text")
            y -= 18

    def _draw_recommendations(self, pdf, insights):
        y = self._heading(pdf, "STRATEGIC RECOMMENDATIONS")
        for rec in (insights.get("strategic_recommendations") or [])[:5]:
            if not isinstance(rec, dict):
                continue
            self._text(pdf, f"{rec.get('priority')}. {rec.get('recommendation')}", 50, y, BOLD, 12, "text")
            y -= 25
            for line in wrap_text(rec.get("rationale") or "", 70)[:2]:
                self._text(pdf, line, 60, y, REGULAR, 10, "muted")
                y -= 15
            y -= 20

        y = self._section(pdf, "Watch List", y - 20)
        for item in (insights.get("watch_list") or [])[:5]:
            self._text(pdf, f"* {item}", 60, y, REGULAR, 11, "text")
            y -= 25

    def get_user_reports(self, firebase_uid: str, limit: int = 10) -> List[dict]:
        cursor = db["spyreport"].find({"firebase_uid": firebase_uid}).sort("created_at", -1).limit(limit)
        return [serialize_doc(r) for r in cursor]

    def get_report(self, report_id: str, firebase_uid: str) -> Optional[dict]:
        oid = to_object_id(report_id)
        if oid is None:
            return None
        report = db["spyreport"].find_one({"_id": oid, "firebase_uid": firebase_uid})
        return serialize_doc(report) if report else None
