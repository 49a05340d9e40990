"""
Pitch Poltergeist: turns a project description (or its GitHub README, or an
uploaded business plan) into a 12 slide 16:9 pitch deck PDF.
"""
import io
import re
import logging
from typing import Any, Dict, List, Optional

import requests
from reportlab.lib.colors import Color
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from agents.base import BaseAgent
from database import db, create_document, serialize_doc, to_object_id
from gemini import GEMINI_MODELS, extract_json
from schemas import PitchDeck
from storage import save_to_storage

logger = logging.getLogger(__name__)

PAGE_WIDTH = 1280
PAGE_HEIGHT = 720

COLORS = {
    "background": Color(0.04, 0.04, 0.06),
    "primary": Color(0, 0.83, 1),
    "secondary": Color(0, 1, 0.53),
    "gold": Color(1, 0.84, 0),
    "white": Color(1, 1, 1),
    "gray": Color(0.6, 0.64, 0.69),
    "card": Color(0.1, 0.1, 0.12),
}

BOLD = "Helvetica-Bold"
REGULAR = "Helvetica"

GITHUB_REPO_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+?)(?:\.git)?/?$")


def _safe(text: Any) -> str:
    # Standard PDF fonts only cover latin-1
    return str(text).encode("latin-1", "replace").decode("latin-1")


def default_analysis(project_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "problem_statement": project_data.get("problem") or "Problem to be defined",
        "solution": project_data.get("description") or "Solution to be defined",
        "unique_value_proposition": "Unique approach to solving the problem",
        "target_market": {
            "primary": project_data.get("target_market") or "Target market to be defined",
            "tam": "$10B+",
            "sam": "$1B",
            "som": "$100M",
        },
        "competitive_advantage": ["Innovation", "Technology", "Team"],
        "business_model": {
            "type": "SaaS",
            "revenue_streams": ["Subscriptions", "Enterprise"],
            "pricing": "Freemium with paid tiers",
        },
        "financial_projections": {
            "year1": {"revenue": "$500K", "users": "10K"},
            "year2": {"revenue": "$2M", "users": "50K"},
            "year3": {"revenue": "$10M", "users": "200K"},
        },
        "ask_amount": "$1M Seed",
        "use_of_funds": ["Product Development - 40%", "Marketing - 30%", "Team - 20%", "Operations - 10%"],
    }


def _as_list(value) -> List[Any]:
    if isinstance(value, list):
        return value
    return [value] if value else []


def _as_records(value, key: str = "name") -> List[Dict[str, Any]]:
    # LLM replies sometimes list bare names instead of objects
    return [item if isinstance(item, dict) else {key: str(item)} for item in _as_list(value)]


def fetch_readme(repository_url: str) -> Optional[str]:
    match = GITHUB_REPO_RE.search(repository_url.strip())
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    try:
        resp = requests.get(
            f"https://api.github.com/repos/{owner}/{repo}/readme",
            headers={"Accept": "application/vnd.github.raw+json"},
            timeout=15,
        )
    except requests.RequestException as e:
        logger.warning("README fetch failed for %s: %s", repository_url, e)
        return None
    if resp.status_code != 200:
        logger.warning("README fetch for %s returned %s", repository_url, resp.status_code)
        return None
    return resp.text


def wrap_words(text: str, font: str, size: float, max_width: float) -> List[str]:
    lines, line = [], ""
    for word in str(text).split():
        candidate = f"{line} {word}".strip()
        if line and stringWidth(_safe(candidate), font, size) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate
    if line:
        lines.append(line)
    return lines


class PitchPoltergeist(BaseAgent):
    def __init__(self):
        super().__init__("pitch-poltergeist", GEMINI_MODELS["PITCH"])

    def generate_pitch_deck(self, firebase_uid: str, project_data: Dict[str, Any],
                            repository_url: Optional[str] = None) -> Dict[str, Any]:
        self.start_timer()
        project_data = dict(project_data or {})
        project_name = project_data.get("name") or "Untitled Project"

        try:
            if repository_url and not project_data.get("readme"):
                readme = fetch_readme(repository_url)
                if readme:
                    project_data["readme"] = readme

            analysis, usage = self.analyze_project(project_data)
            slides = self.generate_slide_content(analysis, project_data)
            pdf_bytes = self.create_pdf(slides)
            storage_path = save_to_storage(firebase_uid, f"{_slug(project_name)}-pitch-deck.pdf", pdf_bytes)

            deck = PitchDeck(
                firebase_uid=firebase_uid,
                project_name=project_name,
                repository_url=repository_url,
                analysis=analysis,
                slides=slides,
                storage_path=storage_path,
                token_usage=usage,
                status="completed",
            )
            deck_id = create_document("pitchdeck", deck)
            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])
        except Exception as e:
            logger.error("[%s] Pitch deck generation failed: %s", self.agent_name, e)
            if db is not None:
                failed = PitchDeck(firebase_uid=firebase_uid, project_name=project_name,
                                   repository_url=repository_url, status="failed", error_message=str(e))
                create_document("pitchdeck", failed)
            raise

        logger.info("[%s] Generated %d slide deck for %s", self.agent_name, len(slides), project_name)
        return {
            "deck_id": deck_id,
            "project_name": project_name,
            "slides": slides,
            "analysis": analysis,
            "storage_path": storage_path,
            "slide_count": len(slides),
            "token_usage": usage,
            "execution_time": self.get_execution_time(),
        }

    def analyze_project(self, project_data: Dict[str, Any]):
        tech_stack = project_data.get("tech_stack")
        if isinstance(tech_stack, list):
            tech_stack = ", ".join(tech_stack)
        readme = (project_data.get("readme") or "Not available")[:15000]

        prompt = f"""You are a startup analyst expert. Analyze the following project and provide comprehensive insights for a pitch deck.

Project Information:
- Name: {project_data.get('name')}
- Description: {project_data.get('description') or 'Not provided'}
- README Content: {readme}
- Tech Stack: {tech_stack or 'Not specified'}
- Target Market: {project_data.get('target_market') or 'Not specified'}
- Problem Statement: {project_data.get('problem') or 'Not specified'}

Provide a detailed analysis in the following JSON format:
{{
  "problem_statement": "Clear articulation of the problem being solved",
  "solution": "How this project solves the problem",
  "unique_value_proposition": "What makes this unique",
  "target_market": {{"primary": "...", "secondary": "...", "tam": "...", "sam": "...", "som": "..."}},
  "competitive_advantage": ["Advantage 1", "Advantage 2", "Advantage 3"],
  "competitors": [{{"name": "Competitor 1", "weakness": "Their weakness"}}],
  "business_model": {{"type": "SaaS/Marketplace/etc", "revenue_streams": ["Stream 1"], "pricing": "Pricing strategy"}},
  "financial_projections": {{
    "year1": {{"revenue": "$X", "users": "Y"}},
    "year2": {{"revenue": "$X", "users": "Y"}},
    "year3": {{"revenue": "$X", "users": "Y"}}
  }},
  "key_metrics": ["Metric 1", "Metric 2"],
  "risks": ["Risk 1", "Risk 2"],
  "ask_amount": "Funding amount suggestion",
  "use_of_funds": ["Use 1 - X%", "Use 2 - Y%"]
}}

Return ONLY valid JSON, no additional text."""

        text, usage = self.generate(prompt)
        analysis = extract_json(text)
        if analysis is None:
            logger.warning("[%s] Could not parse analysis, using defaults", self.agent_name)
            analysis = default_analysis(project_data)
        return analysis, usage

    def generate_slide_content(self, analysis: Dict[str, Any], project_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        defaults = default_analysis(project_data)
        market = analysis.get("target_market") or {}
        if not isinstance(market, dict):
            market = {"primary": str(market)}
        business = analysis.get("business_model") or defaults["business_model"]
        if not isinstance(business, dict):
            business = {"type": str(business)}
        projections = analysis.get("financial_projections")
        if not isinstance(projections, dict):
            projections = defaults["financial_projections"]
        key_metrics = _as_list(analysis.get("key_metrics"))

        return [
            {
                "type": "cover",
                "title": project_data.get("name") or "Startup Name",
                "subtitle": analysis.get("unique_value_proposition") or "Your tagline here",
                "content": project_data.get("tagline") or "",
            },
            {
                "type": "problem",
                "title": "The Problem",
                "content": analysis.get("problem_statement"),
                "bullets": _as_list(analysis.get("risks"))[:3],
            },
            {
                "type": "solution",
                "title": "Our Solution",
                "content": analysis.get("solution"),
                "bullets": _as_list(analysis.get("competitive_advantage")),
            },
            {
                "type": "market",
                "title": "Market Opportunity",
                "content": f"Target Market: {market.get('primary') or 'Enterprise & SMBs'}",
                "metrics": [
                    {"label": "TAM", "value": market.get("tam") or "$10B+"},
                    {"label": "SAM", "value": market.get("sam") or "$1B"},
                    {"label": "SOM", "value": market.get("som") or "$100M"},
                ],
            },
            {
                "type": "product",
                "title": "Product Overview",
                "content": project_data.get("description") or analysis.get("solution"),
                "features": _as_list(project_data.get("features")) or ["Feature 1", "Feature 2", "Feature 3"],
            },
            {
                "type": "business",
                "title": "Business Model",
                "content": f"Model: {business.get('type') or 'SaaS'}",
                "bullets": _as_list(business.get("revenue_streams")) or ["Subscriptions", "Enterprise deals"],
            },
            {
                "type": "traction",
                "title": "Traction & Metrics",
                "metrics": [{"label": m, "value": "-"} for m in key_metrics] if key_metrics else [
                    {"label": "Users", "value": "X"},
                    {"label": "Revenue", "value": "$Y"},
                    {"label": "Growth", "value": "Z%"},
                ],
            },
            {
                "type": "competition",
                "title": "Competitive Landscape",
                "content": "Our positioning in the market",
                "competitors": _as_records(analysis.get("competitors")),
            },
            {
                "type": "team",
                "title": "The Team",
                "content": "Our founding team brings expertise from leading companies",
                "team": _as_records(project_data.get("team")) or [
                    {"name": "Founder 1", "role": "CEO"},
                    {"name": "Founder 2", "role": "CTO"},
                ],
            },
            {
                "type": "financials",
                "title": "Financial Projections",
                "projections": projections,
            },
            {
                "type": "ask",
                "title": "The Ask",
                "amount": analysis.get("ask_amount") or "$1M Seed Round",
                "use_of_funds": _as_list(analysis.get("use_of_funds")),
            },
            {
                "type": "closing",
                "title": "Thank You",
                "content": project_data.get("contact_email") or "contact@company.com",
                "subtitle": project_data.get("website") or "www.company.com",
            },
        ]

    def create_pdf(self, slides: List[Dict[str, Any]]) -> bytes:
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
        pdf.setTitle("Pitch Deck")

        for number, slide in enumerate(slides, start=1):
            pdf.setFillColor(COLORS["background"])
            pdf.rect(0, 0, PAGE_WIDTH, PAGE_HEIGHT, stroke=0, fill=1)
            pdf.setFillColor(COLORS["primary"])
            pdf.rect(0, PAGE_HEIGHT - 8, PAGE_WIDTH, 8, stroke=0, fill=1)

            kind = slide.get("type")
            if kind == "cover":
                self._draw_cover(pdf, slide)
            elif kind == "ask":
                self._draw_ask(pdf, slide)
            elif kind in ("market", "traction", "financials"):
                self._draw_metrics(pdf, slide)
            else:
                self._draw_standard(pdf, slide)

            self._text(pdf, str(number), PAGE_WIDTH - 60, 30, REGULAR, 14, "gray")
            pdf.showPage()

        pdf.save()
        return buffer.getvalue()

    def _text(self, pdf, text, x, y, font, size, color):
        pdf.setFillColor(COLORS[color])
        pdf.setFont(font, size)
        pdf.drawString(x, y, _safe(text))

    def _draw_title(self, pdf, slide):
        self._text(pdf, slide.get("title", ""), 100, PAGE_HEIGHT - 120, BOLD, 48, "white")

    def _draw_cover(self, pdf, slide):
        self._text(pdf, str(slide.get("title", "")).upper(), 100, PAGE_HEIGHT / 2 + 60, BOLD, 72, "white")
        self._text(pdf, slide.get("subtitle", ""), 100, PAGE_HEIGHT / 2 - 20, REGULAR, 28, "primary")
        if slide.get("content"):
            self._text(pdf, slide["content"], 100, PAGE_HEIGHT / 2 - 80, REGULAR, 18, "gray")
        self._text(pdf, "GhostFounder", PAGE_WIDTH - 220, 50, BOLD, 20, "primary")

    def _draw_ask(self, pdf, slide):
        self._draw_title(pdf, slide)
        self._text(pdf, slide.get("amount", ""), PAGE_WIDTH / 2 - 200, PAGE_HEIGHT / 2 + 40, BOLD, 64, "gold")
        y = PAGE_HEIGHT / 2 - 60
        self._text(pdf, "Use of Funds:", 100, y, BOLD, 24, "white")
        y -= 50
        for item in slide.get("use_of_funds") or []:
            self._text(pdf, f"- {item}", 120, y, REGULAR, 20, "gray")
            y -= 35

    def _draw_metrics(self, pdf, slide):
        self._draw_title(pdf, slide)
        if slide.get("content"):
            self._text(pdf, slide["content"], 100, PAGE_HEIGHT - 180, REGULAR, 20, "gray")

        card_w, card_h, gap = 280, 150, 40
        start_y = PAGE_HEIGHT / 2 + 20
        for i, metric in enumerate(slide.get("metrics") or []):
            x = 100 + (card_w + gap) * (i % 3)
            y = start_y - (i // 3) * (card_h + 30)
            pdf.setFillColor(COLORS["card"])
            pdf.setStrokeColor(COLORS["primary"])
            pdf.rect(x, y - card_h, card_w, card_h, stroke=1, fill=1)
            self._text(pdf, metric.get("value", ""), x + 20, y - 60, BOLD, 36, "primary")
            self._text(pdf, metric.get("label", ""), x + 20, y - 110, REGULAR, 16, "gray")

        projections = slide.get("projections")
        if projections:
            y = PAGE_HEIGHT / 2 - 50
            self._text(pdf, "Revenue Projections:", 100, y, BOLD, 24, "white")
            y -= 50
            for i, year in enumerate(("year1", "year2", "year3"), start=1):
                p = projections.get(year)
                if isinstance(p, dict):
                    line = f"Year {i}: {p.get('revenue')} revenue, {p.get('users')} users"
                    self._text(pdf, line, 120, y, REGULAR, 18, "gray")
                    y -= 40

    def _draw_standard(self, pdf, slide):
        self._draw_title(pdf, slide)

        y = PAGE_HEIGHT - 200
        if slide.get("content"):
            for line in wrap_words(slide["content"], REGULAR, 22, PAGE_WIDTH - 200)[:5]:
                self._text(pdf, line, 100, y, REGULAR, 22, "gray")
                y -= 35
        if slide.get("subtitle"):
            self._text(pdf, slide["subtitle"], 100, y, REGULAR, 22, "primary")

        bullet_y = PAGE_HEIGHT / 2 + 50
        for bullet in slide.get("bullets") or []:
            self._text(pdf, f"> {bullet}", 120, bullet_y, REGULAR, 20, "secondary")
            bullet_y -= 45
        for feature in slide.get("features") or []:
            self._text(pdf, f"+ {feature}", 120, bullet_y, REGULAR, 20, "secondary")
            bullet_y -= 45

        team_x = 100
        for member in slide.get("team") or []:
            self._text(pdf, member.get("name", ""), team_x, PAGE_HEIGHT / 2 - 50, BOLD, 24, "white")
            self._text(pdf, member.get("role", ""), team_x, PAGE_HEIGHT / 2 - 85, REGULAR, 18, "primary")
            team_x += 300

        comp_y = PAGE_HEIGHT / 2
        for comp in slide.get("competitors") or []:
            line = f"{comp.get('name')}: {comp['weakness']}" if comp.get("weakness") else str(comp.get("name", ""))
            self._text(pdf, line, 120, comp_y, REGULAR, 18, "gray")
            comp_y -= 35

    def get_user_decks(self, firebase_uid: str) -> List[dict]:
        cursor = (
            db["pitchdeck"]
            .find({"firebase_uid": firebase_uid}, {"slides": 0})
            .sort("created_at", -1)
        )
        return [serialize_doc(d) for d in cursor]

    def get_pitch_deck(self, deck_id: str, firebase_uid: str) -> Optional[dict]:
        oid = to_object_id(deck_id)
        if oid is None:
            return None
        deck = db["pitchdeck"].find_one({"_id": oid, "firebase_uid": firebase_uid})
        return serialize_doc(deck) if deck else None


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "project"

