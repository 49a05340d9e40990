import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, HTTPException, UploadFile, File, Form, Query
from fastapi.responses import Response
from pydantic import BaseModel

from agents import (
    PhantomCodeGuardian,
    DataSpecter,
    TreasuryWraith,
    EquityPhantom,
    PitchPoltergeist,
    ShadowScout,
    NewsBanshee,
    InvestorGhoul,
)
from agents.treasury_wraith import PERIOD_MONTHS
from storage import load_from_storage, extract_pdf_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])

MAX_DOCUMENT_SIZE = 20 * 1024 * 1024  # 20 MB


def _require_user(firebase_uid: Optional[str]) -> str:
    if not firebase_uid:
        raise HTTPException(status_code=400, detail="firebase_uid is required")
    return firebase_uid


def _run(label: str, fn, *args, **kwargs):
    """Call an agent, turning anything it raises into a 500 with the message as detail."""
    try:
        return fn(*args, **kwargs)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("%s error: %s", label, e)
        raise HTTPException(status_code=500, detail=f"{label} failed: {str(e)}")


# ----------------------
# Phantom Code Guardian
# ----------------------
class CodeReviewRequest(BaseModel):
    repo_name: Optional[str] = None
    pr_number: Optional[int] = None
    files: Optional[List[Dict[str, Any]]] = None
    firebase_uid: Optional[str] = None
    pr_title: str = ""
    pr_author: str = ""
    pr_url: str = ""
    email: Optional[str] = None
    display_name: str = ""


@router.get("/code-guardian")
def get_code_reviews(firebase_uid: Optional[str] = None, review_id: Optional[str] = None, limit: int = 10):
    _require_user(firebase_uid)
    agent = PhantomCodeGuardian()
    if review_id:
        review = _run("Code review lookup", agent.get_review, review_id, firebase_uid)
        if not review:
            raise HTTPException(status_code=404, detail="Review not found")
        return {"success": True, "review": review}
    return {"success": True, "reviews": _run("Code review history", agent.get_review_history, firebase_uid, limit)}


@router.post("/code-guardian")
def run_code_review(req: CodeReviewRequest):
    if not req.repo_name or not req.pr_number or req.files is None or not req.firebase_uid:
        raise HTTPException(status_code=400, detail="Missing required fields: repo_name, pr_number, files, firebase_uid")
    return _run(
        "Code review",
        PhantomCodeGuardian().execute,
        repo_name=req.repo_name,
        pr_number=req.pr_number,
        files=req.files,
        firebase_uid=req.firebase_uid,
        pr_title=req.pr_title,
        pr_author=req.pr_author,
        pr_url=req.pr_url,
        email=req.email,
        display_name=req.display_name,
    )


# ----------------------
# Data Specter
# ----------------------
class DataQuestion(BaseModel):
    question: Optional[str] = None
    firebase_uid: Optional[str] = None
    session_id: Optional[str] = None
    email: Optional[str] = None
    display_name: str = ""


@router.get("/data-specter")
def get_data_specter(firebase_uid: Optional[str] = None, session_id: Optional[str] = None,
                     suggestions: bool = False):
    agent = DataSpecter()
    if suggestions:
        return {"success": True, "suggestions": agent.get_suggested_queries()}
    _require_user(firebase_uid)
    if session_id:
        history = _run("Chat history", agent.get_chat_history, session_id, firebase_uid)
        if not history:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"success": True, "history": history}
    return {"success": True, "sessions": _run("Chat sessions", agent.get_user_sessions, firebase_uid)}


@router.post("/data-specter")
def ask_data_specter(req: DataQuestion):
    if not req.question or not req.firebase_uid:
        raise HTTPException(status_code=400, detail="Missing required fields: question, firebase_uid")
    return _run(
        "Data query",
        DataSpecter().execute,
        question=req.question,
        firebase_uid=req.firebase_uid,
        session_id=req.session_id,
        email=req.email,
        display_name=req.display_name,
    )


# ----------------------
# Treasury Wraith
# ----------------------
class FinancialRequest(BaseModel):
    period: Optional[str] = None
    year: Optional[int] = None
    financial_data: Optional[Dict[str, Any]] = None
    firebase_uid: Optional[str] = None
    email: Optional[str] = None
    display_name: str = ""


@router.get("/treasury-wraith")
def get_treasury(firebase_uid: Optional[str] = None, sample_data: bool = False, period: str = "Q1"):
    agent = TreasuryWraith()
    if sample_data:
        return {"success": True, "sample_data": agent.generate_sample_data(period)}
    _require_user(firebase_uid)
    return {"success": True, "reports": _run("Report history", agent.get_report_history, firebase_uid)}


@router.post("/treasury-wraith")
def run_treasury(req: FinancialRequest):
    if not req.period or not req.year or not req.financial_data or not req.firebase_uid:
        raise HTTPException(status_code=400, detail="Missing required fields: period, year, financial_data, firebase_uid")
    if req.period not in PERIOD_MONTHS:
        raise HTTPException(status_code=400, detail=f"Invalid period: {req.period}")
    return _run(
        "Financial report",
        TreasuryWraith().execute,
        period=req.period,
        year=req.year,
        financial_data=req.financial_data,
        firebase_uid=req.firebase_uid,
        email=req.email,
        display_name=req.display_name,
    )


# ----------------------
# Equity Phantom
# ----------------------
def _equity_result(result: Dict[str, Any]):
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error") or "Equity operation failed")
    return {"success": True, "data": result.get("data")}


@router.get("/equity-phantom")
def get_equity(action: str = "getAllocations", token_address: Optional[str] = None,
               wallet_address: Optional[str] = None, firebase_uid: Optional[str] = None):
    agent = EquityPhantom()
    params = {"token_address": token_address, "wallet_address": wallet_address}

    if action in ("getBalance", "getTransactions") and not (token_address and wallet_address):
        raise HTTPException(status_code=400, detail="Token address and wallet address are required")
    if action == "getTokenInfo" and not token_address:
        raise HTTPException(status_code=400, detail="Token address is required")
    if action == "getWalletBalance" and not wallet_address:
        raise HTTPException(status_code=400, detail="Wallet address is required")
    if action not in ("getBalance", "getTransactions", "getTokenInfo", "getWalletBalance", "getAllocations"):
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")

    return _equity_result(_run("Equity lookup", agent.execute, action, params, firebase_uid))


@router.post("/equity-phantom")
def run_equity(body: Dict[str, Any]):
    params = dict(body)
    action = params.pop("action", None)
    firebase_uid = params.pop("firebase_uid", None)

    if action == "transfer":
        if not params.get("token_address") or not params.get("to_address") or not params.get("amount"):
            raise HTTPException(status_code=400, detail="Token address, recipient address, and amount are required")
        if not params.get("private_key"):
            raise HTTPException(status_code=400, detail="Transaction signing requires wallet connection")
    elif action == "createVestingSchedule":
        if not params.get("beneficiary") or not params.get("total_amount") or not params.get("start_date"):
            raise HTTPException(status_code=400, detail="Beneficiary, total amount, and start date are required")
        params = {
            "beneficiary": params["beneficiary"],
            "total_amount": params["total_amount"],
            "start_date": params["start_date"],
            "cliff_months": params.get("cliff_months") or 12,
            "vesting_months": params.get("vesting_months") or 48,
            "token_address": params.get("token_address"),
        }
    elif action == "analyzeEquity":
        if not isinstance(params.get("holders"), list):
            raise HTTPException(status_code=400, detail="Equity holders array is required")
    elif action == "setAllocations":
        _require_user(firebase_uid)
        if not isinstance(params.get("holders"), list):
            raise HTTPException(status_code=400, detail="Equity holders array is required")
    elif action != "checkVesting":
        raise HTTPException(status_code=400, detail=f"Unknown action: {action}")

    return _equity_result(_run("Equity operation", EquityPhantom().execute, action, params, firebase_uid))


# ----------------------
# Investor Ghoul
# ----------------------
class RoastRequest(BaseModel):
    idea: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    roast_mode: str = "standard"
    firebase_uid: Optional[str] = None


class QuickPitch(BaseModel):
    pitch: Optional[str] = None
    firebase_uid: Optional[str] = None


@router.post("/investor-ghoul")
def roast_idea(req: RoastRequest):
    _require_user(req.firebase_uid)
    if not req.idea or len(req.idea.strip()) < 10:
        raise HTTPException(status_code=400, detail="Please describe your idea (at least 10 characters)")
    result = _run("Roast", InvestorGhoul().roast_idea, req.firebase_uid, req.idea, req.context, req.roast_mode)
    return {"success": True, "message": "💀 The Ghoul has spoken!", "data": result}


@router.post("/investor-ghoul/quick")
def quick_feedback(req: QuickPitch):
    _require_user(req.firebase_uid)
    if not req.pitch:
        raise HTTPException(status_code=400, detail="pitch is required")
    return {"success": True, "data": _run("Quick feedback", InvestorGhoul().quick_feedback, req.pitch, req.firebase_uid)}


@router.get("/investor-ghoul")
def get_investor_ghoul(action: str = "quotes", firebase_uid: Optional[str] = None, limit: int = 10):
    _require_user(firebase_uid)
    agent = InvestorGhoul()
    if action == "motivation":
        return {"success": True, "data": _run("Motivation", agent.generate_random_message, firebase_uid=firebase_uid)}
    if action == "quotes":
        return {"success": True, "data": agent.get_ghoul_quotes()}
    if action == "history":
        return {"success": True, "data": _run("Roast history", agent.get_roast_history, firebase_uid, limit)}
    raise HTTPException(status_code=400, detail=f"Unknown action: {action}")


# ----------------------
# News Banshee
# ----------------------
class NewsRequest(BaseModel):
    firebase_uid: Optional[str] = None
    keywords: List[str] = []
    categories: List[str] = ["startups", "technology", "funding"]


@router.post("/news-banshee")
def fetch_news(req: NewsRequest):
    _require_user(req.firebase_uid)
    result = _run("News fetch", NewsBanshee().fetch_daily_news, req.firebase_uid, req.keywords, req.categories)
    return {"success": True, "message": "📰 News Banshee has gathered today's intelligence!", "data": result}


@router.get("/news-banshee")
def get_news(firebase_uid: Optional[str] = None, category: Optional[str] = None, limit: int = 10):
    _require_user(firebase_uid)
    return {"success": True, "data": _run("News fetch", NewsBanshee().get_dashboard_news, firebase_uid, category, limit)}


# ----------------------
# Pitch Poltergeist
# ----------------------
class PitchRequest(BaseModel):
    firebase_uid: Optional[str] = None
    project_data: Dict[str, Any] = {}
    repository_url: Optional[str] = None


@router.post("/pitch-poltergeist")
def generate_pitch_deck(req: PitchRequest):
    _require_user(req.firebase_uid)
    result = _run("Pitch deck", PitchPoltergeist().generate_pitch_deck, req.firebase_uid, req.project_data,
                  req.repository_url)
    return {"success": True, "message": "🎭 Pitch Poltergeist has conjured your pitch deck!", "data": result}


@router.post("/pitch-poltergeist/from-document")
def pitch_deck_from_document(
    firebase_uid: Optional[str] = Form(None),
    project_name: Optional[str] = Form(None),
    uploaded: UploadFile = File(...),
):
    _require_user(firebase_uid)
    if uploaded.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")
    content = uploaded.file.read()
    if len(content) > MAX_DOCUMENT_SIZE:
        raise HTTPException(status_code=400, detail="File exceeds 20MB limit")

    text = extract_pdf_text(content)
    if not text.strip():
        raise HTTPException(status_code=400, detail="No readable text found in document")

    name = project_name or (uploaded.filename or "Untitled Project").rsplit(".", 1)[0]
    project_data = {"name": name, "description": text[:4000]}
    result = _run("Pitch deck", PitchPoltergeist().generate_pitch_deck, firebase_uid, project_data)
    return {"success": True, "message": "🎭 Pitch Poltergeist has conjured your pitch deck!", "data": result}


@router.get("/pitch-poltergeist")
def get_pitch_decks(firebase_uid: Optional[str] = None, deck_id: Optional[str] = None):
    _require_user(firebase_uid)
    agent = PitchPoltergeist()
    if deck_id:
        deck = _run("Pitch deck lookup", agent.get_pitch_deck, deck_id, firebase_uid)
        if not deck:
            raise HTTPException(status_code=404, detail="Pitch deck not found")
        return {"success": True, "data": deck}
    return {"success": True, "data": _run("Pitch deck history", agent.get_user_decks, firebase_uid)}


def _pdf_response(doc: Optional[dict], label: str, filename: str) -> Response:
    if not doc or not doc.get("storage_path"):
        raise HTTPException(status_code=404, detail=f"{label} not found")
    try:
        content = load_from_storage(doc["storage_path"])
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"{label} file not found")
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/pitch-poltergeist/{deck_id}/pdf")
def download_pitch_deck(deck_id: str, firebase_uid: Optional[str] = Query(None)):
    _require_user(firebase_uid)
    deck = _run("Pitch deck lookup", PitchPoltergeist().get_pitch_deck, deck_id, firebase_uid)
    return _pdf_response(deck, "Pitch deck", "pitch-deck.pdf")


# ----------------------
# Shadow Scout
# ----------------------
class SpyRequest(BaseModel):
    firebase_uid: Optional[str] = None
    project_name: Optional[str] = None
    project_description: Optional[str] = None
    industry: str = "Technology"
    competitors: List[Dict[str, Any]] = []


@router.post("/shadow-scout")
def generate_spy_report(req: SpyRequest):
    _require_user(req.firebase_uid)
    if not req.project_description:
        raise HTTPException(status_code=400, detail="Project description is required")
    project_data = {
        "name": req.project_name or "Your Startup",
        "description": req.project_description,
        "industry": req.industry or "Technology",
    }
    result = _run("Spy report", ShadowScout().generate_weekly_report, req.firebase_uid, project_data, req.competitors)
    return {"success": True, "message": "👁️ Shadow Scout has compiled your intelligence report!", "data": result}


@router.get("/shadow-scout")
def get_spy_reports(firebase_uid: Optional[str] = None, report_id: Optional[str] = None):
    _require_user(firebase_uid)
    agent = ShadowScout()
    if report_id:
        report = _run("Spy report lookup", agent.get_report, report_id, firebase_uid)
        if not report:
            raise HTTPException(status_code=404, detail="Spy report not found")
        return {"success": True, "data": report}
    return {"success": True, "data": _run("Spy report history", agent.get_user_reports, firebase_uid)}


@router.get("/shadow-scout/{report_id}/pdf")
def download_spy_report(report_id: str, firebase_uid: Optional[str] = Query(None)):
    _require_user(firebase_uid)
    report = _run("Spy report lookup", ShadowScout().get_report, report_id, firebase_uid)
    return _pdf_response(report, "Spy report", "shadow-scout-report.pdf")
