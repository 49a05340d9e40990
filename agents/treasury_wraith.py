"""
Treasury Wraith: AI CFO. Analyzes a period's revenue and expenses, publishes
a Google Sheet and emails the report.
"""
import os
import json
import random
import logging
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from agents.base import BaseAgent
from database import db, serialize_doc
from gemini import GEMINI_MODELS, extract_json
from schemas import FinancialReport

logger = logging.getLogger(__name__)

GOOGLE_SHEETS_CLIENT_EMAIL = os.getenv("GOOGLE_SHEETS_CLIENT_EMAIL")
GOOGLE_SHEETS_PRIVATE_KEY = os.getenv("GOOGLE_SHEETS_PRIVATE_KEY")
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

CFO_SYSTEM_PROMPT = """You are Treasury Wraith, an AI CFO agent that analyzes financial data and provides strategic insights.

Respond in JSON format:
{
  "summary": "Executive summary of financial health",
  "highlights": ["Key positive finding 1", "Key positive finding 2"],
  "concerns": ["Concern or risk 1", "Concern or risk 2"],
  "recommendations": ["Strategic recommendation 1", "Strategic recommendation 2"],
  "health_score": 75,
  "metrics": {
    "revenue_growth": "X%",
    "profit_margin": "X%",
    "burn_rate": "$X/month",
    "runway": "X months"
  }
}

Rules:
1. Be data-driven and specific with numbers
2. Provide actionable recommendations
3. Health score 0-100 based on overall financial health
4. Consider burn rate and runway carefully for startups"""

PERIOD_MONTHS = {
    "Q1": ["January", "February", "March"],
    "Q2": ["April", "May", "June"],
    "Q3": ["July", "August", "September"],
    "Q4": ["October", "November", "December"],
}
PERIOD_MONTHS["yearly"] = [m for q in ("Q1", "Q2", "Q3", "Q4") for m in PERIOD_MONTHS[q]]

EXPENSE_SPLIT = [("Salaries", 0.5), ("Infrastructure", 0.2), ("Marketing", 0.15), ("Other", 0.15)]

NO_SHEET = {"spreadsheet_id": None, "spreadsheet_url": None, "is_public": False}


def generate_sample_data(period: str = "Q1", rng: Optional[random.Random] = None) -> Dict[str, Any]:
    rng = rng or random.Random()
    months = PERIOD_MONTHS.get(period, PERIOD_MONTHS["Q1"])
    base_revenue = 10000 + rng.random() * 5000
    base_expense = 8000 + rng.random() * 3000

    revenue = [
        {"month": month, "amount": round(base_revenue * (1 + i * 0.1 + rng.random() * 0.2))}
        for i, month in enumerate(months)
    ]
    expenses = [
        {
            "month": month,
            "amount": round(base_expense * (1 + rng.random() * 0.15)),
            "categories": [{"name": name, "amount": round(base_expense * share)} for name, share in EXPENSE_SPLIT],
        }
        for month in months
    ]

    revenue_total = sum(r["amount"] for r in revenue)
    expense_total = sum(e["amount"] for e in expenses)
    return {
        "revenue": {"monthly": revenue, "total": revenue_total},
        "expenses": {"monthly": expenses, "total": expense_total},
        "net_profit": revenue_total - expense_total,
    }


def _total(section: Any) -> float:
    if not isinstance(section, dict):
        return 0
    if section.get("total"):
        return section["total"]
    return sum(m.get("amount", 0) for m in section.get("monthly") or [])


class TreasuryWraith(BaseAgent):
    def __init__(self):
        super().__init__("treasury-wraith", GEMINI_MODELS["CFO"])
        self.sheets = None
        self.drive = None

    def init_google_apis(self) -> None:
        if self.sheets is not None or not (GOOGLE_SHEETS_CLIENT_EMAIL and GOOGLE_SHEETS_PRIVATE_KEY):
            return
        creds = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": GOOGLE_SHEETS_CLIENT_EMAIL,
                "private_key": GOOGLE_SHEETS_PRIVATE_KEY.replace("\\n", "\n"),
                "token_uri": "https://oauth2.googleapis.com/token",
            },
            scopes=GOOGLE_SCOPES,
        )
        self.sheets = build("sheets", "v4", credentials=creds, cache_discovery=False)
        self.drive = build("drive", "v3", credentials=creds, cache_discovery=False)

    def execute(
        self,
        period: str,
        year: int,
        financial_data: Dict[str, Any],
        firebase_uid: str,
        email: Optional[str] = None,
        display_name: str = "",
    ) -> Dict[str, Any]:
        self.start_timer()
        user = self.get_or_create_user(firebase_uid, email, display_name)

        reports = db["financialreport"]
        key = {"firebase_uid": firebase_uid, "period": period, "year": year}
        doc = FinancialReport(
            user_id=str(user["_id"]), firebase_uid=firebase_uid, period=period, year=year,
            data=financial_data, status="processing",
        ).model_dump()
        now = datetime.now(timezone.utc)
        insert_only = {k: v for k, v in doc.items() if k not in ("data", "status")}
        insert_only["created_at"] = now
        reports.update_one(
            key,
            {"$set": {"data": financial_data, "status": "processing", "updated_at": now},
             "$setOnInsert": {k: v for k, v in insert_only.items() if k not in key}},
            upsert=True,
        )

        try:
            prompt = (
                f"{CFO_SYSTEM_PROMPT}\n\n"
                f"Financial Data for {period} {year}:\n"
                f"{json.dumps(financial_data, indent=2, default=str)}\n\n"
                "Analyze this financial data and provide your assessment."
            )
            text, usage = self.generate(prompt, temperature=0.4, max_output_tokens=2048)
            analysis = self.parse_analysis(text)

            sheet = self.create_google_sheet(period, year, financial_data, analysis)

            reports.update_one(key, {"$set": {
                "analysis": analysis,
                "google_sheet": sheet,
                "token_usage": usage,
                "status": "completed",
                "updated_at": datetime.now(timezone.utc),
            }})
            self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])

            self.notify(firebase_uid, {
                "email": {
                    "subject": f"📊 Financial Report: {period} {year} Ready",
                    "html": self.generate_email_html(period, year, analysis, sheet),
                },
            })
        except Exception:
            reports.update_one(key, {"$set": {"status": "failed"}})
            raise

        report = reports.find_one(key)
        return {
            "success": True,
            "report_id": str(report["_id"]),
            "analysis": analysis,
            "google_sheet_url": sheet.get("spreadsheet_url"),
            "execution_time": self.get_execution_time(),
            "token_usage": usage,
        }

    def parse_analysis(self, text: str) -> Dict[str, Any]:
        parsed = extract_json(text)
        if parsed is None:
            logger.warning("[%s] Could not parse analysis, using fallback", self.agent_name)
            return {"summary": text, "highlights": [], "concerns": [], "recommendations": [], "health_score": 50}
        return parsed

    def create_google_sheet(self, period: str, year: int, data: Dict[str, Any], analysis: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self.init_google_apis()
            if self.sheets is None:
                return dict(NO_SHEET)

            spreadsheet = self.sheets.spreadsheets().create(body={
                "properties": {"title": f"GhostFounder - {period} {year} Financial Report"},
                "sheets": [{"properties": {"title": t}} for t in ("Summary", "Revenue", "Expenses", "Analysis")],
            }).execute()
            spreadsheet_id = spreadsheet["spreadsheetId"]

            revenue_total = _total(data.get("revenue"))
            expense_total = _total(data.get("expenses"))
            metrics = analysis.get("metrics") or {}
            tabs = {
                "Summary!A1": [
                    ["GhostFounder Financial Report"],
                    [f"Period: {period} {year}"],
                    [f"Generated: {datetime.now(timezone.utc).date().isoformat()}"],
                    [],
                    ["Metric", "Value"],
                    ["Total Revenue", f"${revenue_total}"],
                    ["Total Expenses", f"${expense_total}"],
                    ["Net Profit", f"${revenue_total - expense_total}"],
                    ["Burn Rate", metrics.get("burn_rate", "N/A")],
                    ["Runway", metrics.get("runway", "N/A")],
                    ["Health Score", f"{analysis.get('health_score', 50)}/100"],
                ],
                "Revenue!A1": [["Month", "Amount"]] + [
                    [m.get("month"), m.get("amount")] for m in (data.get("revenue") or {}).get("monthly") or []
                ],
                "Expenses!A1": [["Month", "Amount"]] + [
                    [m.get("month"), m.get("amount")] for m in (data.get("expenses") or {}).get("monthly") or []
                ],
                "Analysis!A1": (
                    [["AI Analysis Summary"], [analysis.get("summary", "")], [], ["Key Highlights"]]
                    + [[h] for h in analysis.get("highlights") or []]
                    + [[], ["Concerns"]]
                    + [[c] for c in analysis.get("concerns") or []]
                    + [[], ["Recommendations"]]
                    + [[r] for r in analysis.get("recommendations") or []]
                ),
            }
            for cell_range, values in tabs.items():
                self.sheets.spreadsheets().values().update(
                    spreadsheetId=spreadsheet_id, range=cell_range,
                    valueInputOption="USER_ENTERED", body={"values": values},
                ).execute()

            self.drive.permissions().create(fileId=spreadsheet_id, body={"role": "reader", "type": "anyone"}).execute()

            return {
                "spreadsheet_id": spreadsheet_id,
                "spreadsheet_url": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
                "is_public": True,
            }
        except Exception as e:
            logger.error("Google Sheets error: %s", e)
            return dict(NO_SHEET)

    def generate_email_html(self, period: str, year: int, analysis: Dict[str, Any], sheet: Dict[str, Any]) -> str:
        score = analysis.get("health_score", 50)
        try:
            score_value = float(score)
        except (TypeError, ValueError):
            score_value = 50
        color = "#00ff88" if score_value >= 70 else "#ffd700" if score_value >= 50 else "#ff3366"

        highlights = "".join(f"<li>{escape(str(h))}</li>" for h in analysis.get("highlights") or [])
        concerns = "".join(f"<li>{escape(str(c))}</li>" for c in analysis.get("concerns") or [])
        button = ""
        if sheet.get("spreadsheet_url"):
            button = (
                f'<div style="text-align: center; margin: 24px 0;"><a href="{sheet["spreadsheet_url"]}" '
                'style="background: #ffd700; color: #0a0a0f; padding: 12px 24px; border-radius: 8px; '
                'text-decoration: none; font-weight: bold;">View Full Report in Google Sheets</a></div>'
            )

        return f"""<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, BlinkMacSystemFont, sans-serif; background: #0a0a0f; color: #e8e8ed; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background: #12121a; border-radius: 12px; padding: 24px;">
    <div style="text-align: center; color: #ffd700; font-size: 24px; font-weight: bold;">💰 Treasury Wraith</div>
    <h2 style="color: #ffd700;">{escape(period)} {year} Financial Report</h2>
    <div style="text-align: center; margin: 24px 0; font-size: 24px; font-weight: bold; color: {color};">Health Score: {score}/100</div>
    <h2 style="color: #ffd700;">📋 Summary</h2>
    <p>{escape(str(analysis.get('summary', '')))}</p>
    {f'<h2 style="color: #ffd700;">✅ Highlights</h2><ul>{highlights}</ul>' if highlights else ''}
    {f'<h2 style="color: #ffd700;">⚠️ Concerns</h2><ul>{concerns}</ul>' if concerns else ''}
    {button}
    <div style="text-align: center; margin-top: 24px; color: #9ca3af; font-size: 12px;">Powered by GhostFounder</div>
  </div>
</body>
</html>"""

    def get_report_history(self, firebase_uid: str, limit: int = 10) -> List[dict]:
        cursor = db["financialreport"].find({"firebase_uid": firebase_uid}).sort("created_at", -1).limit(limit)
        return [serialize_doc(r) for r in cursor]

    def generate_sample_data(self, period: str = "Q1", rng: Optional[random.Random] = None) -> Dict[str, Any]:
        return generate_sample_data(period, rng)
