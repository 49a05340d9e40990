import random
from unittest.mock import MagicMock

from agents import TreasuryWraith
from agents.treasury_wraith import generate_sample_data, NO_SHEET

ANALYSIS = {
    "summary": "Healthy quarter.",
    "metrics": {"burn_rate": "$9K/mo", "runway": "14 months"},
    "highlights": ["Revenue up 20%"],
    "concerns": ["Marketing spend"],
    "recommendations": ["Raise prices"],
    "health_score": 78,
}


def test_sample_data_is_consistent():
    data = generate_sample_data("Q2", random.Random(7))
    months = [m["month"] for m in data["revenue"]["monthly"]]
    assert months == ["April", "May", "June"]
    assert data["revenue"]["total"] == sum(m["amount"] for m in data["revenue"]["monthly"])
    assert data["net_profit"] == data["revenue"]["total"] - data["expenses"]["total"]
    categories = data["expenses"]["monthly"][0]["categories"]
    assert [c["name"] for c in categories] == ["Salaries", "Infrastructure", "Marketing", "Other"]


def test_sample_data_yearly_and_revenue_growth():
    data = generate_sample_data("yearly", random.Random(1))
    assert len(data["revenue"]["monthly"]) == 12
    # later months carry a growth factor, so they never dip below base revenue
    assert all(m["amount"] >= 10000 for m in data["revenue"]["monthly"])


def test_parse_analysis_fallback():
    parsed = TreasuryWraith().parse_analysis("The numbers look fine.")
    assert parsed["health_score"] == 50
    assert parsed["summary"] == "The numbers look fine."
    assert parsed["recommendations"] == []


def test_sheet_skipped_when_unconfigured():
    assert TreasuryWraith().create_google_sheet("Q1", 2025, {}, ANALYSIS) == NO_SHEET


def test_sheet_written_through_google_api():
    agent = TreasuryWraith()
    agent.sheets = MagicMock()
    agent.drive = MagicMock()
    agent.sheets.spreadsheets.return_value.create.return_value.execute.return_value = {"spreadsheetId": "sheet-1"}

    sheet = agent.create_google_sheet("Q1", 2025, generate_sample_data("Q1", random.Random(3)), ANALYSIS)

    assert sheet == {
        "spreadsheet_id": "sheet-1",
        "spreadsheet_url": "https://docs.google.com/spreadsheets/d/sheet-1",
        "is_public": True,
    }
    updates = agent.sheets.spreadsheets.return_value.values.return_value.update.call_args_list
    assert [c.kwargs["range"] for c in updates] == ["Summary!A1", "Revenue!A1", "Expenses!A1", "Analysis!A1"]
    agent.drive.permissions.return_value.create.assert_called_once_with(
        fileId="sheet-1", body={"role": "reader", "type": "anyone"}
    )


def test_execute_upserts_one_report_per_period(clean_db, llm, user):
    data = generate_sample_data("Q1", random.Random(5))
    llm.queue(ANALYSIS, {**ANALYSIS, "health_score": 80})
    agent = TreasuryWraith()

    first = agent.execute("Q1", 2025, data, "uid-1")
    second = agent.execute("Q1", 2025, data, "uid-1")

    assert first["report_id"] == second["report_id"]
    assert clean_db["financialreport"].count_documents({}) == 1
    report = clean_db["financialreport"].find_one({})
    assert report["status"] == "completed"
    assert report["analysis"]["health_score"] == 80
    assert second["google_sheet_url"] is None
    assert llm.calls[0]["options"] == {"temperature": 0.4, "max_output_tokens": 2048}


def test_routes(client, llm, user):
    sample = client.get("/api/agents/treasury-wraith", params={"sample_data": "true", "period": "Q3"}).json()
    assert sample["sample_data"]["revenue"]["monthly"][0]["month"] == "July"

    assert client.get("/api/agents/treasury-wraith").status_code == 400
    bad_period = client.post("/api/agents/treasury-wraith", json={
        "period": "Q5", "year": 2025, "financial_data": {"revenue": {}}, "firebase_uid": "uid-1",
    })
    assert bad_period.status_code == 400

    llm.queue(ANALYSIS)
    resp = client.post("/api/agents/treasury-wraith", json={
        "period": "Q1", "year": 2025, "financial_data": sample["sample_data"], "firebase_uid": "uid-1",
    })
    assert resp.status_code == 200
    assert resp.json()["analysis"]["health_score"] == 78

    reports = client.get("/api/agents/treasury-wraith", params={"firebase_uid": "uid-1"}).json()["reports"]
    assert len(reports) == 1
