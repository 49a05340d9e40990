import pytest

from agents import PhantomCodeGuardian
from agents.code_guardian import is_critical, critical_count, format_review_comment, review_event

FILES = [{"path": "app/auth.py", "additions": 12, "deletions": 3, "patch": "+password = request.args['pw']"}]

ANALYSIS = {
    "summary": "Adds login handling.",
    "overall_score": 41,
    "functions": [{"name": "login", "file": "app/auth.py", "purpose": "Log in", "complexity": "low"}],
    "bugs": [{"file": "app/auth.py", "line": 4, "severity": "critical", "description": "Plain text password",
              "suggestion": "Hash it"}],
    "security_issues": [],
    "code_smells": [],
    "suggestions": [{"priority": "high", "description": "Add rate limiting"}],
}


def test_parse_analysis_falls_back_on_plain_text():
    agent = PhantomCodeGuardian()
    parsed = agent.parse_analysis("x" * 800)
    assert parsed["overall_score"] == 50
    assert parsed["summary"] == "x" * 500
    for name in ("functions", "bugs", "security_issues", "code_smells", "suggestions"):
        assert parsed[name] == []


def test_critical_detection():
    assert is_critical(ANALYSIS)
    assert critical_count(ANALYSIS) == 1
    high_security = {"bugs": [], "security_issues": [{"severity": "high"}]}
    assert is_critical(high_security)
    assert not is_critical({"bugs": [{"severity": "medium"}], "security_issues": [{"severity": "low"}]})


def test_review_comment_and_event():
    review = {"analysis": ANALYSIS}
    body = format_review_comment(review)
    assert "**Score:** 41/100" in body
    assert "`app/auth.py:4`" in body
    assert "Add rate limiting" in body
    assert review_event(review) == "REQUEST_CHANGES"
    assert review_event({"analysis": {"bugs": []}}) == "COMMENT"


def test_execute_stores_review_and_logs_usage(clean_db, llm, user):
    llm.queue(ANALYSIS)
    result = PhantomCodeGuardian().execute("acme/api", 7, FILES, "uid-1", pr_title="Login")

    assert result["success"] is True
    review = result["review"]
    assert review["status"] == "completed"
    assert review["analysis"]["overall_score"] == 41
    assert review["token_usage"]["total_tokens"] == 15
    assert review["notifications"]["email_sent"] is True
    assert review["notifications"]["whatsapp_sent"] is True
    assert llm.calls[0]["options"] == {"temperature": 0.3, "max_output_tokens": 4096}
    assert "app/auth.py" in llm.calls[0]["prompt"]

    stored_user = clean_db["user"].find_one({"firebase_uid": "uid-1"})
    assert stored_user["token_usage"][0]["agent"] == "phantom-code-guardian"
    assert stored_user["token_usage"][0]["tokens"] == 15


def test_execute_reuses_review_for_same_pr(clean_db, llm, user):
    llm.queue(ANALYSIS, {**ANALYSIS, "overall_score": 90, "bugs": []})
    agent = PhantomCodeGuardian()
    agent.execute("acme/api", 7, FILES, "uid-1")
    second = agent.execute("acme/api", 7, FILES, "uid-1")

    assert clean_db["codereview"].count_documents({}) == 1
    assert second["review"]["analysis"]["overall_score"] == 90


def test_execute_marks_review_failed(clean_db, llm, user):
    llm.queue(ValueError("model exploded"))
    with pytest.raises(ValueError):
        PhantomCodeGuardian().execute("acme/api", 8, FILES, "uid-1")

    review = clean_db["codereview"].find_one({"pr_number": 8})
    assert review["status"] == "failed"
    assert review["error_message"] == "model exploded"


def test_route_requires_fields(client):
    resp = client.post("/api/agents/code-guardian", json={"repo_name": "acme/api"})
    assert resp.status_code == 400
    assert client.get("/api/agents/code-guardian").status_code == 400


def test_route_runs_review_and_lists_history(client, llm, user):
    llm.queue(ANALYSIS)
    resp = client.post("/api/agents/code-guardian", json={
        "repo_name": "acme/api", "pr_number": 3, "files": FILES, "firebase_uid": "uid-1",
    })
    assert resp.status_code == 200
    review_id = resp.json()["review"]["_id"]

    history = client.get("/api/agents/code-guardian", params={"firebase_uid": "uid-1"}).json()
    assert [r["_id"] for r in history["reviews"]] == [review_id]

    one = client.get("/api/agents/code-guardian", params={"review_id": review_id, "firebase_uid": "uid-1"})
    assert one.json()["review"]["pr_number"] == 3

    assert PhantomCodeGuardian().get_review(review_id, "uid-2") is None
    assert client.get("/api/agents/code-guardian", params={"review_id": review_id}).status_code == 400
    other = client.get("/api/agents/code-guardian", params={"review_id": review_id, "firebase_uid": "uid-2"})
    assert other.status_code == 404


def test_route_unknown_review_is_404(client):
    resp = client.get("/api/agents/code-guardian", params={"review_id": "64b7f0c2a1b2c3d4e5f60718", "firebase_uid": "uid-1"})
    assert resp.status_code == 404


def test_route_agent_failure_is_500(client, llm, user):
    llm.queue(ValueError("model exploded"))
    resp = client.post("/api/agents/code-guardian", json={
        "repo_name": "acme/api", "pr_number": 4, "files": FILES, "firebase_uid": "uid-1",
    })
    assert resp.status_code == 500
    assert "model exploded" in resp.json()["detail"]
