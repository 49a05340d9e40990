import pytest

from agents import DataSpecter
from agents.data_specter import sanitize_pipeline, MAX_RESULTS


def test_sanitize_scopes_and_bounds_pipeline():
    pipeline = [
        {"$match": {"firebase_uid": "someone-else", "status": "completed"}},
        {"$out": "stolen"},
        {"$lookup": {"from": "user"}},
        {"$group": {"_id": None, "n": {"$sum": 1}}},
        "garbage",
    ]
    safe = sanitize_pipeline(pipeline, "uid-1")

    assert safe[0] == {"$match": {"firebase_uid": "uid-1"}}
    assert safe[1] == {"$match": {"firebase_uid": "uid-1", "status": "completed"}}
    assert {"$out": "stolen"} not in safe
    assert all("$lookup" not in stage for stage in safe)
    assert safe[-1] == {"$limit": MAX_RESULTS}


def test_sanitize_drops_facet_subpipelines():
    facet = {"$facet": {"all": [{"$match": {}}], "peek": [{"$lookup": {"from": "user", "pipeline": [], "as": "u"}}]}}
    safe = sanitize_pipeline([facet], "uid-1")
    assert all("$facet" not in stage for stage in safe)


def test_execute_query_stays_inside_own_documents(clean_db):
    clean_db["codereview"].insert_many([
        {"firebase_uid": "uid-1", "repo_name": "acme/api"},
        {"firebase_uid": "uid-2", "repo_name": "victim/secret"},
    ])
    pipeline = [
        {"$facet": {"everything": [{"$match": {"firebase_uid": "uid-2"}}]}},
        {"$unionWith": {"coll": "codereview"}},
        {"$project": {"_id": 0, "repo_name": 1}},
    ]
    rows = DataSpecter().execute_query("codereviews", pipeline, "uid-1")
    assert rows == [{"repo_name": "acme/api"}]


def test_sanitize_keeps_existing_limit():
    safe = sanitize_pipeline([{"$limit": 5}], "uid-1")
    assert safe == [{"$match": {"firebase_uid": "uid-1"}}, {"$limit": 5}]


def test_execute_query_rejects_unknown_collection(clean_db):
    with pytest.raises(ValueError, match="not accessible"):
        DataSpecter().execute_query("errorlog", [], "uid-1")


def test_execute_answers_from_own_data_only(clean_db, llm, user):
    clean_db["codereview"].insert_many([
        {"firebase_uid": "uid-1", "repo_name": "acme/api", "pr_number": 1},
        {"firebase_uid": "uid-1", "repo_name": "acme/web", "pr_number": 2},
        {"firebase_uid": "uid-2", "repo_name": "evil/corp", "pr_number": 3},
    ])
    llm.queue(
        {
            "collection": "codereviews",
            "pipeline": [{"$match": {}}, {"$project": {"_id": 0, "repo_name": 1}}],
            "explanation": "Lists your reviews",
            "visualization": "table",
        },
        "You have two reviews.",
    )

    result = DataSpecter().execute("Which repos were reviewed?", "uid-1")

    assert result["response"] == "You have two reviews."
    assert sorted(r["repo_name"] for r in result["results"]) == ["acme/api", "acme/web"]
    assert result["token_usage"]["total_tokens"] == 30
    assert llm.calls[0]["options"] == {"temperature": 0.2, "max_output_tokens": 2048}

    session = DataSpecter().get_chat_history(result["session_id"], "uid-1")
    assert [m["role"] for m in session["messages"]] == ["user", "assistant"]
    assert session["total_tokens"] == 30

    stored_user = clean_db["user"].find_one({"firebase_uid": "uid-1"})
    assert sum(e["tokens"] for e in stored_user["token_usage"]) == 30


def test_execute_reports_query_errors_without_second_call(clean_db, llm, user):
    llm.queue({"collection": "errorlog", "pipeline": [{"$match": {}}], "explanation": "", "visualization": "none"})

    result = DataSpecter().execute("Show me errors", "uid-1")

    assert "not accessible" in result["response"]
    assert len(llm.calls) == 1
    assert result["token_usage"]["total_tokens"] == 15


def test_execute_continues_existing_session(clean_db, llm, user):
    llm.queue("no plan", "no plan")
    agent = DataSpecter()
    first = agent.execute("hello?", "uid-1")
    second = agent.execute("still there?", "uid-1", session_id=first["session_id"])

    assert second["session_id"] == first["session_id"]
    assert len(agent.get_chat_history(first["session_id"], "uid-1")["messages"]) == 4
    assert len(agent.get_user_sessions("uid-1")) == 1


def test_routes(client, llm, user):
    assert len(client.get("/api/agents/data-specter", params={"suggestions": "true"}).json()["suggestions"]) == 8
    assert client.get("/api/agents/data-specter").status_code == 400
    assert client.post("/api/agents/data-specter", json={"question": "hi"}).status_code == 400

    llm.queue("no plan")
    resp = client.post("/api/agents/data-specter", json={"question": "hi", "firebase_uid": "uid-1"})
    assert resp.status_code == 200
    sessions = client.get("/api/agents/data-specter", params={"firebase_uid": "uid-1"}).json()["sessions"]
    assert sessions[0]["_id"] == resp.json()["session_id"]


def test_session_history_is_private(client, clean_db, llm, user):
    llm.queue("no plan")
    session_id = DataSpecter().execute("hello?", "uid-1")["session_id"]

    assert DataSpecter().get_chat_history(session_id, "uid-2") is None
    params = {"session_id": session_id}
    assert client.get("/api/agents/data-specter", params=params).status_code == 400
    assert client.get("/api/agents/data-specter", params={**params, "firebase_uid": "uid-2"}).status_code == 404
    own = client.get("/api/agents/data-specter", params={**params, "firebase_uid": "uid-1"})
    assert own.json()["history"]["_id"] == session_id
