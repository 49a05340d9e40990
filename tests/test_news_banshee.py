from datetime import datetime, timezone

from agents import NewsBanshee
from agents.news_banshee import (
    DEFAULT_CATEGORIES,
    DEFAULT_TRENDING,
    build_categories,
    filter_by_category,
    generate_sample_news,
    get_trending_topics,
    merge_categorization,
)

ARTICLES = [
    {"title": "A", "description": "first"},
    {"title": "B", "description": "second"},
    {"title": "C", "description": "third"},
]


def test_sample_news_is_time_ordered():
    now = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
    news = generate_sample_news(now)
    assert len(news) == 10
    assert news[0]["published_at"] == "2025-03-01T10:00:00+00:00"
    assert news[0]["source"] == "TechCrunch"


def test_build_categories_appends_custom_without_duplicates():
    categories = build_categories(["Climate", "Regulatory"])
    assert categories[: len(DEFAULT_CATEGORIES)] == DEFAULT_CATEGORIES
    assert categories.count("Regulatory") == 1
    assert categories[-1] == "Climate"


def test_merge_categorization_matches_by_index():
    analysis = {"articles": [
        {"index": 2, "category": "Funding & Investment", "relevance_score": 91, "tags": ["vc"]},
        {"index": 0, "category": "AI & Technology", "sentiment": "positive"},
    ]}
    merged = merge_categorization(ARTICLES, analysis)

    assert merged[0]["category"] == "AI & Technology"
    assert merged[0]["sentiment"] == "positive"
    assert merged[0]["relevance_score"] == 50
    assert merged[1]["category"] == "Industry News"
    assert merged[1]["key_takeaway"] == "second"
    assert merged[2]["relevance_score"] == 91
    assert merged[2]["tags"] == ["vc"]
    assert "category" not in ARTICLES[0]


def test_merge_categorization_without_analysis():
    merged = merge_categorization(ARTICLES, None)
    assert {a["category"] for a in merged} == {"Industry News"}


def test_filter_by_category_is_case_insensitive():
    articles = [{"category": "Product Launch"}, {"category": "Regulatory"}]
    assert filter_by_category(articles, "product launch") == [{"category": "Product Launch"}]
    assert filter_by_category(articles, "all") == articles
    assert filter_by_category(articles, None) == articles


def test_trending_topics():
    assert get_trending_topics([{"tags": ["ai"]}]) == DEFAULT_TRENDING
    articles = [{"tags": ["ai", "funding"]}, {"tags": ["ai"]}, {"tags": ["ai", "saas"]},
                {"tags": ["funding"]}, {"tags": []}]
    assert get_trending_topics(articles)[:2] == ["ai", "funding"]


def test_fetch_daily_news_falls_back_to_samples(clean_db, llm, user):
    llm.queue(
        {"articles": [{"index": 0, "category": "Funding & Investment", "tags": ["ai", "funding"]}]},
        {"summary": "Money is flowing.", "highlights": [], "must_read": "AI Startup Raises", "trend": "AI"},
    )
    result = NewsBanshee().fetch_daily_news("uid-1")

    assert result["total_articles"] == 10
    assert result["articles"][0]["category"] == "Funding & Investment"
    assert result["summary"]["summary"] == "Money is flowing."
    digest = clean_db["newsdigest"].find_one({"firebase_uid": "uid-1"})
    assert digest["keywords"] == ["startup", "tech", "AI", "funding"]
    assert digest["token_usage"]["total_tokens"] == 30


def test_summary_fallback_when_llm_fails(llm):
    llm.queue(ValueError("no summary for you"))
    summary = NewsBanshee().get_news_summary(generate_sample_news())
    assert summary["summary"].startswith("10 articles collected today")
    assert len(summary["highlights"]) == 3


def test_dashboard_news_uses_latest_digest(clean_db, llm, user):
    assert NewsBanshee().get_dashboard_news("uid-1")["articles"] == []

    llm.queue("nothing", "nothing")
    NewsBanshee().fetch_daily_news("uid-1")
    news = NewsBanshee().get_dashboard_news("uid-1", category="industry news", limit=3)
    assert len(news["articles"]) == 3
    assert news["trending_topics"]


def test_routes(client, llm, user):
    assert client.post("/api/agents/news-banshee", json={}).status_code == 400
    assert client.get("/api/agents/news-banshee").status_code == 400

    llm.queue("nothing", "nothing")
    assert client.post("/api/agents/news-banshee", json={"firebase_uid": "uid-1"}).status_code == 200
    data = client.get("/api/agents/news-banshee", params={"firebase_uid": "uid-1", "limit": 2}).json()["data"]
    assert len(data["articles"]) == 2
