"""
News Banshee: daily startup and tech news, categorized and scored for founders.
"""
import os
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests

from agents.base import BaseAgent, add_usage
from database import db, create_document, serialize_doc
from gemini import GEMINI_MODELS, empty_usage, extract_json
from schemas import NewsDigest

logger = logging.getLogger(__name__)

NEWS_API_KEY = os.getenv("NEWS_API_KEY")
NEWS_API_URL = os.getenv("NEWS_API_URL", "https://newsapi.org/v2/everything")

DEFAULT_KEYWORDS = ["startup", "tech", "AI", "funding"]

DEFAULT_CATEGORIES = [
    "Funding & Investment",
    "Product Launch",
    "M&A Activity",
    "AI & Technology",
    "Market Trends",
    "Regulatory",
    "Startup Tips",
    "Industry News",
]

DEFAULT_TRENDING = ["AI", "Startups", "Funding", "Technology"]

MIN_ARTICLES = 5
MAX_CATEGORIZED = 20

SAMPLE_NEWS = [
    ("AI Startup Raises $50M Series B to Revolutionize Customer Service",
     "A San Francisco-based AI startup has secured significant funding to expand its customer service automation platform.",
     "The company plans to use the funds to expand into new markets and enhance their AI capabilities.",
     "https://example.com/ai-startup-funding", "TechCrunch"),
    ("New Study Shows Remote Work Boosts Startup Productivity",
     "A comprehensive study reveals that startups with remote-first policies show 23% higher productivity.",
     "The research analyzed over 500 startups across various industries.",
     "https://example.com/remote-work-study", "Forbes"),
    ("Major Tech Company Acquires Promising Fintech Startup",
     "In a deal valued at $200M, a major tech player has acquired a fintech startup focused on B2B payments.",
     "This acquisition signals continued consolidation in the fintech space.",
     "https://example.com/fintech-acquisition", "Bloomberg"),
    ("Y Combinator Announces Record Number of AI Startups in Latest Batch",
     "The renowned accelerator reports 40% of its latest cohort are AI-focused companies.",
     "This marks a significant increase from previous years, reflecting the AI boom.",
     "https://example.com/yc-ai-startups", "The Verge"),
    ("Climate Tech Startups Attract Record Venture Investment",
     "VC investment in climate technology has reached an all-time high in Q4.",
     "Investors are increasingly focused on sustainable technology solutions.",
     "https://example.com/climate-tech-funding", "Reuters"),
    ("SaaS Startup Achieves Unicorn Status After Rapid Growth",
     "A B2B SaaS company has crossed the $1B valuation mark after tripling revenue.",
     "The company specializes in enterprise workflow automation.",
     "https://example.com/saas-unicorn", "Business Insider"),
    ("Healthcare AI Startup Gets FDA Approval for Diagnostic Tool",
     "A breakthrough AI diagnostic tool receives regulatory approval, opening new markets.",
     "The tool can detect early signs of disease with 95% accuracy.",
     "https://example.com/healthcare-ai-fda", "CNBC"),
    ("European Startup Ecosystem Sees 30% Growth in Funding",
     "Despite global challenges, European startups are attracting more investment than ever.",
     "London, Berlin, and Paris lead as top startup hubs in Europe.",
     "https://example.com/eu-startup-growth", "Financial Times"),
    ("OpenAI Competitor Launches New Foundation Model",
     "A new AI research lab has released a competing large language model with impressive capabilities.",
     "The model shows strong performance on benchmarks while being more efficient.",
     "https://example.com/new-ai-model", "Wired"),
    ("Startup Founder Shares Lessons from Failed Venture",
     "A candid post-mortem analysis from a founder whose startup shut down after raising $10M.",
     "Key lessons include the importance of product-market fit and cash management.",
     "https://example.com/startup-lessons", "Medium"),
]


def generate_sample_news(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    return [
        {
            "title": title,
            "description": description,
            "content": content,
            "url": url,
            "source": source,
            "published_at": (now - timedelta(hours=2 * (i + 1))).isoformat(),
            "image_url": None,
        }
        for i, (title, description, content, url, source) in enumerate(SAMPLE_NEWS)
    ]


def build_categories(custom: Optional[List[str]] = None) -> List[str]:
    return list(dict.fromkeys(DEFAULT_CATEGORIES + list(custom or [])))


def default_categorization(article: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "category": "Industry News",
        "subcategory": "General",
        "relevance_score": 50,
        "sentiment": "neutral",
        "key_takeaway": article.get("description"),
        "founder_relevance": "Industry update",
        "tags": [],
    }


def merge_categorization(articles: List[Dict[str, Any]], analysis: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    by_index = {}
    for item in (analysis or {}).get("articles") or []:
        if isinstance(item, dict) and isinstance(item.get("index"), int):
            by_index[item["index"]] = item

    merged = []
    for i, article in enumerate(articles):
        result = dict(article)
        defaults = default_categorization(article)
        found = by_index.get(i, {})
        for key, fallback in defaults.items():
            result[key] = found.get(key) or fallback
        merged.append(result)
    return merged


def filter_by_category(articles: List[Dict[str, Any]], category: Optional[str]) -> List[Dict[str, Any]]:
    if not category or category == "all":
        return articles
    wanted = category.lower()
    return [a for a in articles if str(a.get("category") or "").lower() == wanted]


def get_trending_topics(articles: List[Dict[str, Any]]) -> List[str]:
    if not articles or len(articles) < MIN_ARTICLES:
        return list(DEFAULT_TRENDING)
    counts = Counter(tag for a in articles for tag in a.get("tags") or [])
    return [tag for tag, _ in counts.most_common(10)] or list(DEFAULT_TRENDING)


class NewsBanshee(BaseAgent):
    def __init__(self):
        super().__init__("news-banshee", GEMINI_MODELS["NEWS"])

    def fetch_daily_news(self, firebase_uid: str, keywords: Optional[List[str]] = None,
                         categories: Optional[List[str]] = None) -> Dict[str, Any]:
        self.start_timer()
        keywords = keywords or DEFAULT_KEYWORDS
        usage = empty_usage()

        raw = self.fetch_news_from_sources(keywords)
        articles = self.process_news_with_ai(raw, categories or [], usage)
        summary = self.get_news_summary(articles, usage)
        trending = get_trending_topics(articles)
        fetched_at = datetime.now(timezone.utc)

        digest = NewsDigest(
            firebase_uid=firebase_uid,
            keywords=keywords,
            articles=articles,
            summary=summary,
            trending_topics=trending,
            fetched_at=fetched_at,
            token_usage=usage,
        )
        digest_id = create_document("newsdigest", digest)
        self.log_usage(firebase_uid, usage["total_tokens"], usage["cost"])

        logger.info("[%s] %d articles processed for %s", self.agent_name, len(articles), firebase_uid)
        return {
            "digest_id": digest_id,
            "articles": articles,
            "summary": summary,
            "trending_topics": trending,
            "fetched_at": fetched_at.isoformat(),
            "total_articles": len(articles),
            "execution_time": self.get_execution_time(),
        }

    def fetch_news_from_sources(self, keywords: List[str]) -> List[Dict[str, Any]]:
        articles: List[Dict[str, Any]] = []
        if NEWS_API_KEY:
            try:
                resp = requests.get(NEWS_API_URL, params={
                    "q": " OR ".join(keywords),
                    "language": "en",
                    "sortBy": "publishedAt",
                    "pageSize": 50,
                    "apiKey": NEWS_API_KEY,
                }, timeout=30)
                resp.raise_for_status()
                for a in resp.json().get("articles") or []:
                    articles.append({
                        "title": a.get("title"),
                        "description": a.get("description"),
                        "content": a.get("content"),
                        "url": a.get("url"),
                        "source": (a.get("source") or {}).get("name") or "Unknown",
                        "published_at": a.get("publishedAt"),
                        "image_url": a.get("urlToImage"),
                    })
            except (requests.RequestException, ValueError) as e:
                logger.error("NewsAPI fetch error: %s", e)

        if len(articles) < MIN_ARTICLES:
            articles.extend(generate_sample_news())
        return articles

    def process_news_with_ai(self, articles: List[Dict[str, Any]], custom_categories: List[str],
                             usage: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not articles:
            return []

        listing = "\n".join(
            f"[{i}] Title: {a.get('title')}\n    Description: {a.get('description') or 'No description'}\n"
            f"    Source: {a.get('source')}"
            for i, a in enumerate(articles[:MAX_CATEGORIZED])
        )
        prompt = f"""You are a news analyst for startup founders. Analyze and categorize the following news articles.

Available Categories: {', '.join(build_categories(custom_categories))}

Articles to analyze (the number in brackets is the article index):
{listing}

For each article, provide analysis in this JSON format:
{{
  "articles": [
    {{
      "index": 0,
      "category": "Category name",
      "subcategory": "More specific subcategory",
      "relevance_score": 85,
      "sentiment": "positive/negative/neutral",
      "key_takeaway": "One sentence summary",
      "founder_relevance": "Why this matters for founders",
      "tags": ["tag1", "tag2"]
    }}
  ]
}}

Return ONLY valid JSON."""

        try:
            text, call_usage = self.generate(prompt)
            add_usage(usage, call_usage)
            analysis = extract_json(text)
        except Exception as e:
            logger.error("[%s] AI processing error: %s", self.agent_name, e)
            analysis = None
        return merge_categorization(articles, analysis)

    def get_news_summary(self, articles: List[Dict[str, Any]], usage: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not articles:
            return {"summary": "No news available today.", "highlights": []}

        titles = "\n".join(f"- {a.get('title')}" for a in articles[:10])
        prompt = f"""Summarize the following news for a busy startup founder. Be concise and actionable.

News articles:
{titles}

Provide a summary in JSON format:
{{
  "summary": "2-3 sentence overview of today's key news",
  "highlights": [
    {{"emoji": "🚀", "text": "Key highlight 1"}},
    {{"emoji": "💰", "text": "Key highlight 2"}},
    {{"emoji": "🤖", "text": "Key highlight 3"}}
  ],
  "must_read": "Title of the most important article",
  "trend": "Emerging trend from today's news"
}}

Return ONLY valid JSON."""

        try:
            text, call_usage = self.generate(prompt)
            if usage is not None:
                add_usage(usage, call_usage)
            parsed = extract_json(text)
        except Exception as e:
            logger.error("[%s] Summary generation error: %s", self.agent_name, e)
            parsed = None
        if parsed is not None:
            return parsed

        return {
            "summary": f"{len(articles)} articles collected today covering startup and tech news.",
            "highlights": [{"emoji": "📰", "text": a.get("title")} for a in articles[:3]],
            "must_read": articles[0].get("title") or "No articles",
            "trend": "Check individual articles for trends",
        }

    def get_dashboard_news(self, firebase_uid: str, category: Optional[str] = None, limit: int = 10) -> Dict[str, Any]:
        digest = db["newsdigest"].find_one({"firebase_uid": firebase_uid}, sort=[("fetched_at", -1)])
        if not digest:
            return {"articles": [], "summary": None, "trending_topics": list(DEFAULT_TRENDING), "fetched_at": None}

        articles = filter_by_category(digest.get("articles") or [], category)[:limit]
        return serialize_doc({
            "articles": articles,
            "summary": digest.get("summary"),
            "trending_topics": digest.get("trending_topics") or [],
            "fetched_at": digest.get("fetched_at"),
        })

    filter_by_category = staticmethod(filter_by_category)
    get_trending_topics = staticmethod(get_trending_topics)
