"""
Database Schemas for GhostFounder

Each Pydantic model represents a MongoDB collection (lowercased class name):
- User -> "user", CodeReview -> "codereview", FinancialReport -> "financialreport", ...
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

AgentName = Literal[
    "phantom-code-guardian",
    "data-specter",
    "treasury-wraith",
    "equity-phantom",
    "pitch-poltergeist",
    "shadow-scout",
    "news-banshee",
    "investor-ghoul",
]

Status = Literal["pending", "processing", "completed", "failed"]


# ---- User ----

class TokenUsageEntry(BaseModel):
    date: datetime
    agent: AgentName
    tokens: int = 0
    cost: float = 0.0


class NotificationPreferences(BaseModel):
    email: bool = True
    whatsapp: bool = False
    whatsapp_number: str = ""


class Preferences(BaseModel):
    daily_news: bool = True
    weekly_spy_report: bool = True
    vc_motivation: bool = False
    critical_alerts_only: bool = False
    theme: str = "dark"
    compact_mode: bool = False
    show_token_usage: bool = True
    news_keywords: List[str] = Field(default_factory=list)
    news_categories: List[str] = Field(default_factory=lambda: ["startups", "technology", "funding"])


class EquityHolder(BaseModel):
    name: str
    role: str = Field(..., description="founder | investor | esop | advisor | reserved")
    percentage: float = Field(..., ge=0, le=100)
    wallet: Optional[str] = None


class Company(BaseModel):
    name: str = ""
    equity_token_address: Optional[str] = None
    equity_holders: List[EquityHolder] = Field(default_factory=list)


class EquityTransfer(BaseModel):
    to: str
    amount: float
    percentage: Optional[float] = None
    tx_hash: str
    timestamp: datetime


class User(BaseModel):
    firebase_uid: str = Field(..., description="Firebase UID (unique)")
    email: str = ""
    display_name: str = ""
    photo_url: str = ""
    github_connected: bool = False
    github_username: str = ""
    github_access_token: str = ""
    github_repos: List[str] = Field(default_factory=list)
    selected_repo: str = ""
    subscription: Literal["free", "pro", "enterprise"] = "free"
    token_usage: List[TokenUsageEntry] = Field(default_factory=list)
    blockchain_wallet: str = ""
    equity_transfers: List[EquityTransfer] = Field(default_factory=list)
    company: Optional[Company] = None
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    preferences: Preferences = Field(default_factory=Preferences)
    is_active: bool = True


# ---- Phantom Code Guardian ----

class FileChange(BaseModel):
    path: str
    additions: int = 0
    deletions: int = 0
    patch: Optional[str] = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0


class ReviewNotifications(BaseModel):
    email_sent: bool = False
    whatsapp_sent: bool = False
    sent_at: Optional[datetime] = None


class CodeReview(BaseModel):
    user_id: str
    firebase_uid: str
    repo_name: str
    pr_number: int
    pr_title: str = ""
    pr_author: str = ""
    pr_url: str = ""
    analysis: Dict[str, Any] = Field(default_factory=dict)
    files_reviewed: List[FileChange] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    notifications: ReviewNotifications = Field(default_factory=ReviewNotifications)
    status: Status = "pending"
    error_message: str = ""
    completed_at: Optional[datetime] = None


# ---- Treasury Wraith ----

class FinancialReport(BaseModel):
    user_id: str
    firebase_uid: str
    period: Literal["Q1", "Q2", "Q3", "Q4", "yearly"]
    year: int
    data: Dict[str, Any] = Field(default_factory=dict)
    analysis: Dict[str, Any] = Field(default_factory=dict)
    google_sheet: Dict[str, Any] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    status: Status = "pending"


# ---- Data Specter ----

class ChatEntry(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime
    query_result: Optional[Any] = None
    tokens: int = 0


class ChatMessage(BaseModel):
    user_id: str
    firebase_uid: str
    agent: Literal["data-specter", "investor-ghoul"] = "data-specter"
    messages: List[ChatEntry] = Field(default_factory=list)
    session_started: datetime
    last_activity: datetime
    total_tokens: int = 0
    total_cost: float = 0.0


# ---- Phase 3 agents ----

class PitchDeck(BaseModel):
    firebase_uid: str
    project_name: str
    repository_url: Optional[str] = None
    analysis: Dict[str, Any] = Field(default_factory=dict)
    slides: List[Dict[str, Any]] = Field(default_factory=list)
    storage_path: Optional[str] = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    status: Status = "pending"
    error_message: str = ""


class SpyReport(BaseModel):
    firebase_uid: str
    project_name: str
    industry: str = "Technology"
    competitors: List[Dict[str, Any]] = Field(default_factory=list)
    analysis: Dict[str, Any] = Field(default_factory=dict)
    trends: Dict[str, Any] = Field(default_factory=dict)
    insights: Dict[str, Any] = Field(default_factory=dict)
    storage_path: Optional[str] = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    status: Status = "pending"
    error_message: str = ""


class NewsDigest(BaseModel):
    firebase_uid: str
    keywords: List[str] = Field(default_factory=list)
    articles: List[Dict[str, Any]] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)
    trending_topics: List[str] = Field(default_factory=list)
    fetched_at: datetime
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class Roast(BaseModel):
    firebase_uid: str
    idea: str
    context: Dict[str, Any] = Field(default_factory=dict)
    roast_mode: Literal["standard", "brutal", "constructive"] = "standard"
    result: Dict[str, Any] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class Project(BaseModel):
    firebase_uid: str
    name: str
    description: Optional[str] = None
    industry: str = "Technology"
    target_market: Optional[str] = None
    competitors: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True


class VestingSchedule(BaseModel):
    firebase_uid: Optional[str] = None
    beneficiary: str
    total_amount: float = Field(..., gt=0)
    token_address: Optional[str] = None
    start_date: datetime
    cliff_date: datetime
    end_date: datetime
    cliff_months: int = Field(12, ge=0)
    vesting_months: int = Field(48, ge=1)
    vested_amount: float = 0.0
    claimed_amount: float = 0.0
    status: str = "active"


class OAuthState(BaseModel):
    state: str
    firebase_uid: Optional[str] = None
    expires_at: datetime
    used: bool = False


class ErrorLog(BaseModel):
    agent: str
    error: Dict[str, Any]
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    severity: Literal["low", "medium", "high", "critical"]
    resolved: bool = False
