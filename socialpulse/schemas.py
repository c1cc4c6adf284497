from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from typing import Any, Literal

from socialpulse.services.timeframe import as_utc

Platform = Literal["TWITTER", "FACEBOOK", "INSTAGRAM", "LINKEDIN", "YOUTUBE", "TIKTOK"]
SourceType = Literal["COMMENT", "MENTION", "DIRECT_MESSAGE", "REVIEW", "SHARE", "REPLY"]
Severity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
ContentGoal = Literal["engagement", "reach", "conversion", "awareness"]

class UserCreate(BaseModel):
    name: str
    email: str
    password: str

# --- LLM payloads -------------------------------------------------------------

class Emotions(BaseModel):
    joy: float = Field(ge=0, le=1)
    sadness: float = Field(ge=0, le=1)
    anger: float = Field(ge=0, le=1)
    fear: float = Field(ge=0, le=1)
    surprise: float = Field(ge=0, le=1)
    disgust: float = Field(ge=0, le=1)

class SentimentResult(BaseModel):
    overallScore: float = Field(ge=-1, le=1)
    positiveScore: float = Field(ge=0, le=1)
    negativeScore: float = Field(ge=0, le=1)
    neutralScore: float = Field(ge=0, le=1)
    confidenceScore: float = Field(ge=0, le=1)
    emotions: Emotions
    language: str | None = None
    detectedTopics: list[str]
    isInfluencer: bool | None = None
    followerCount: int | None = None

class Demographics(BaseModel):
    ageRange: str | None = None
    location: str | None = None
    interests: list[str]

class Behavior(BaseModel):
    engagementPatterns: list[str]
    preferredContentTypes: list[str]
    activeTimeRanges: list[str]
    platformPreferences: list[str]

class Psychographics(BaseModel):
    values: list[str]
    motivations: list[str]
    painPoints: list[str]

class SegmentCharacteristics(BaseModel):
    demographics: Demographics
    behavior: Behavior
    psychographics: Psychographics

class EngagementProfile(BaseModel):
    avgEngagementRate: float
    preferredPostTypes: list[str]
    responsePatterns: list[str]

class ClusterSegment(BaseModel):
    name: str
    description: str
    characteristics: SegmentCharacteristics
    estimatedSize: float
    engagementProfile: EngagementProfile

class AudienceClusterResult(BaseModel):
    segments: list[ClusterSegment]
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

class RecommendationDraft(BaseModel):
    title: str
    description: str = ""
    type: str = "CONTENT_TOPIC"
    topics: list[str] = Field(default_factory=list)
    tone: str | None = None
    formats: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    predictedEngagement: float | None = None
    predictedReach: float | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)

class RecommendationBatch(BaseModel):
    recommendations: list[RecommendationDraft]

# --- Requests -----------------------------------------------------------------

class AuthorData(BaseModel):
    id: str | None = None
    handle: str | None = None
    followersCount: int | None = None
    isVerified: bool | None = None

class SentimentOptions(BaseModel):
    includeEmotions: bool = True
    includeTopics: bool = True
    language: str | None = None
    authorData: AuthorData | None = None

class AnalyzeContentIn(BaseModel):
    source_type: SourceType
    source_id: str
    content: str = Field(min_length=1)
    platform: Platform
    external_post_id: str | None = None
    author: AuthorData | None = None

class BatchItemIn(BaseModel):
    id: str
    text: str
    options: SentimentOptions | None = None

class BatchIn(BaseModel):
    items: list[BatchItemIn] = Field(max_length=200)

class AlertRule(BaseModel):
    id: str
    type: Literal["sentiment_drop", "volume_surge", "negative_spike"]
    threshold: float
    timeframe: str = "1h"
    isActive: bool = True

class NotificationChannels(BaseModel):
    email: bool = False
    slack: bool = False
    sms: bool = False
    webhook: str | None = None

class MonitorIn(BaseModel):
    alert_rules: list[AlertRule] = Field(default_factory=list)
    notification_channels: NotificationChannels = Field(default_factory=NotificationChannels)

class CrisisThresholds(BaseModel):
    sentimentDrop: float = -0.3
    volumeIncrease: float = 2.0
    negativeSpike: float = 0.7

class MetricIn(BaseModel):
    platform: Platform
    metric_type: str = "ENGAGEMENT"
    engagement_type: str | None = None
    content_type: str | None = None
    value: float | None = None
    segment_id: int | None = None
    audience_member_ref: str | None = None
    external_post_id: str | None = None
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime | None) -> datetime | None:
        # Stored naive on SQLite, so offsets must be folded into UTC first
        return as_utc(value) if value is not None else None

class MetricsBulkIn(BaseModel):
    metrics: list[MetricIn] = Field(max_length=5000)

class ClusterIn(BaseModel):
    timeframe: str = "90d"
    min_segment_size: int = Field(default=50, ge=1)
    max_segments: int = Field(default=8, ge=1, le=20)

class RecommendationsIn(BaseModel):
    content_goal: ContentGoal = "engagement"

class RecommendationOutcomeIn(BaseModel):
    status: Literal["PENDING", "IMPLEMENTED", "DISMISSED"]
    actual_performance: dict[str, Any] | None = None

# --- Responses ----------------------------------------------------------------

class MetricOut(BaseModel):
    id: int
    org_id: int
    platform: str
    metric_type: str
    engagement_type: str | None = None
    content_type: str | None = None
    value: float | None = None
    segment_id: int | None = None
    created_at: datetime
    class Config:
        from_attributes = True

class SentimentAnalysisOut(BaseModel):
    id: int
    org_id: int
    source_type: str
    source_id: str
    platform: str
    content: str
    overall_score: float
    positive_score: float
    negative_score: float
    neutral_score: float
    confidence_score: float
    emotions: dict[str, float] = Field(default_factory=dict)
    language: str | None = None
    detected_topics: list[str] = Field(default_factory=list)
    author_handle: str | None = None
    is_influencer: bool = False
    follower_count: int | None = None
    created_at: datetime
    class Config:
        from_attributes = True

class SentimentTrendOut(BaseModel):
    id: int
    date: date
    platform: str | None = None
    total_mentions: int
    avg_sentiment: float
    positive_count: int
    negative_count: int
    neutral_count: int
    sentiment_change: float
    volume_change: float
    top_positive_topics: list[str] = Field(default_factory=list)
    top_negative_topics: list[str] = Field(default_factory=list)
    class Config:
        from_attributes = True

class CrisisAlertOut(BaseModel):
    id: int
    alert_type: str
    severity: str
    title: str
    description: str | None = None
    trigger_metric: str
    current_value: float
    threshold_value: float
    timeframe: str
    key_mentions: list[Any] = Field(default_factory=list)
    notifications_sent: dict[str, Any] = Field(default_factory=dict)
    status: str
    created_at: datetime | None = None
    class Config:
        from_attributes = True

class AudienceSegmentOut(BaseModel):
    id: int
    org_id: int
    name: str
    description: str | None = None
    segment_type: str
    criteria: dict[str, Any] = Field(default_factory=dict)
    estimated_size: int
    actual_size: int | None = None
    avg_engagement_rate: float | None = None
    preferred_platforms: list[str] = Field(default_factory=list)
    top_content_types: list[str] = Field(default_factory=list)
    personality_traits: dict[str, Any] = Field(default_factory=dict)
    interests: list[str] = Field(default_factory=list)
    demographic_profile: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    class Config:
        from_attributes = True

class EngagementPatternOut(BaseModel):
    id: int
    pattern_type: str
    pattern_name: str
    description: str | None = None
    triggers: dict[str, Any] = Field(default_factory=dict)
    behaviors: dict[str, Any] = Field(default_factory=dict)
    timeline: dict[str, Any] = Field(default_factory=dict)
    audience_size: int
    confidence_score: float
    data_points: int
    class Config:
        from_attributes = True

class ContentRecommendationOut(BaseModel):
    id: int
    segment_id: int
    title: str
    description: str | None = None
    recommendation_type: str
    content_goal: str | None = None
    suggested_topics: list[str] = Field(default_factory=list)
    suggested_tone: str | None = None
    suggested_formats: list[str] = Field(default_factory=list)
    suggested_hashtags: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    predicted_engagement: float | None = None
    predicted_reach: int | None = None
    confidence_score: float | None = None
    status: str
    actual_performance: dict[str, Any] | None = None
    class Config:
        from_attributes = True

class PostingTimeOut(BaseModel):
    id: int
    segment_id: int | None = None
    platform: str
    day_of_week: int
    hour: int
    timezone: str
    expected_engagement: float
    confidence_score: float
    audience_size: int
    data_points: float
    class Config:
        from_attributes = True

class ClusterOut(BaseModel):
    success: bool
    message: str | None = None
    segments: list[AudienceSegmentOut] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
