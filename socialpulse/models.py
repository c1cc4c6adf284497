from sqlalchemy import Column, Integer, String, Text, DateTime, Date, Float, JSON, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

class Org(Base):
    __tablename__ = "orgs"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("OrgMember", back_populates="org")
    api_keys = relationship("ApiKey", back_populates="org")
    segments = relationship("AudienceSegment", back_populates="org")

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=True)
    name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    is_superadmin = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship("OrgMember", back_populates="user")

class OrgMember(Base):
    __tablename__ = "org_members"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String, default="member") # owner, admin, member
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    org = relationship("Org", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_org_user"),)

class ApiKey(Base):
    __tablename__ = "api_keys"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False)
    name = Column(String, nullable=False)
    key_hash = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    org = relationship("Org", back_populates="api_keys")

class AnalyticsMetric(Base):
    """A single engagement/reach/impression measurement for a workspace."""
    __tablename__ = "analytics_metrics"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    segment_id = Column(Integer, ForeignKey("audience_segments.id"), nullable=True, index=True)

    platform = Column(String, nullable=False) # TWITTER, FACEBOOK, INSTAGRAM, LINKEDIN, YOUTUBE, TIKTOK
    metric_type = Column(String, nullable=False, default="ENGAGEMENT") # ENGAGEMENT, REACH, IMPRESSIONS, CLICKS
    engagement_type = Column(String, nullable=True) # like, comment, share, click
    content_type = Column(String, nullable=True) # image, video, text, carousel
    value = Column(Float, nullable=True)
    audience_member_ref = Column(String, nullable=True)
    external_post_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    segment = relationship("AudienceSegment", back_populates="metrics")

class SentimentAnalysis(Base):
    __tablename__ = "sentiment_analyses"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    external_post_id = Column(String, nullable=True)

    source_type = Column(String, nullable=False) # COMMENT, MENTION, DIRECT_MESSAGE, REVIEW, SHARE, REPLY
    source_id = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    platform = Column(String, nullable=False, index=True)

    overall_score = Column(Float, nullable=False)
    positive_score = Column(Float, nullable=False)
    negative_score = Column(Float, nullable=False)
    neutral_score = Column(Float, nullable=False)
    confidence_score = Column(Float, nullable=False)
    emotions = Column(JSON, nullable=False, default=dict)
    language = Column(String, nullable=True)
    detected_topics = Column(JSON, nullable=False, default=list)

    author_id = Column(String, nullable=True)
    author_handle = Column(String, nullable=True)
    is_influencer = Column(Boolean, default=False)
    follower_count = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

class SentimentTrend(Base):
    """Daily rollup of sentiment. platform NULL is the all-platform row."""
    __tablename__ = "sentiment_trends"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    platform = Column(String, nullable=True)

    total_mentions = Column(Integer, nullable=False, default=0)
    avg_sentiment = Column(Float, nullable=False, default=0.0)
    positive_count = Column(Integer, nullable=False, default=0)
    negative_count = Column(Integer, nullable=False, default=0)
    neutral_count = Column(Integer, nullable=False, default=0)
    sentiment_change = Column(Float, nullable=False, default=0.0)
    volume_change = Column(Float, nullable=False, default=0.0)
    top_positive_topics = Column(JSON, nullable=False, default=list)
    top_negative_topics = Column(JSON, nullable=False, default=list)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("org_id", "date", "platform", name="uq_trend_org_date_platform"),)

class AudienceSegment(Base):
    __tablename__ = "audience_segments"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    segment_type = Column(String, nullable=False, default="BEHAVIORAL")
    criteria = Column(JSON, nullable=False, default=dict)
    estimated_size = Column(Integer, nullable=False, default=0)
    actual_size = Column(Integer, nullable=True)
    avg_engagement_rate = Column(Float, nullable=True)
    preferred_platforms = Column(JSON, nullable=False, default=list)
    top_content_types = Column(JSON, nullable=False, default=list)
    personality_traits = Column(JSON, nullable=False, default=dict)
    interests = Column(JSON, nullable=False, default=list)
    demographic_profile = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    org = relationship("Org", back_populates="segments")
    metrics = relationship("AnalyticsMetric", back_populates="segment")
    recommendations = relationship("ContentRecommendation", back_populates="segment")

class EngagementPattern(Base):
    __tablename__ = "engagement_patterns"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    segment_id = Column(Integer, ForeignKey("audience_segments.id"), nullable=True)

    pattern_type = Column(String, nullable=False) # DAILY, CONTENT_TYPE
    pattern_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    triggers = Column(JSON, nullable=False, default=dict)
    behaviors = Column(JSON, nullable=False, default=dict)
    timeline = Column(JSON, nullable=False, default=dict)
    audience_size = Column(Integer, nullable=False, default=0)
    confidence_score = Column(Float, nullable=False, default=0.0)
    data_points = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

class ContentRecommendation(Base):
    __tablename__ = "content_recommendations"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    segment_id = Column(Integer, ForeignKey("audience_segments.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    recommendation_type = Column(String, nullable=False, default="CONTENT_TOPIC")
    content_goal = Column(String, nullable=True)
    suggested_topics = Column(JSON, nullable=False, default=list)
    suggested_tone = Column(String, nullable=True)
    suggested_formats = Column(JSON, nullable=False, default=list)
    suggested_hashtags = Column(JSON, nullable=False, default=list)
    platforms = Column(JSON, nullable=False, default=list)
    predicted_engagement = Column(Float, nullable=True)
    predicted_reach = Column(Integer, nullable=True)
    confidence_score = Column(Float, nullable=True)

    status = Column(String, nullable=False, default="PENDING") # PENDING, IMPLEMENTED, DISMISSED
    actual_performance = Column(JSON(none_as_null=True), nullable=True) # e.g. {"engagement": 4.2, "reach": 1800}

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    segment = relationship("AudienceSegment", back_populates="recommendations")

class PostingTimeRecommendation(Base):
    __tablename__ = "posting_time_recommendations"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)
    segment_id = Column(Integer, ForeignKey("audience_segments.id"), nullable=True)

    platform = Column(String, nullable=False)
    day_of_week = Column(Integer, nullable=False) # 0 = Monday
    hour = Column(Integer, nullable=False)
    timezone = Column(String, nullable=False, default="UTC")

    expected_engagement = Column(Float, nullable=False, default=0.0)
    confidence_score = Column(Float, nullable=False, default=0.0)
    audience_size = Column(Integer, nullable=False, default=0)
    data_points = Column(Float, nullable=False, default=0)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("org_id", "segment_id", "platform", "day_of_week", "hour", name="uq_posting_time_slot"),
    )

class CrisisAlert(Base):
    __tablename__ = "crisis_alerts"
    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("orgs.id"), nullable=False, index=True)

    alert_type = Column(String, nullable=False) # SENTIMENT_SPIKE, VOLUME_SURGE, NEGATIVE_TREND, BRAND_ATTACK
    severity = Column(String, nullable=False) # LOW, MEDIUM, HIGH, CRITICAL
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    trigger_metric = Column(String, nullable=False)
    current_value = Column(Float, nullable=False)
    threshold_value = Column(Float, nullable=False)
    timeframe = Column(String, nullable=False, default="1h")
    key_mentions = Column(JSON, nullable=False, default=list)
    notifications_sent = Column(JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, default="OPEN") # OPEN, ACKNOWLEDGED, RESOLVED

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
