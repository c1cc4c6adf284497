"""
Audience segmentation.

Clustering and recommendation writing are delegated to the language model;
every model call is schema-checked and has a rule-based fallback, so these
operations only fail on database errors or a missing segment.
"""
import json
from collections import Counter
from datetime import datetime
from typing import Any

import pytz
from openai import OpenAIError
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from socialpulse.config import settings
from socialpulse.logging_setup import log_event
from socialpulse.models import (
    AnalyticsMetric, SentimentAnalysis, AudienceSegment, EngagementPattern,
    ContentRecommendation, PostingTimeRecommendation,
)
from socialpulse.schemas import AudienceClusterResult, RecommendationBatch, RecommendationDraft
from socialpulse.services.llm import complete_json, LLMUnavailableError, LLMResponseError
from socialpulse.services.sentiment_analyzer import POSITIVE_CUTOFF, NEGATIVE_CUTOFF
from socialpulse.services.timeframe import window_start, utcnow, as_utc

MIN_ENGAGEMENTS_FOR_CLUSTERING = 100
CLUSTER_METRIC_TYPES = ("ENGAGEMENT", "REACH", "IMPRESSIONS")
DEFAULT_TIMEFRAME_HOURS = 24 * 7
TIME_PATTERN_MIN_STRENGTH = 0.3
CONTENT_PATTERN_MIN_SHARE = 0.4
HISTORY_LIMIT = 1000
DEFAULT_PLATFORM = "TWITTER"

LLM_FAILURES = (LLMUnavailableError, LLMResponseError, ValidationError, OpenAIError)

class SegmentNotFoundError(LookupError):
    pass

def _since(timeframe: str, now: datetime | None = None) -> datetime:
    return window_start(timeframe, DEFAULT_TIMEFRAME_HOURS, now)

def gather_audience_data(db: Session, org_id: int, timeframe: str, now: datetime | None = None) -> dict[str, Any]:
    since = _since(timeframe, now)
    engagements = db.execute(
        select(AnalyticsMetric).where(
            AnalyticsMetric.org_id == org_id,
            AnalyticsMetric.created_at >= since,
            AnalyticsMetric.metric_type.in_(CLUSTER_METRIC_TYPES),
        )
    ).scalars().all()
    sentiments = db.execute(
        select(SentimentAnalysis).where(
            SentimentAnalysis.org_id == org_id,
            SentimentAnalysis.created_at >= since,
        )
    ).scalars().all()
    return {"engagements": engagements, "sentiments": sentiments, "timeframe": timeframe}

def summarize_engagement_data(engagements: list[AnalyticsMetric]) -> str:
    if not engagements:
        return "Platforms: none\nAverage Engagement: 0.000"
    platforms = Counter(e.platform for e in engagements)
    average = sum(e.value or 0 for e in engagements) / len(engagements)
    breakdown = ", ".join(f"{p}: {c}" for p, c in platforms.items())
    return f"Platforms: {breakdown}\nAverage Engagement: {average:.3f}"

def summarize_sentiment_data(sentiments: list[SentimentAnalysis]) -> str:
    if not sentiments:
        return "Average Sentiment: 0.000, Positive: 0, Negative: 0"
    average = sum(s.overall_score for s in sentiments) / len(sentiments)
    positive = sum(1 for s in sentiments if s.overall_score > POSITIVE_CUTOFF)
    negative = sum(1 for s in sentiments if s.overall_score < NEGATIVE_CUTOFF)
    return f"Average Sentiment: {average:.3f}, Positive: {positive}, Negative: {negative}"

CLUSTER_EXAMPLE = {
    "segments": [{
        "name": "Segment Name",
        "description": "Detailed description of this audience segment",
        "characteristics": {
            "demographics": {"ageRange": "25-34", "location": "US", "interests": ["technology", "business"]},
            "behavior": {
                "engagementPatterns": ["high morning engagement", "prefers video content"],
                "preferredContentTypes": ["video", "infographic"],
                "activeTimeRanges": ["9-11 AM", "7-9 PM"],
                "platformPreferences": ["instagram", "linkedin"],
            },
            "psychographics": {
                "values": ["innovation", "efficiency"],
                "motivations": ["career growth", "learning"],
                "painPoints": ["time constraints", "information overload"],
            },
        },
        "estimatedSize": 1500,
        "engagementProfile": {
            "avgEngagementRate": 0.045,
            "preferredPostTypes": ["educational", "behind-the-scenes"],
            "responsePatterns": ["likes quickly", "comments thoughtfully"],
        },
    }],
    "insights": ["Key insights about the audience"],
    "recommendations": ["Actionable recommendations based on the analysis"],
}

def build_cluster_prompt(audience_data: dict[str, Any], max_segments: int, min_segment_size: int) -> str:
    return f"""
Analyze the following audience engagement data and identify distinct audience segments.
Create {max_segments} or fewer meaningful segments with at least {min_segment_size} users each.

Data Summary:
- Total Engagements: {len(audience_data['engagements'])}
- Total Sentiment Entries: {len(audience_data['sentiments'])}
- Time Period: {audience_data['timeframe']}

Engagement Patterns:
{summarize_engagement_data(audience_data['engagements'])}

Sentiment Patterns:
{summarize_sentiment_data(audience_data['sentiments'])}

Please return a JSON response with the following structure:
{json.dumps(CLUSTER_EXAMPLE, indent=2)}

Return only valid JSON, no additional text."""

def rule_based_clustering(audience_data: dict[str, Any]) -> AudienceClusterResult:
    return AudienceClusterResult(
        segments=[{
            "name": "Active Engagers",
            "description": "Users with high engagement rates",
            "characteristics": {
                "demographics": {"interests": ["general"]},
                "behavior": {
                    "engagementPatterns": ["high engagement"],
                    "preferredContentTypes": ["mixed"],
                    "activeTimeRanges": ["business hours"],
                    "platformPreferences": ["twitter", "linkedin"],
                },
                "psychographics": {
                    "values": ["engagement"],
                    "motivations": ["interaction"],
                    "painPoints": ["low quality content"],
                },
            },
            "estimatedSize": int(len(audience_data["engagements"]) * 0.3),
            "engagementProfile": {
                "avgEngagementRate": 0.05,
                "preferredPostTypes": ["educational"],
                "responsePatterns": ["quick responses"],
            },
        }],
        insights=["Generated from rule-based fallback"],
        recommendations=["Collect more data for better segmentation"],
    )

def perform_ai_clustering(audience_data: dict[str, Any], max_segments: int, min_segment_size: int) -> AudienceClusterResult:
    try:
        raw = complete_json(
            "You are an expert audience analyst specializing in social media segmentation.",
            build_cluster_prompt(audience_data, max_segments, min_segment_size),
            model=settings.openai_cluster_model,
            temperature=0.2,
            max_tokens=2000,
        )
        return AudienceClusterResult.model_validate(raw)
    except LLM_FAILURES as e:
        log_event("clustering_fallback_used", level="warning", reason=type(e).__name__, detail=str(e)[:200])
        return rule_based_clustering(audience_data)

def store_audience_segments(db: Session, org_id: int, clustering: AudienceClusterResult, max_segments: int) -> list[AudienceSegment]:
    stored = []
    for segment in clustering.segments[:max_segments]:
        traits = segment.characteristics
        row = AudienceSegment(
            org_id=org_id,
            name=segment.name,
            description=segment.description,
            segment_type="BEHAVIORAL",
            criteria=traits.model_dump(),
            estimated_size=int(round(segment.estimatedSize)),
            avg_engagement_rate=segment.engagementProfile.avgEngagementRate,
            preferred_platforms=[p.upper() for p in traits.behavior.platformPreferences],
            top_content_types=list(traits.behavior.preferredContentTypes),
            personality_traits=traits.psychographics.model_dump(),
            interests=list(traits.demographics.interests),
            demographic_profile={
                "ageRange": traits.demographics.ageRange,
                "location": traits.demographics.location,
            },
        )
        db.add(row)
        stored.append(row)
    db.commit()
    for row in stored:
        db.refresh(row)
    return stored

def cluster_audience(
    db: Session,
    org_id: int,
    timeframe: str = "90d",
    min_segment_size: int = 50,
    max_segments: int = 8,
    now: datetime | None = None,
) -> dict[str, Any]:
    audience_data = gather_audience_data(db, org_id, timeframe, now=now)

    if len(audience_data["engagements"]) < MIN_ENGAGEMENTS_FOR_CLUSTERING:
        log_event("clustering_skipped", org_id=org_id, engagements=len(audience_data["engagements"]))
        return {
            "success": False,
            "message": "Insufficient data for audience clustering",
            "segments": [],
            "insights": [],
            "recommendations": ["Gather more engagement data before running analysis"],
        }

    clustering = perform_ai_clustering(audience_data, max_segments, min_segment_size)
    segments = store_audience_segments(db, org_id, clustering, max_segments)
    log_event("audience_clustered", org_id=org_id, segment_count=len(segments))

    return {
        "success": True,
        "segments": segments,
        "insights": clustering.insights,
        "recommendations": clustering.recommendations,
    }

def segment_metrics(engagements: list[AnalyticsMetric]) -> dict[str, Any]:
    members = {e.audience_member_ref for e in engagements if e.audience_member_ref}
    if not engagements:
        return {"user_count": 0, "avg_engagement": None}
    return {
        "user_count": len(members) if members else len(engagements),
        "avg_engagement": sum(e.value or 0 for e in engagements) / len(engagements),
    }

def refresh_segment_data(db: Session, segment: AudienceSegment, now: datetime | None = None) -> AudienceSegment:
    recent = db.execute(
        select(AnalyticsMetric).where(
            AnalyticsMetric.segment_id == segment.id,
            AnalyticsMetric.created_at >= _since("7d", now),
        )
    ).scalars().all()
    metrics = segment_metrics(recent)
    segment.actual_size = metrics["user_count"]
    if metrics["avg_engagement"] is not None:
        segment.avg_engagement_rate = metrics["avg_engagement"]
    return segment

def update_audience_segments(db: Session, org_id: int, now: datetime | None = None) -> list[AudienceSegment]:
    segments = db.execute(
        select(AudienceSegment).where(AudienceSegment.org_id == org_id, AudienceSegment.is_active == True)
    ).scalars().all()
    for segment in segments:
        refresh_segment_data(db, segment, now=now)
    db.commit()
    return segments

def time_based_pattern(engagements: list[AnalyticsMetric]) -> dict[str, float]:
    hour_counts = [0] * 24
    for e in engagements:
        hour_counts[as_utc(e.created_at).hour] += 1

    peak = max(hour_counts)
    if peak == 0:
        return {"peak_hour": 0, "strength": 0.0}
    average = sum(hour_counts) / 24
    return {"peak_hour": hour_counts.index(peak), "strength": (peak - average) / peak}

def content_type_shares(engagements: list[AnalyticsMetric]) -> dict[str, float]:
    if not engagements:
        return {}
    counts = Counter(e.content_type or "text" for e in engagements)
    return {content_type: count / len(engagements) for content_type, count in counts.items()}

def identify_engagement_patterns(engagements: list[AnalyticsMetric]) -> list[dict[str, Any]]:
    patterns = []

    timing = time_based_pattern(engagements)
    if timing["strength"] > TIME_PATTERN_MIN_STRENGTH:
        patterns.append({
            "type": "DAILY",
            "name": "Daily Engagement Peak",
            "description": f"Strong engagement pattern at {timing['peak_hour']}:00",
            "triggers": {"hour": timing["peak_hour"]},
            "behaviors": {"engagementMultiplier": timing["strength"]},
            "timeline": {"daily": True},
            "confidence_score": timing["strength"],
        })

    for content_type, share in content_type_shares(engagements).items():
        if share > CONTENT_PATTERN_MIN_SHARE:
            patterns.append({
                "type": "CONTENT_TYPE",
                "name": f"{content_type} Preference",
                "description": f"Strong preference for {content_type} content",
                "triggers": {"contentType": content_type},
                "behaviors": {"preferenceScore": share},
                "timeline": {"ongoing": True},
                "confidence_score": share,
            })

    for pattern in patterns:
        pattern["data_points"] = len(engagements)
        pattern["audience_size"] = len(engagements) // 10
    return patterns

def analyze_engagement_patterns(
    db: Session,
    org_id: int,
    segment_id: int | None = None,
    timeframe: str = "30d",
    now: datetime | None = None,
) -> list[EngagementPattern]:
    stmt = select(AnalyticsMetric).where(
        AnalyticsMetric.org_id == org_id,
        AnalyticsMetric.created_at >= _since(timeframe, now),
    )
    if segment_id is not None:
        stmt = stmt.where(AnalyticsMetric.segment_id == segment_id)
    engagements = db.execute(stmt).scalars().all()

    stored = []
    for pattern in identify_engagement_patterns(engagements):
        row = EngagementPattern(
            org_id=org_id,
            segment_id=segment_id,
            pattern_type=pattern["type"],
            pattern_name=pattern["name"],
            description=pattern["description"],
            triggers=pattern["triggers"],
            behaviors=pattern["behaviors"],
            timeline=pattern["timeline"],
            audience_size=pattern["audience_size"],
            confidence_score=pattern["confidence_score"],
            data_points=pattern["data_points"],
        )
        db.add(row)
        stored.append(row)
    db.commit()
    for row in stored:
        db.refresh(row)
    return stored

def get_segment(db: Session, org_id: int, segment_id: int) -> AudienceSegment:
    segment = db.execute(
        select(AudienceSegment).where(AudienceSegment.id == segment_id, AudienceSegment.org_id == org_id)
    ).scalars().first()
    if not segment:
        raise SegmentNotFoundError(f"Segment {segment_id} not found")
    return segment

def segment_performance_data(db: Session, segment_id: int) -> list[ContentRecommendation]:
    return db.execute(
        select(ContentRecommendation)
        .where(
            ContentRecommendation.segment_id == segment_id,
            ContentRecommendation.status == "IMPLEMENTED",
            ContentRecommendation.actual_performance.isnot(None),
        )
        .order_by(ContentRecommendation.created_at.desc())
        .limit(50)
    ).scalars().all()

def build_recommendation_prompt(segment: AudienceSegment, history: list[ContentRecommendation], content_goal: str) -> str:
    history_lines = "\n".join(
        f"- {h.title}: {(h.actual_performance or {}).get('engagement', 'N/A')}% engagement"
        for h in history[:10]
    ) or "- none recorded"

    return f"""
Based on the following audience segment data and historical performance, generate personalized content recommendations.

Segment: {segment.name}
Description: {segment.description}
Size: {segment.actual_size or segment.estimated_size}
Avg Engagement: {segment.avg_engagement_rate}
Interests: {', '.join(segment.interests or []) or 'N/A'}
Preferred Platforms: {', '.join(segment.preferred_platforms or []) or 'N/A'}
Content Goal: {content_goal}

Historical Performance:
{history_lines}

Generate 3-5 content recommendations in JSON format:
{{
  "recommendations": [
    {{
      "title": "Recommendation Title",
      "description": "Detailed description",
      "type": "CONTENT_TOPIC",
      "topics": ["topic1", "topic2"],
      "tone": "EDUCATIONAL",
      "formats": ["video", "carousel"],
      "hashtags": ["#hashtag1", "#hashtag2"],
      "platforms": ["INSTAGRAM", "LINKEDIN"],
      "predictedEngagement": 0.042,
      "predictedReach": 1500,
      "confidence": 0.85
    }}
  ]
}}

Return only valid JSON."""

def fallback_recommendations(segment: AudienceSegment) -> list[RecommendationDraft]:
    return [RecommendationDraft(
        title="Engage with Educational Content",
        description="Create content that educates your audience",
        type="CONTENT_TOPIC",
        topics=["education", "tips"],
        tone="EDUCATIONAL",
        formats=["image", "text"],
        hashtags=["#tips", "#education"],
        platforms=list(segment.preferred_platforms or [DEFAULT_PLATFORM]),
        predictedEngagement=0.03,
        predictedReach=(segment.estimated_size or 0) * 0.1,
        confidence=0.5,
    )]

def generate_ai_recommendations(segment: AudienceSegment, history: list[ContentRecommendation], content_goal: str) -> list[RecommendationDraft]:
    try:
        raw = complete_json(
            "You are a content strategist specializing in personalized recommendations.",
            build_recommendation_prompt(segment, history, content_goal),
            model=settings.openai_default_model,
            temperature=0.3,
            max_tokens=1000,
        )
        drafts = RecommendationBatch.model_validate(raw).recommendations
        if not drafts:
            raise LLMResponseError("Model returned no recommendations")
        return drafts
    except LLM_FAILURES as e:
        log_event("recommendation_fallback_used", level="warning", segment_id=segment.id, reason=type(e).__name__)
        return fallback_recommendations(segment)

def generate_personalized_recommendations(
    db: Session,
    org_id: int,
    segment_id: int,
    content_goal: str = "engagement",
) -> list[ContentRecommendation]:
    segment = get_segment(db, org_id, segment_id)
    history = segment_performance_data(db, segment.id)
    drafts = generate_ai_recommendations(segment, history, content_goal)

    stored = []
    for draft in drafts:
        row = ContentRecommendation(
            org_id=org_id,
            segment_id=segment.id,
            title=draft.title,
            description=draft.description,
            recommendation_type=draft.type,
            content_goal=content_goal,
            suggested_topics=draft.topics,
            suggested_tone=draft.tone,
            suggested_formats=draft.formats,
            suggested_hashtags=draft.hashtags,
            platforms=draft.platforms,
            predicted_engagement=draft.predictedEngagement,
            predicted_reach=int(draft.predictedReach) if draft.predictedReach is not None else None,
            confidence_score=draft.confidence,
        )
        db.add(row)
        stored.append(row)
    db.commit()
    for row in stored:
        db.refresh(row)
    return stored

def record_recommendation_outcome(
    db: Session,
    org_id: int,
    recommendation_id: int,
    status: str,
    actual_performance: dict[str, Any] | None = None,
) -> ContentRecommendation | None:
    rec = db.execute(
        select(ContentRecommendation).where(
            ContentRecommendation.id == recommendation_id,
            ContentRecommendation.org_id == org_id,
        )
    ).scalars().first()
    if not rec:
        return None
    rec.status = status
    if actual_performance is not None:
        rec.actual_performance = actual_performance
    db.commit()
    db.refresh(rec)
    return rec

def analyze_time_patterns(engagements: list[AnalyticsMetric], tz_name: str = "UTC") -> dict[str, list[float]]:
    """Value-weighted histograms by local hour and weekday (0 = Monday)."""
    tz = pytz.timezone(tz_name)
    hourly = [0.0] * 24
    daily = [0.0] * 7
    for e in engagements:
        local = as_utc(e.created_at).astimezone(tz)
        weight = e.value or 1
        hourly[local.hour] += weight
        daily[local.weekday()] += weight
    return {"hourly": hourly, "daily": daily}

def score_posting_slots(hourly: list[float], daily: list[float], per_day: int = 3) -> list[dict[str, Any]]:
    slots = []
    for day in range(7):
        ranked = sorted(
            ({"hour": hour, "score": score * daily[day]} for hour, score in enumerate(hourly)),
            key=lambda s: s["score"],
            reverse=True,
        )
        for slot in ranked[:per_day]:
            if slot["score"] > 0:
                slots.append({"day_of_week": day, **slot})
    return slots

def predict_optimal_posting_times(
    db: Session,
    org_id: int,
    segment_id: int | None = None,
    platform: str | None = None,
    tz_name: str = "UTC",
) -> list[PostingTimeRecommendation]:
    if segment_id is not None:
        get_segment(db, org_id, segment_id)

    stmt = select(AnalyticsMetric).where(AnalyticsMetric.org_id == org_id)
    if platform:
        stmt = stmt.where(AnalyticsMetric.platform == platform)
    if segment_id is not None:
        stmt = stmt.where(AnalyticsMetric.segment_id == segment_id)
    history = db.execute(stmt.order_by(AnalyticsMetric.created_at.desc()).limit(HISTORY_LIMIT)).scalars().all()

    patterns = analyze_time_patterns(history, tz_name)
    data_points = sum(patterns["hourly"])
    slot_platform = platform or DEFAULT_PLATFORM

    results = []
    for slot in score_posting_slots(patterns["hourly"], patterns["daily"]):
        stmt = select(PostingTimeRecommendation).where(
            PostingTimeRecommendation.org_id == org_id,
            PostingTimeRecommendation.platform == slot_platform,
            PostingTimeRecommendation.day_of_week == slot["day_of_week"],
            PostingTimeRecommendation.hour == slot["hour"],
        )
        if segment_id is None:
            stmt = stmt.where(PostingTimeRecommendation.segment_id.is_(None))
        else:
            stmt = stmt.where(PostingTimeRecommendation.segment_id == segment_id)
        row = db.execute(stmt).scalars().first()

        if row is None:
            row = PostingTimeRecommendation(
                org_id=org_id,
                segment_id=segment_id,
                platform=slot_platform,
                day_of_week=slot["day_of_week"],
                hour=slot["hour"],
                timezone=tz_name,
                audience_size=int(slot["score"] // 10),
                data_points=data_points,
            )
            db.add(row)
        row.expected_engagement = slot["score"] / 100
        row.confidence_score = min(slot["score"] / 50, 1.0)
        row.timezone = tz_name
        results.append(row)

    db.commit()
    for row in results:
        db.refresh(row)
    return results
