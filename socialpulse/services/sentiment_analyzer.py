"""
LLM-backed sentiment scoring with a keyword fallback, plus the read-side
aggregations (timeline buckets, crisis detection) over stored analyses.
"""
import json
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Iterable

from openai import OpenAIError
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from socialpulse.config import settings
from socialpulse.logging_setup import log_event
from socialpulse.models import SentimentAnalysis
from socialpulse.schemas import SentimentResult, SentimentOptions, CrisisThresholds
from socialpulse.services.llm import complete_json, LLMUnavailableError, LLMResponseError
from socialpulse.services.timeframe import window_start, utcnow, as_utc

# Scores strictly above/below these count as positive/negative
POSITIVE_CUTOFF = 0.1
NEGATIVE_CUTOFF = -0.1

POSITIVE_WORDS = {"good", "great", "excellent", "amazing", "love", "wonderful", "fantastic", "awesome", "brilliant", "perfect"}
NEGATIVE_WORDS = {"bad", "terrible", "awful", "hate", "horrible", "disgusting", "worst", "sucks", "disappointing", "annoying"}

FALLBACK_CONFIDENCE = 0.3
VERIFIED_FOLLOWER_THRESHOLD = 10000

SYSTEM_PROMPT = (
    "You are an expert sentiment analysis AI. Analyze the given text and return a detailed "
    "sentiment analysis in valid JSON format. Be precise and consistent in your scoring."
)

LLM_FAILURES = (LLMUnavailableError, LLMResponseError, ValidationError, OpenAIError)

def build_sentiment_prompt(content: str, options: SentimentOptions) -> str:
    author = options.authorData
    followers = author.followersCount if author else None
    is_influencer = bool(author and (author.isVerified or (followers or 0) > VERIFIED_FOLLOWER_THRESHOLD))

    emotions_block = ""
    if options.includeEmotions:
        emotions_block = """"emotions": {
    "joy": <number between 0 and 1>,
    "sadness": <number between 0 and 1>,
    "anger": <number between 0 and 1>,
    "fear": <number between 0 and 1>,
    "surprise": <number between 0 and 1>,
    "disgust": <number between 0 and 1>
  },"""
    language_line = f'"language": "{options.language}",' if options.language else '"language": "<detected language code>",'
    topics_line = '"detectedTopics": ["<topic1>", "<topic2>", ...],' if options.includeTopics else '"detectedTopics": [],'

    return f"""
Analyze the sentiment of the following text and return a JSON response with the following structure:

{{
  "overallScore": <number between -1 and 1, where -1 is very negative, 0 is neutral, 1 is very positive>,
  "positiveScore": <number between 0 and 1 indicating positive sentiment strength>,
  "negativeScore": <number between 0 and 1 indicating negative sentiment strength>,
  "neutralScore": <number between 0 and 1 indicating neutral sentiment strength>,
  "confidenceScore": <number between 0 and 1 indicating confidence in the analysis>,
  {emotions_block}
  {language_line}
  {topics_line}
  "isInfluencer": {json.dumps(is_influencer)},
  "followerCount": {json.dumps(followers)}
}}

Text to analyze: {json.dumps(content)}

Return only valid JSON, no additional text or formatting."""

def fallback_sentiment(content: str, options: SentimentOptions | None = None) -> SentimentResult:
    """Keyword count scoring used whenever the model is unavailable or misbehaves."""
    options = options or SentimentOptions()
    words = re.findall(r"[a-z']+", (content or "").lower())
    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)

    overall, pos_score, neg_score, neutral = 0.0, 0.0, 0.0, 1.0
    total = positive + negative
    if total > 0:
        overall = (positive - negative) / total
        pos_score = positive / total
        neg_score = negative / total
        neutral = max(0.0, 1 - pos_score - neg_score)

    author = options.authorData
    return SentimentResult(
        overallScore=overall,
        positiveScore=pos_score,
        negativeScore=neg_score,
        neutralScore=neutral,
        confidenceScore=FALLBACK_CONFIDENCE,
        emotions={
            "joy": pos_score * 0.7,
            "sadness": neg_score * 0.3,
            "anger": neg_score * 0.4,
            "fear": neg_score * 0.2,
            "surprise": 0.1,
            "disgust": neg_score * 0.1,
        },
        language=options.language or "en",
        detectedTopics=[],
        isInfluencer=bool(author and author.isVerified),
        followerCount=author.followersCount if author else None,
    )

def analyze_sentiment(content: str, options: SentimentOptions | None = None) -> SentimentResult:
    options = options or SentimentOptions()
    try:
        raw = complete_json(
            SYSTEM_PROMPT,
            build_sentiment_prompt(content, options),
            model=settings.openai_default_model,
            temperature=0.1,
            max_tokens=500,
        )
        return SentimentResult.model_validate(raw)
    except LLM_FAILURES as e:
        log_event("sentiment_fallback_used", level="warning", reason=type(e).__name__, detail=str(e)[:200])
        return fallback_sentiment(content, options)

def analyze_batch(
    items: list[dict[str, Any]],
    chunk_size: int | None = None,
    delay_seconds: float | None = None,
) -> list[dict[str, Any]]:
    """
    Scores items of the form {"id", "text", "options"} in chunks.

    Each chunk runs concurrently; chunks are separated by a pause so the
    upstream rate limit is respected. Output order matches input order.
    """
    chunk_size = chunk_size or settings.sentiment_batch_size
    delay = settings.sentiment_batch_delay_seconds if delay_seconds is None else delay_seconds
    results = []

    for start in range(0, len(items), chunk_size):
        chunk = items[start:start + chunk_size]
        with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
            futures = [pool.submit(analyze_sentiment, item["text"], item.get("options")) for item in chunk]
            for item, future in zip(chunk, futures):
                try:
                    result = future.result()
                except Exception as e:
                    log_event("sentiment_batch_item_failed", level="error", item_id=item["id"], detail=str(e))
                    result = fallback_sentiment(item["text"], item.get("options"))
                results.append({"id": item["id"], "result": result})

        if start + chunk_size < len(items) and delay > 0:
            time.sleep(delay)

    return results

def store_sentiment_analysis(
    db: Session,
    *,
    org_id: int,
    source_type: str,
    source_id: str,
    content: str,
    platform: str,
    sentiment: SentimentResult,
    external_post_id: str | None = None,
    author_id: str | None = None,
    author_handle: str | None = None,
    follower_count: int | None = None,
) -> SentimentAnalysis:
    analysis = SentimentAnalysis(
        org_id=org_id,
        external_post_id=external_post_id,
        source_type=source_type,
        source_id=source_id,
        content=content,
        platform=platform,
        overall_score=sentiment.overallScore,
        positive_score=sentiment.positiveScore,
        negative_score=sentiment.negativeScore,
        neutral_score=sentiment.neutralScore,
        confidence_score=sentiment.confidenceScore,
        emotions=sentiment.emotions.model_dump(),
        language=sentiment.language,
        detected_topics=list(sentiment.detectedTopics),
        author_id=author_id,
        author_handle=author_handle,
        is_influencer=bool(sentiment.isInfluencer),
        follower_count=follower_count,
    )
    db.add(analysis)
    db.commit()
    db.refresh(analysis)
    return analysis

def fetch_sentiments(
    db: Session,
    org_id: int,
    start: datetime,
    end: datetime | None = None,
    platform: str | None = None,
    include_end: bool = True,
) -> list[SentimentAnalysis]:
    stmt = select(SentimentAnalysis).where(
        SentimentAnalysis.org_id == org_id,
        SentimentAnalysis.created_at >= start,
    )
    if end is not None:
        stmt = stmt.where(SentimentAnalysis.created_at <= end if include_end else SentimentAnalysis.created_at < end)
    if platform:
        stmt = stmt.where(SentimentAnalysis.platform == platform)
    return db.execute(stmt.order_by(SentimentAnalysis.created_at.asc())).scalars().all()

def period_metrics(records: Iterable[Any]) -> dict[str, float]:
    scores = [r.overall_score for r in records]
    if not scores:
        return {
            "total_count": 0, "avg_sentiment": 0.0,
            "positive_count": 0, "negative_count": 0, "neutral_count": 0,
            "negative_ratio": 0.0, "positive_ratio": 0.0,
        }

    total = len(scores)
    positive = sum(1 for s in scores if s > POSITIVE_CUTOFF)
    negative = sum(1 for s in scores if s < NEGATIVE_CUTOFF)
    return {
        "total_count": total,
        "avg_sentiment": sum(scores) / total,
        "positive_count": positive,
        "negative_count": negative,
        "neutral_count": total - positive - negative,
        "negative_ratio": negative / total,
        "positive_ratio": positive / total,
    }

def calculate_severity(value: float) -> str:
    if value >= 0.8:
        return "CRITICAL"
    if value >= 0.6:
        return "HIGH"
    if value >= 0.3:
        return "MEDIUM"
    return "LOW"

def _bucket_key(created_at: datetime, group_by: str) -> str:
    ts = as_utc(created_at)
    if group_by == "hour":
        return ts.strftime("%Y-%m-%dT%H:00")
    if group_by == "week":
        return (ts.date() - timedelta(days=ts.weekday())).isoformat()
    return ts.date().isoformat()

def aggregate_sentiment(records: Iterable[Any], group_by: str = "day") -> list[dict[str, Any]]:
    """Buckets records (oldest first) by hour, day or ISO week."""
    groups: dict[str, dict[str, Any]] = {}
    for record in records:
        key = _bucket_key(record.created_at, group_by)
        group = groups.setdefault(key, {"records": [], "topics": []})
        group["records"].append(record)
        for topic in record.detected_topics or []:
            if topic not in group["topics"]:
                group["topics"].append(topic)

    buckets = []
    for key, group in groups.items():
        metrics = period_metrics(group["records"])
        buckets.append({
            "date": key,
            "total_mentions": metrics["total_count"],
            "avg_sentiment": metrics["avg_sentiment"],
            "positive_count": metrics["positive_count"],
            "negative_count": metrics["negative_count"],
            "neutral_count": metrics["neutral_count"],
            "top_topics": group["topics"][:5],
            "influencer_mentions": sum(1 for r in group["records"] if r.is_influencer),
        })
    return buckets

def get_sentiment_trends(
    db: Session,
    org_id: int,
    start: datetime,
    end: datetime,
    platform: str | None = None,
    group_by: str = "day",
) -> list[dict[str, Any]]:
    records = fetch_sentiments(db, org_id, start, end, platform=platform)
    return aggregate_sentiment(records, group_by)

def evaluate_crises(
    current: dict[str, float],
    previous: dict[str, float],
    thresholds: CrisisThresholds,
) -> list[dict[str, Any]]:
    crises = []

    change = current["avg_sentiment"] - previous["avg_sentiment"]
    if change <= thresholds.sentimentDrop:
        crises.append({
            "type": "SENTIMENT_SPIKE",
            "severity": calculate_severity(abs(change)),
            "current_value": current["avg_sentiment"],
            "previous_value": previous["avg_sentiment"],
            "change": change,
        })

    volume_ratio = current["total_count"] / max(previous["total_count"], 1)
    if volume_ratio >= thresholds.volumeIncrease:
        crises.append({
            "type": "VOLUME_SURGE",
            "severity": calculate_severity(volume_ratio - 1),
            "current_value": current["total_count"],
            "previous_value": previous["total_count"],
            "change": volume_ratio,
        })

    if current["negative_ratio"] >= thresholds.negativeSpike:
        crises.append({
            "type": "NEGATIVE_TREND",
            "severity": calculate_severity(current["negative_ratio"]),
            "current_value": current["negative_ratio"],
            "previous_value": previous["negative_ratio"],
            "change": current["negative_ratio"] - previous["negative_ratio"],
        })

    return crises

def detect_crises(
    db: Session,
    org_id: int,
    timeframe: str = "24h",
    thresholds: CrisisThresholds | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Compares the last `timeframe` against the window of equal length before it."""
    thresholds = thresholds or CrisisThresholds()
    now = now or utcnow()
    start = window_start(timeframe, 24, now)
    compare_start = start - (now - start)

    current = period_metrics(fetch_sentiments(db, org_id, start, now))
    previous = period_metrics(fetch_sentiments(db, org_id, compare_start, start, include_end=False))

    crises = evaluate_crises(current, previous, thresholds)
    if crises:
        log_event("crises_detected", org_id=org_id, timeframe=timeframe, types=[c["type"] for c in crises])
    return crises
