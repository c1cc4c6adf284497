import math
from datetime import datetime, date, timedelta, timezone
from typing import Any

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from socialpulse.config import settings
from socialpulse.logging_setup import log_event
from socialpulse.models import SentimentAnalysis, SentimentTrend, CrisisAlert
from socialpulse.schemas import AlertRule, NotificationChannels, SentimentOptions, AuthorData
from socialpulse.services.sentiment_analyzer import (
    analyze_sentiment, store_sentiment_analysis, fetch_sentiments, period_metrics, calculate_severity,
    POSITIVE_CUTOFF, NEGATIVE_CUTOFF,
)
from socialpulse.services.timeframe import window_start, utcnow

RULE_TO_CRISIS_TYPE = {
    "sentiment_drop": "SENTIMENT_SPIKE",
    "volume_surge": "VOLUME_SURGE",
    "negative_spike": "NEGATIVE_TREND",
}

INFLUENCER_NEGATIVE_SCORE = -0.5
ATTENTION_SCORE = -0.7
REPORT_TIMEFRAME_DAYS = {"7d": 7, "30d": 30, "90d": 90}

def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)

def evaluate_alert_rule(db: Session, org_id: int, rule: AlertRule, now: datetime | None = None) -> dict[str, Any] | None:
    """Checks one rule against its own window and the window right before it."""
    now = now or utcnow()
    current_start = window_start(rule.timeframe, 1, now)
    comparison_start = current_start - (now - current_start)

    current = period_metrics(fetch_sentiments(db, org_id, current_start, now))
    comparison = period_metrics(fetch_sentiments(db, org_id, comparison_start, current_start, include_end=False))

    if rule.type == "sentiment_drop":
        value = current["avg_sentiment"] - comparison["avg_sentiment"]
        triggered = value <= rule.threshold
        description = f"Sentiment dropped by {abs(value):.2f} points"
    elif rule.type == "volume_surge":
        value = current["total_count"] / max(comparison["total_count"], 1)
        triggered = value >= rule.threshold
        description = f"Mention volume increased by {(value - 1) * 100:.0f}%"
    else:
        value = current["negative_ratio"]
        triggered = value >= rule.threshold
        description = f"Negative sentiment ratio reached {value * 100:.0f}%"

    if not triggered:
        return None

    return {
        "rule_id": rule.id,
        "type": rule.type,
        "timeframe": rule.timeframe,
        "current_value": value,
        "threshold": rule.threshold,
        "description": description,
        "severity": calculate_severity(abs(value - rule.threshold)),
    }

def send_notifications(alert: CrisisAlert, channels: NotificationChannels) -> dict[str, bool]:
    """Dispatches an alert to the HTTP channels. Email and SMS delivery live outside this service."""
    payload = {
        "alert_id": alert.id,
        "org_id": alert.org_id,
        "title": alert.title,
        "severity": alert.severity,
        "description": alert.description,
    }
    sent = {"email": False, "slack": False, "sms": False}

    if channels.slack and settings.slack_webhook_url:
        sent["slack"] = _post_json(settings.slack_webhook_url, {"text": f"[{alert.severity}] {alert.title}: {alert.description}"})
    if channels.webhook:
        sent["webhook"] = _post_json(channels.webhook, payload)
    if channels.email or channels.sms:
        log_event("alert_channel_skipped", alert_id=alert.id, email=channels.email, sms=channels.sms)

    return sent

def _post_json(url: str, payload: dict[str, Any]) -> bool:
    try:
        res = requests.post(url, json=payload, timeout=10)
        res.raise_for_status()
        return True
    except requests.RequestException as e:
        log_event("alert_notification_failed", level="warning", target=url.split("?")[0], detail=str(e))
        return False

def create_crisis_alerts(
    db: Session,
    org_id: int,
    alerts: list[dict[str, Any]],
    channels: NotificationChannels,
) -> list[CrisisAlert]:
    created = []
    for alert in alerts:
        crisis = CrisisAlert(
            org_id=org_id,
            alert_type=RULE_TO_CRISIS_TYPE.get(alert["type"], "BRAND_ATTACK"),
            severity=alert["severity"],
            title=f"{alert['type'].replace('_', ' ').upper()} Alert",
            description=alert["description"],
            trigger_metric=alert["type"],
            current_value=alert["current_value"],
            threshold_value=alert["threshold"],
            timeframe=alert["timeframe"],
            notifications_sent={},
        )
        db.add(crisis)
        db.flush()
        crisis.notifications_sent = send_notifications(crisis, channels)
        log_event("crisis_alert_created", org_id=org_id, alert_id=crisis.id, alert_type=crisis.alert_type, severity=crisis.severity)
        created.append(crisis)
    db.commit()
    return created

def monitor_workspace(
    db: Session,
    org_id: int,
    alert_rules: list[AlertRule] | None = None,
    channels: NotificationChannels | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()
    channels = channels or NotificationChannels()

    recent = fetch_sentiments(db, org_id, now - timedelta(hours=1), now)
    if not recent:
        return {"alerts": [], "status": "no_data"}

    alerts = []
    for rule in alert_rules or []:
        if not rule.isActive:
            continue
        alert = evaluate_alert_rule(db, org_id, rule, now=now)
        if alert:
            alerts.append(alert)

    if alerts:
        create_crisis_alerts(db, org_id, alerts, channels)

    update_sentiment_trends(db, org_id, now=now)
    return {"alerts": alerts, "status": "monitored"}

def _unique_topics(records: list[SentimentAnalysis], limit: int = 5) -> list[str]:
    topics: list[str] = []
    for record in records:
        for topic in record.detected_topics or []:
            if topic not in topics:
                topics.append(topic)
                if len(topics) == limit:
                    return topics
    return topics

def _find_trend(db: Session, org_id: int, day: date, platform: str | None) -> SentimentTrend | None:
    stmt = select(SentimentTrend).where(SentimentTrend.org_id == org_id, SentimentTrend.date == day)
    if platform is None:
        stmt = stmt.where(SentimentTrend.platform.is_(None))
    else:
        stmt = stmt.where(SentimentTrend.platform == platform)
    return db.execute(stmt).scalars().first()

def update_platform_trend(db: Session, org_id: int, day: date, platform: str | None) -> SentimentTrend | None:
    start, end = _day_bounds(day)
    records = fetch_sentiments(db, org_id, start, end, platform=platform, include_end=False)
    if not records:
        return None

    metrics = period_metrics(records)
    previous = _find_trend(db, org_id, day - timedelta(days=1), platform)
    sentiment_change = metrics["avg_sentiment"] - previous.avg_sentiment if previous else 0.0
    volume_change = (
        (metrics["total_count"] - previous.total_mentions) / max(previous.total_mentions, 1)
        if previous else 0.0
    )

    trend = _find_trend(db, org_id, day, platform)
    if trend is None:
        trend = SentimentTrend(org_id=org_id, date=day, platform=platform)
        db.add(trend)

    trend.total_mentions = metrics["total_count"]
    trend.avg_sentiment = metrics["avg_sentiment"]
    trend.positive_count = metrics["positive_count"]
    trend.negative_count = metrics["negative_count"]
    trend.neutral_count = metrics["neutral_count"]
    trend.sentiment_change = sentiment_change
    trend.volume_change = volume_change
    trend.top_positive_topics = _unique_topics([r for r in records if r.overall_score > POSITIVE_CUTOFF])
    trend.top_negative_topics = _unique_topics([r for r in records if r.overall_score < NEGATIVE_CUTOFF])
    return trend

def update_sentiment_trends(db: Session, org_id: int, now: datetime | None = None) -> list[SentimentTrend]:
    """Recomputes today's (UTC) overall rollup and one rollup per platform seen today."""
    today = (now or utcnow()).date()
    start, end = _day_bounds(today)

    platforms = db.execute(
        select(SentimentAnalysis.platform).distinct().where(
            SentimentAnalysis.org_id == org_id,
            SentimentAnalysis.created_at >= start,
            SentimentAnalysis.created_at < end,
        )
    ).scalars().all()

    updated = []
    for platform in [None, *sorted(platforms)]:
        trend = update_platform_trend(db, org_id, today, platform)
        if trend is not None:
            updated.append(trend)
    db.commit()
    return updated

def content_recommendations_for_mood(mood: str, trend: str, latest: SentimentTrend) -> list[str]:
    recommendations = []

    if mood == "positive":
        if trend == "improving":
            recommendations += [
                "Continue with current positive content themes",
                "Amplify successful content formats",
                "Engage more with positive community feedback",
            ]
        elif trend == "declining":
            recommendations += [
                "Investigate what changed in recent content",
                "Return to previously successful content types",
            ]
    elif mood == "negative":
        recommendations += [
            "Address negative feedback directly and transparently",
            "Pivot to more solution-oriented content",
            "Increase customer support visibility",
        ]
        if latest.top_negative_topics:
            recommendations.append(f"Address concerns about: {', '.join(latest.top_negative_topics[:3])}")
    elif mood == "mixed":
        recommendations += [
            "Acknowledge both positive and negative feedback",
            "Focus on balanced, educational content",
            "Highlight customer success stories",
        ]
    else:
        recommendations += [
            "Experiment with more engaging content formats",
            "Ask questions to encourage audience interaction",
            "Share behind-the-scenes content to build connection",
        ]

    if trend == "improving":
        recommendations.append("Monitor what's working and scale successful approaches")
    elif trend == "declining":
        recommendations.append("Consider temporary pause on controversial topics")
        recommendations.append("Focus on core value proposition and customer benefits")

    return recommendations

def mood_insights(trends: list[SentimentTrend]) -> list[str]:
    """trends is newest first."""
    if len(trends) < 2:
        return []

    latest, previous = trends[0], trends[1]
    insights = []

    volume_change = (latest.total_mentions - previous.total_mentions) / max(previous.total_mentions, 1)
    if abs(volume_change) > 0.2:
        insights.append(f"Mention volume {'increased' if volume_change > 0 else 'decreased'} by {abs(volume_change * 100):.0f}%")

    sentiment_change = latest.avg_sentiment - previous.avg_sentiment
    if abs(sentiment_change) > 0.1:
        insights.append(f"Overall sentiment {'improved' if sentiment_change > 0 else 'declined'} by {abs(sentiment_change):.2f} points")

    if latest.top_negative_topics:
        insights.append(f"Main concerns: {', '.join(latest.top_negative_topics[:3])}")
    if latest.top_positive_topics:
        insights.append(f"Positive feedback on: {', '.join(latest.top_positive_topics[:3])}")

    return insights

def get_mood_recommendations(db: Session, org_id: int, now: datetime | None = None) -> dict[str, Any]:
    since = ((now or utcnow()) - timedelta(days=7)).date()
    trends = db.execute(
        select(SentimentTrend)
        .where(
            SentimentTrend.org_id == org_id,
            SentimentTrend.platform.is_(None),
            SentimentTrend.date >= since,
        )
        .order_by(SentimentTrend.date.desc())
        .limit(7)
    ).scalars().all()

    if not trends:
        return {
            "current_mood": "neutral",
            "trend": "stable",
            "recommendations": ["Continue with current content strategy"],
        }

    latest = trends[0]
    average = sum(t.avg_sentiment for t in trends) / len(trends)
    direction = latest.avg_sentiment - trends[-1].avg_sentiment if len(trends) > 1 else 0.0

    if average > 0.3:
        mood = "positive"
    elif average < -0.3:
        mood = "negative"
    elif latest.positive_count > 0 and latest.negative_count > 0:
        mood = "mixed"
    else:
        mood = "neutral"

    if direction > 0.1:
        trend = "improving"
    elif direction < -0.1:
        trend = "declining"
    else:
        trend = "stable"

    return {
        "current_mood": mood,
        "trend": trend,
        "average_sentiment": average,
        "trend_direction": direction,
        "recommendations": content_recommendations_for_mood(mood, trend, latest),
        "top_positive_topics": latest.top_positive_topics or [],
        "top_negative_topics": latest.top_negative_topics or [],
        "insights": mood_insights(trends),
    }

def analyze_new_content(
    db: Session,
    *,
    org_id: int,
    source_type: str,
    source_id: str,
    content: str,
    platform: str,
    external_post_id: str | None = None,
    author: AuthorData | None = None,
) -> dict[str, Any]:
    sentiment = analyze_sentiment(content, SentimentOptions(includeEmotions=True, includeTopics=True, authorData=author))

    analysis = store_sentiment_analysis(
        db,
        org_id=org_id,
        source_type=source_type,
        source_id=source_id,
        content=content,
        platform=platform,
        sentiment=sentiment,
        external_post_id=external_post_id,
        author_id=author.id if author else None,
        author_handle=author.handle if author else None,
        follower_count=author.followersCount if author else None,
    )

    followers = (author.followersCount if author else None) or 0
    influencer_negative = (
        followers > settings.influencer_follower_threshold
        and sentiment.overallScore < INFLUENCER_NEGATIVE_SCORE
    )
    if influencer_negative:
        create_influencer_alert(db, org_id, analysis, author)

    return {
        "analysis": analysis,
        "sentiment": sentiment,
        "requires_attention": sentiment.overallScore < ATTENTION_SCORE or influencer_negative,
    }

def create_influencer_alert(db: Session, org_id: int, analysis: SentimentAnalysis, author: AuthorData | None) -> CrisisAlert:
    handle = (author.handle if author else None) or "unknown"
    alert = CrisisAlert(
        org_id=org_id,
        alert_type="BRAND_ATTACK",
        severity="HIGH",
        title="Negative Feedback from Influencer",
        description=f"High-follower account (@{handle}) posted negative content",
        trigger_metric="influencer_negative",
        current_value=analysis.overall_score,
        threshold_value=INFLUENCER_NEGATIVE_SCORE,
        timeframe="1h",
        key_mentions=[analysis.id],
        notifications_sent={"email": False, "slack": False, "sms": False},
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)
    log_event("influencer_alert_created", level="warning", org_id=org_id, alert_id=alert.id, author_handle=handle)
    return alert

def volatility(values: list[float]) -> float:
    """Population standard deviation."""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))

def significant_changes(trends: list[SentimentTrend]) -> list[dict[str, Any]]:
    """trends is oldest first."""
    changes = []
    for previous, current in zip(trends, trends[1:]):
        sentiment_shift = abs(current.avg_sentiment - previous.avg_sentiment)
        volume_shift = abs(current.total_mentions - previous.total_mentions) / max(previous.total_mentions, 1)

        if sentiment_shift > 0.3:
            changes.append({
                "date": current.date.isoformat(),
                "type": "sentiment_shift",
                "change": current.avg_sentiment - previous.avg_sentiment,
                "description": f"Sentiment {'improved' if current.avg_sentiment > previous.avg_sentiment else 'declined'} by {sentiment_shift:.2f} points",
            })
        if volume_shift > 1.0:
            changes.append({
                "date": current.date.isoformat(),
                "type": "volume_change",
                "change": volume_shift,
                "description": f"Mention volume {'increased' if current.total_mentions > previous.total_mentions else 'decreased'} by {round(volume_shift * 100)}%",
            })
    return changes

def trend_insights(trends: list[SentimentTrend], changes: list[dict[str, Any]]) -> list[str]:
    if not trends:
        return ["No sentiment data available for the selected timeframe"]

    earliest, latest = trends[0], trends[-1]
    insights = []

    overall_change = latest.avg_sentiment - earliest.avg_sentiment
    if abs(overall_change) > 0.1:
        insights.append(
            f"Overall sentiment has {'improved' if overall_change > 0 else 'declined'} by {abs(overall_change):.2f} points over the period"
        )

    volume_change = latest.total_mentions - earliest.total_mentions
    if abs(volume_change) > 10:
        insights.append(f"Mention volume has {'increased' if volume_change > 0 else 'decreased'} by {abs(volume_change)} mentions")

    spread = volatility([t.avg_sentiment for t in trends])
    if spread > 0.3:
        insights.append("Sentiment has been highly volatile - consider investigating triggers")
    elif spread < 0.1:
        insights.append("Sentiment has remained stable throughout the period")

    if changes:
        insights.append(f"Most recent significant change: {changes[-1]['description']}")
    if latest.top_negative_topics:
        insights.append(f"Main concerns: {', '.join(latest.top_negative_topics[:3])}")
    if latest.top_positive_topics:
        insights.append(f"Positive feedback on: {', '.join(latest.top_positive_topics[:3])}")

    return insights

def build_trend_report(
    db: Session,
    org_id: int,
    timeframe: str = "30d",
    platform: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()
    since = (now - timedelta(days=REPORT_TIMEFRAME_DAYS[timeframe])).date()

    stmt = select(SentimentTrend).where(SentimentTrend.org_id == org_id, SentimentTrend.date >= since)
    if platform:
        stmt = stmt.where(SentimentTrend.platform == platform)
    else:
        stmt = stmt.where(SentimentTrend.platform.is_(None))
    trends = db.execute(stmt.order_by(SentimentTrend.date.asc())).scalars().all()

    total_mentions = sum(t.total_mentions for t in trends)
    avg_sentiment = sum(t.avg_sentiment for t in trends) / len(trends) if trends else 0.0
    changes = significant_changes(trends)

    return {
        "trends": trends,
        "summary": {
            "total_mentions": total_mentions,
            "avg_sentiment": round(avg_sentiment, 2),
            "timeframe": timeframe,
            "platform": platform,
            "trend_count": len(trends),
        },
        "mood": get_mood_recommendations(db, org_id, now=now),
        "significant_changes": changes[-5:],
        "insights": trend_insights(trends, changes),
    }
