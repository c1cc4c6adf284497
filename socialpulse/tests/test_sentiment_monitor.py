from datetime import date, timedelta
from unittest.mock import patch, MagicMock

import pytest
import requests

from socialpulse.models import SentimentTrend, CrisisAlert
from socialpulse.schemas import AlertRule, NotificationChannels, AuthorData
from socialpulse.services import sentiment_monitor
from socialpulse.tests.conftest import NOW

NEGATIVE_PAYLOAD = {
    "overallScore": -0.8,
    "positiveScore": 0.0,
    "negativeScore": 0.9,
    "neutralScore": 0.1,
    "confidenceScore": 0.9,
    "emotions": {"joy": 0.0, "sadness": 0.3, "anger": 0.8, "fear": 0.1, "surprise": 0.0, "disgust": 0.4},
    "language": "en",
    "detectedTopics": ["refunds"],
}

def _trend(db, org, day, avg, total=10, platform=None, pos=0, neg=0, top_pos=(), top_neg=()):
    row = SentimentTrend(
        org_id=org.id, date=day, platform=platform, total_mentions=total, avg_sentiment=avg,
        positive_count=pos, negative_count=neg, neutral_count=max(total - pos - neg, 0),
        top_positive_topics=list(top_pos), top_negative_topics=list(top_neg),
    )
    db.add(row)
    db.commit()
    return row

def test_update_sentiment_trends_upserts_overall_and_platform_rows(db, org, make_sentiment):
    _trend(db, org, date(2026, 10, 13), 0.5, total=2)
    make_sentiment(0.6, NOW - timedelta(hours=1), platform="TWITTER", topics=["price"])
    make_sentiment(-0.4, NOW - timedelta(hours=2), platform="TWITTER", topics=["delivery"])
    make_sentiment(0.0, NOW - timedelta(hours=3), platform="INSTAGRAM", topics=["ui"])
    # Yesterday's record must not leak into today's rollup
    make_sentiment(-1.0, NOW - timedelta(days=1), platform="TWITTER")

    updated = sentiment_monitor.update_sentiment_trends(db, org.id, now=NOW)
    assert [t.platform for t in updated] == [None, "INSTAGRAM", "TWITTER"]

    overall = updated[0]
    assert overall.total_mentions == 3
    assert overall.avg_sentiment == pytest.approx(0.2 / 3)
    assert (overall.positive_count, overall.negative_count, overall.neutral_count) == (1, 1, 1)
    assert overall.sentiment_change == pytest.approx(0.2 / 3 - 0.5)
    assert overall.volume_change == pytest.approx(0.5)
    assert overall.top_positive_topics == ["price"]
    assert overall.top_negative_topics == ["delivery"]

    sentiment_monitor.update_sentiment_trends(db, org.id, now=NOW)
    today_rows = db.query(SentimentTrend).filter(SentimentTrend.date == date(2026, 10, 14)).all()
    assert len(today_rows) == 3

def test_mood_defaults_without_trends(db, org):
    mood = sentiment_monitor.get_mood_recommendations(db, org.id, now=NOW)
    assert mood == {
        "current_mood": "neutral",
        "trend": "stable",
        "recommendations": ["Continue with current content strategy"],
    }

def test_mood_negative_and_declining(db, org):
    _trend(db, org, date(2026, 10, 12), -0.35, total=10, neg=6)
    _trend(db, org, date(2026, 10, 13), -0.4, total=10, neg=7)
    _trend(db, org, date(2026, 10, 14), -0.7, total=20, neg=15, top_neg=["delivery", "price"])
    _trend(db, org, date(2026, 10, 14), 0.9, total=5, platform="TWITTER", pos=5)

    mood = sentiment_monitor.get_mood_recommendations(db, org.id, now=NOW)

    assert mood["current_mood"] == "negative"
    assert mood["trend"] == "declining"
    assert mood["trend_direction"] == pytest.approx(-0.35)
    assert "Address concerns about: delivery, price" in mood["recommendations"]
    assert "Consider temporary pause on controversial topics" in mood["recommendations"]
    assert len(mood["recommendations"]) == 6
    assert mood["insights"] == [
        "Mention volume increased by 100%",
        "Overall sentiment declined by 0.30 points",
        "Main concerns: delivery, price",
    ]

def test_mood_mixed_when_latest_day_has_both_sides(db, org):
    _trend(db, org, date(2026, 10, 14), 0.05, pos=3, neg=2)
    mood = sentiment_monitor.get_mood_recommendations(db, org.id, now=NOW)
    assert mood["current_mood"] == "mixed"
    assert mood["trend"] == "stable"
    assert mood["recommendations"][0] == "Acknowledge both positive and negative feedback"

def test_analyze_new_content_raises_influencer_alert(db, org):
    author = AuthorData(id="u1", handle="bigvoice", followersCount=250000)
    with patch("socialpulse.services.sentiment_analyzer.complete_json", return_value=NEGATIVE_PAYLOAD):
        result = sentiment_monitor.analyze_new_content(
            db, org_id=org.id, source_type="MENTION", source_id="m-1",
            content="Still waiting on my refund", platform="TWITTER", author=author,
        )

    assert result["requires_attention"] is True
    assert result["analysis"].author_handle == "bigvoice"
    assert result["analysis"].follower_count == 250000

    alert = db.query(CrisisAlert).one()
    assert alert.alert_type == "BRAND_ATTACK"
    assert alert.severity == "HIGH"
    assert alert.key_mentions == [result["analysis"].id]
    assert "@bigvoice" in alert.description

def test_analyze_new_content_small_account_is_not_escalated(db, org):
    payload = {**NEGATIVE_PAYLOAD, "overallScore": -0.6}
    with patch("socialpulse.services.sentiment_analyzer.complete_json", return_value=payload):
        result = sentiment_monitor.analyze_new_content(
            db, org_id=org.id, source_type="COMMENT", source_id="c-1",
            content="meh", platform="INSTAGRAM", author=AuthorData(handle="small", followersCount=50),
        )

    assert result["requires_attention"] is False
    assert db.query(CrisisAlert).count() == 0

def test_monitor_workspace_without_recent_data(db, org, make_sentiment):
    make_sentiment(-0.9, NOW - timedelta(hours=5))
    result = sentiment_monitor.monitor_workspace(db, org.id, [AlertRule(id="r", type="negative_spike", threshold=0.1)], now=NOW)
    assert result == {"alerts": [], "status": "no_data"}

def test_monitor_workspace_creates_alerts_and_notifies(db, org, make_sentiment):
    make_sentiment(0.5, NOW - timedelta(minutes=90))
    for minutes in (5, 10, 15, 20):
        make_sentiment(-0.9, NOW - timedelta(minutes=minutes), topics=["outage"])

    rules = [
        AlertRule(id="neg", type="negative_spike", threshold=0.7, timeframe="1h"),
        AlertRule(id="vol", type="volume_surge", threshold=3, timeframe="1h"),
        AlertRule(id="drop", type="sentiment_drop", threshold=-0.1, timeframe="1h", isActive=False),
    ]
    channels = NotificationChannels(webhook="https://hooks.example.com/alerts", email=True)

    with patch("socialpulse.services.sentiment_monitor.requests.post", return_value=MagicMock()) as mock_post:
        result = sentiment_monitor.monitor_workspace(db, org.id, rules, channels, now=NOW)

    assert result["status"] == "monitored"
    assert [a["rule_id"] for a in result["alerts"]] == ["neg", "vol"]
    assert result["alerts"][0]["severity"] == "MEDIUM"
    assert result["alerts"][1]["severity"] == "CRITICAL"
    assert result["alerts"][1]["description"] == "Mention volume increased by 300%"
    assert mock_post.call_count == 2

    alerts = db.query(CrisisAlert).order_by(CrisisAlert.id).all()
    assert [a.alert_type for a in alerts] == ["NEGATIVE_TREND", "VOLUME_SURGE"]
    assert alerts[0].title == "NEGATIVE SPIKE Alert"
    assert alerts[0].timeframe == "1h"
    assert alerts[0].notifications_sent == {"email": False, "slack": False, "sms": False, "webhook": True}

    trend = db.query(SentimentTrend).filter(SentimentTrend.platform.is_(None)).one()
    assert trend.total_mentions == 5

def test_failed_webhook_is_recorded(db, org, make_sentiment):
    make_sentiment(-0.9, NOW - timedelta(minutes=5))
    rules = [AlertRule(id="neg", type="negative_spike", threshold=0.5)]
    channels = NotificationChannels(webhook="https://hooks.example.com/alerts")

    with patch("socialpulse.services.sentiment_monitor.requests.post", side_effect=requests.ConnectionError("down")):
        sentiment_monitor.monitor_workspace(db, org.id, rules, channels, now=NOW)

    alert = db.query(CrisisAlert).one()
    assert alert.notifications_sent["webhook"] is False

def test_volatility():
    assert sentiment_monitor.volatility([0.3]) == 0
    assert sentiment_monitor.volatility([0.0, 1.0]) == pytest.approx(0.5)

def test_trend_report_summarizes_stored_trends(db, org):
    _trend(db, org, date(2026, 10, 10), 0.5, total=10)
    _trend(db, org, date(2026, 10, 11), 0.1, total=10)
    _trend(db, org, date(2026, 10, 12), 0.15, total=25, top_pos=["support"])
    _trend(db, org, date(2026, 9, 1), -0.9, total=100)

    report = sentiment_monitor.build_trend_report(db, org.id, timeframe="7d", now=NOW)

    assert report["summary"]["total_mentions"] == 45
    assert report["summary"]["avg_sentiment"] == 0.25
    assert report["summary"]["trend_count"] == 3
    assert [c["type"] for c in report["significant_changes"]] == ["sentiment_shift", "volume_change"]
    assert report["significant_changes"][0]["description"] == "Sentiment declined by 0.40 points"
    assert report["insights"] == [
        "Overall sentiment has declined by 0.35 points over the period",
        "Mention volume has increased by 15 mentions",
        "Most recent significant change: Mention volume increased by 150%",
        "Positive feedback on: support",
    ]

def test_trend_report_without_data(db, org):
    report = sentiment_monitor.build_trend_report(db, org.id, timeframe="30d", now=NOW)
    assert report["insights"] == ["No sentiment data available for the selected timeframe"]
    assert report["summary"]["avg_sentiment"] == 0
