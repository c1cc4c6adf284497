from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from socialpulse.config import settings
from socialpulse.db import get_db
from socialpulse.main import app
from socialpulse.models import AnalyticsMetric, AudienceSegment, SentimentAnalysis, Org
from socialpulse.security.rbac import get_current_org_id
from socialpulse.services.timeframe import as_utc, utcnow
from socialpulse.tests.conftest import NOW

@pytest.fixture
def client(db, org):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_org_id] = lambda: org.id
    try:
        with patch.object(settings, "openai_api_key", None):
            yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert "X-Request-Id" in res.headers

def test_ingest_and_list_metrics(client, db, org):
    res = client.post("/metrics", json={"metrics": [
        {"platform": "INSTAGRAM", "value": 12, "content_type": "video", "created_at": "2026-10-14T09:00:00Z"},
        {"platform": "TWITTER", "metric_type": "REACH", "value": 300},
    ]})
    assert res.status_code == 200
    assert [m["platform"] for m in res.json()] == ["INSTAGRAM", "TWITTER"]
    assert db.query(AnalyticsMetric).filter(AnalyticsMetric.org_id == org.id).count() == 2

    res = client.get("/metrics", params={"platform": "TWITTER"})
    assert [m["metric_type"] for m in res.json()] == ["REACH"]

def test_ingest_rejects_foreign_segment(client, db):
    other = Org(name="Other")
    db.add(other)
    db.commit()
    foreign = AudienceSegment(org_id=other.id, name="Theirs")
    db.add(foreign)
    db.commit()

    res = client.post("/metrics", json={"metrics": [{"platform": "TWITTER", "segment_id": foreign.id}]})
    assert res.status_code == 404

def test_ingest_rejects_unknown_platform(client):
    res = client.post("/metrics", json={"metrics": [{"platform": "MYSPACE"}]})
    assert res.status_code == 422

def test_analyze_content_stores_fallback_result(client, db, org):
    res = client.post("/sentiment/analyze", json={
        "source_type": "COMMENT",
        "source_id": "c-42",
        "content": "Worst release ever, terrible support",
        "platform": "TWITTER",
    })
    assert res.status_code == 200
    body = res.json()
    assert body["sentiment"]["overallScore"] == -1.0
    assert body["sentiment"]["confidenceScore"] == 0.3
    assert body["requires_attention"] is True
    assert body["analysis"]["source_id"] == "c-42"
    assert db.query(SentimentAnalysis).count() == 1

def test_batch_keeps_input_order(client):
    with patch("socialpulse.services.sentiment_analyzer.time.sleep"):
        res = client.post("/sentiment/batch", json={"items": [
            {"id": "a", "text": "awesome"},
            {"id": "b", "text": "awful"},
        ]})
    assert res.status_code == 200
    results = res.json()["results"]
    assert [r["id"] for r in results] == ["a", "b"]
    assert results[0]["result"]["overallScore"] == 1.0
    assert results[1]["result"]["overallScore"] == -1.0

def test_timeline_groups_by_day(client, make_sentiment):
    make_sentiment(0.5, NOW - timedelta(hours=1), topics=["launch"])
    make_sentiment(-0.5, NOW - timedelta(days=1))

    res = client.get("/sentiment/timeline", params={
        "from": "2026-10-13T00:00:00Z", "to": "2026-10-15T00:00:00Z", "group_by": "day",
    })
    assert res.status_code == 200
    buckets = res.json()["buckets"]
    assert [b["date"] for b in buckets] == ["2026-10-13", "2026-10-14"]
    assert buckets[1]["top_topics"] == ["launch"]

def test_timeline_rejects_inverted_and_oversized_ranges(client):
    res = client.get("/sentiment/timeline", params={"from": "2026-10-14T00:00:00Z", "to": "2026-10-01T00:00:00Z"})
    assert res.status_code == 400
    res = client.get("/sentiment/timeline", params={"from": "2024-01-01T00:00:00Z", "to": "2026-10-01T00:00:00Z"})
    assert res.status_code == 400

def test_crises_mood_and_monitor_on_empty_workspace(client):
    assert client.get("/sentiment/crises").json() == {"crises": []}
    assert client.get("/sentiment/mood").json()["current_mood"] == "neutral"

    res = client.post("/sentiment/monitor", json={"alert_rules": [{"id": "r1", "type": "negative_spike", "threshold": 0.5}]})
    assert res.json() == {"alerts": [], "status": "no_data"}
    assert client.get("/sentiment/alerts").json() == []

def test_trend_report_rejects_unknown_timeframe(client):
    assert client.get("/sentiment/trends", params={"timeframe": "7d"}).json()["success"] is True
    assert client.get("/sentiment/trends", params={"timeframe": "2d"}).status_code == 422

def test_cluster_with_too_little_data(client):
    res = client.post("/audience/segments/cluster", json={"timeframe": "30d"})
    assert res.status_code == 200
    assert res.json()["success"] is False
    assert client.get("/audience/segments").json() == []

def test_recommendations_for_missing_segment(client):
    res = client.post("/audience/segments/999/recommendations", json={"content_goal": "reach"})
    assert res.status_code == 404

def test_recommendation_outcome_for_missing_recommendation(client):
    res = client.patch("/audience/recommendations/999", json={"status": "IMPLEMENTED"})
    assert res.status_code == 404

def test_segment_recommendations_round_trip(client, db, org):
    segment = AudienceSegment(org_id=org.id, name="Makers", estimated_size=500, preferred_platforms=["LINKEDIN"])
    db.add(segment)
    db.commit()

    res = client.post(f"/audience/segments/{segment.id}/recommendations", json={})
    assert res.status_code == 200
    rec = res.json()[0]
    assert rec["platforms"] == ["LINKEDIN"]
    assert rec["predicted_reach"] == 50

    res = client.patch(f"/audience/recommendations/{rec['id']}", json={
        "status": "IMPLEMENTED", "actual_performance": {"engagement": 5.5},
    })
    assert res.json()["status"] == "IMPLEMENTED"
    assert res.json()["actual_performance"] == {"engagement": 5.5}

def test_posting_times_with_unknown_timezone(client):
    res = client.post("/audience/posting-times", params={"tz": "Mars/Olympus_Mons"})
    assert res.status_code == 400

def test_patterns_for_missing_segment(client):
    assert client.post("/audience/patterns", params={"segment_id": 5}).status_code == 404

def test_ingest_converts_offset_timestamps_to_utc(client, db, org):
    res = client.post("/metrics", json={"metrics": [
        {"platform": "TWITTER", "value": 2, "created_at": "2026-10-14T10:00:00+05:00"},
    ]})
    assert res.status_code == 200

    stored = db.query(AnalyticsMetric).filter(AnalyticsMetric.org_id == org.id).one()
    assert as_utc(stored.created_at) == datetime(2026, 10, 14, 5, 0, tzinfo=timezone.utc)

    slots = client.post("/audience/posting-times", params={"platform": "TWITTER"}).json()
    assert [(s["day_of_week"], s["hour"]) for s in slots] == [(2, 5)]

def test_oversized_timeframes_are_rejected(client, make_sentiment):
    make_sentiment(-0.9, utcnow())

    assert client.get("/sentiment/crises", params={"timeframe": "99999w"}).status_code == 400
    assert client.post("/audience/patterns", params={"timeframe": "99999w"}).status_code == 400
    assert client.post("/audience/segments/cluster", json={"timeframe": "99999w"}).status_code == 400

    res = client.post("/sentiment/monitor", json={"alert_rules": [
        {"id": "r1", "type": "negative_spike", "threshold": 0.5, "timeframe": "99999w"},
    ]})
    assert res.status_code == 400
    assert "r1" in res.json()["detail"]

def test_year_long_crisis_window_is_accepted(client):
    assert client.get("/sentiment/crises", params={"timeframe": "52w"}).json() == {"crises": []}
