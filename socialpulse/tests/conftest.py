import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.pop("OPENAI_API_KEY", None)

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from socialpulse.models import Base, Org, AnalyticsMetric, SentimentAnalysis

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)  # a Wednesday

@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()

@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def org(db):
    org = Org(name="Acme")
    db.add(org)
    db.commit()
    db.refresh(org)
    return org

@pytest.fixture
def make_sentiment(db, org):
    def _make(score, created_at, platform="TWITTER", topics=(), is_influencer=False, org_id=None):
        row = SentimentAnalysis(
            org_id=org_id or org.id,
            source_type="COMMENT",
            source_id=f"c-{score}-{created_at.isoformat()}",
            content="text",
            platform=platform,
            overall_score=score,
            positive_score=max(score, 0),
            negative_score=max(-score, 0),
            neutral_score=1 - abs(score),
            confidence_score=0.9,
            emotions={},
            detected_topics=list(topics),
            is_influencer=is_influencer,
            created_at=created_at,
        )
        db.add(row)
        db.commit()
        return row
    return _make

@pytest.fixture
def make_metric(db, org):
    def _make(created_at, value=1.0, platform="INSTAGRAM", content_type="image",
              metric_type="ENGAGEMENT", segment_id=None, member=None):
        row = AnalyticsMetric(
            org_id=org.id,
            platform=platform,
            metric_type=metric_type,
            content_type=content_type,
            value=value,
            segment_id=segment_id,
            audience_member_ref=member,
            created_at=created_at,
        )
        db.add(row)
        db.commit()
        return row
    return _make
