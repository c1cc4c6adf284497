from unittest.mock import MagicMock, patch

from socialpulse.models import Org, SentimentTrend
from socialpulse.services import scheduler
from socialpulse.services.timeframe import utcnow

def test_refresh_sentiment_trends_covers_every_org(session_factory, db, org, make_sentiment):
    other = Org(name="Beta")
    db.add(other)
    db.commit()
    make_sentiment(0.4, utcnow())
    make_sentiment(-0.4, utcnow(), org_id=other.id)

    assert scheduler.refresh_sentiment_trends(session_factory) == 2

    db.expire_all()
    rows = db.query(SentimentTrend).filter(SentimentTrend.platform.is_(None)).all()
    assert {r.org_id for r in rows} == {org.id, other.id}

def test_failing_org_does_not_stop_the_run(session_factory, db, org):
    db.add(Org(name="Beta"))
    db.commit()

    job = MagicMock(side_effect=[RuntimeError("boom"), None])
    assert scheduler._for_each_org(session_factory, job, "test_job") == 1
    assert job.call_count == 2

def test_start_scheduler_registers_jobs(session_factory):
    with patch.object(scheduler.BackgroundScheduler, "start") as mock_start:
        sched = scheduler.start_scheduler(session_factory)

    mock_start.assert_called_once()
    assert {job.id for job in sched.get_jobs()} == {"refresh_sentiment_trends", "refresh_audience_segments"}
