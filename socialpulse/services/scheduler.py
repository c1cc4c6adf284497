import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from socialpulse.models import Org
from socialpulse.services.sentiment_monitor import update_sentiment_trends
from socialpulse.services.audience_segmentation import update_audience_segments

logger = logging.getLogger(__name__)

def _for_each_org(db_factory: Callable[[], Session], job: Callable[[Session, int], object], label: str) -> int:
    """Runs job once per workspace; one failing workspace does not stop the rest."""
    t0 = time.time()
    db = db_factory()
    processed = 0
    try:
        org_ids = [org_id for (org_id,) in db.query(Org.id).all()]
        for org_id in org_ids:
            try:
                job(db, org_id)
                processed += 1
            except Exception:
                db.rollback()
                logger.exception(f"{label} failed for org {org_id}")
    finally:
        db.close()
        logger.info(f"{label} processed {processed} orgs in {time.time() - t0:.3f}s")
    return processed

def refresh_sentiment_trends(db_factory: Callable[[], Session]) -> int:
    return _for_each_org(db_factory, update_sentiment_trends, "refresh_sentiment_trends")

def refresh_audience_segments(db_factory: Callable[[], Session]) -> int:
    return _for_each_org(db_factory, update_audience_segments, "refresh_audience_segments")

def start_scheduler(db_factory: Callable[[], Session]) -> BackgroundScheduler:
    sched = BackgroundScheduler(timezone="UTC")

    sched.add_job(
        refresh_sentiment_trends,
        trigger="interval",
        hours=1,
        args=[db_factory],
        id="refresh_sentiment_trends",
        replace_existing=True,
        max_instances=1
    )
    sched.add_job(
        refresh_audience_segments,
        trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
        args=[db_factory],
        id="refresh_audience_segments",
        replace_existing=True,
        max_instances=1
    )

    sched.start()
    return sched
