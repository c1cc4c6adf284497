from datetime import datetime, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import CrisisAlert
from ..schemas import (
    AnalyzeContentIn, BatchIn, MonitorIn, CrisisThresholds, Platform,
    SentimentAnalysisOut, SentimentTrendOut, CrisisAlertOut,
)
from ..security.rbac import get_current_org_id
from ..services import sentiment_analyzer, sentiment_monitor
from ..services.timeframe import as_utc, utcnow, parse_timeframe, TimeframeTooLargeError

router = APIRouter(prefix="/sentiment", tags=["sentiment"])

@router.post("/analyze")
def analyze_content(
    payload: AnalyzeContentIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    result = sentiment_monitor.analyze_new_content(
        db,
        org_id=org_id,
        source_type=payload.source_type,
        source_id=payload.source_id,
        content=payload.content,
        platform=payload.platform,
        external_post_id=payload.external_post_id,
        author=payload.author,
    )
    return {
        "analysis": SentimentAnalysisOut.model_validate(result["analysis"]),
        "sentiment": result["sentiment"],
        "requires_attention": result["requires_attention"],
    }

@router.post("/batch")
def analyze_batch(
    payload: BatchIn,
    org_id: int = Depends(get_current_org_id),
):
    """Scores texts without storing them."""
    items = [{"id": i.id, "text": i.text, "options": i.options} for i in payload.items]
    return {"results": sentiment_analyzer.analyze_batch(items)}

@router.get("/timeline")
def sentiment_timeline(
    start_date: datetime = Query(..., alias="from"),
    end_date: datetime | None = Query(None, alias="to"),
    platform: Platform | None = None,
    group_by: Literal["hour", "day", "week"] = "day",
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    start_date = as_utc(start_date)
    end = as_utc(end_date) if end_date else utcnow()
    if start_date > end:
        raise HTTPException(status_code=400, detail="'from' must be before 'to'")
    if end - start_date > timedelta(days=366):
        raise HTTPException(status_code=400, detail="Timeline range is limited to one year")

    return {
        "group_by": group_by,
        "buckets": sentiment_analyzer.get_sentiment_trends(db, org_id, start_date, end, platform=platform, group_by=group_by),
    }

@router.get("/trends")
def sentiment_trends(
    timeframe: Literal["7d", "30d", "90d"] = "30d",
    platform: Platform | None = None,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    report = sentiment_monitor.build_trend_report(db, org_id, timeframe=timeframe, platform=platform)
    report["trends"] = [SentimentTrendOut.model_validate(t) for t in report["trends"]]
    return {"success": True, **report}

@router.post("/trends")
def refresh_sentiment_trends(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    updated = sentiment_monitor.update_sentiment_trends(db, org_id)
    return {
        "success": True,
        "message": "Sentiment trends updated successfully",
        "trends": [SentimentTrendOut.model_validate(t) for t in updated],
    }

@router.get("/crises")
def detect_crises(
    timeframe: str = "24h",
    sentiment_drop: float = -0.3,
    volume_increase: float = 2.0,
    negative_spike: float = 0.7,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    thresholds = CrisisThresholds(
        sentimentDrop=sentiment_drop,
        volumeIncrease=volume_increase,
        negativeSpike=negative_spike,
    )
    try:
        crises = sentiment_analyzer.detect_crises(db, org_id, timeframe=timeframe, thresholds=thresholds)
    except TimeframeTooLargeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"crises": crises}

@router.post("/monitor")
def monitor_workspace(
    payload: MonitorIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    for rule in payload.alert_rules:
        try:
            parse_timeframe(rule.timeframe, 1)
        except TimeframeTooLargeError as e:
            raise HTTPException(status_code=400, detail=f"Alert rule {rule.id}: {e}")
    return sentiment_monitor.monitor_workspace(
        db, org_id,
        alert_rules=payload.alert_rules,
        channels=payload.notification_channels,
    )

@router.get("/mood")
def mood_recommendations(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    return sentiment_monitor.get_mood_recommendations(db, org_id)

@router.get("/alerts", response_model=list[CrisisAlertOut])
def list_alerts(
    status: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    stmt = select(CrisisAlert).where(CrisisAlert.org_id == org_id).order_by(CrisisAlert.created_at.desc(), CrisisAlert.id.desc())
    if status:
        stmt = stmt.where(CrisisAlert.status == status)
    return db.execute(stmt.limit(max(1, min(limit, 200)))).scalars().all()
