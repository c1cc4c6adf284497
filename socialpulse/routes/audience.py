from fastapi import APIRouter, Depends, HTTPException
from pytz.exceptions import UnknownTimeZoneError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import AudienceSegment
from ..schemas import (
    ClusterIn, ClusterOut, RecommendationsIn, RecommendationOutcomeIn, Platform,
    AudienceSegmentOut, EngagementPatternOut, ContentRecommendationOut, PostingTimeOut,
)
from ..security.rbac import get_current_org_id
from ..services import audience_segmentation
from ..services.audience_segmentation import SegmentNotFoundError
from ..services.timeframe import TimeframeTooLargeError

router = APIRouter(prefix="/audience", tags=["audience"])

@router.get("/segments", response_model=list[AudienceSegmentOut])
def list_segments(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    stmt = select(AudienceSegment).where(AudienceSegment.org_id == org_id).order_by(AudienceSegment.id.asc())
    if not include_inactive:
        stmt = stmt.where(AudienceSegment.is_active == True)
    return db.execute(stmt).scalars().all()

@router.post("/segments/cluster", response_model=ClusterOut)
def cluster_audience(
    payload: ClusterIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    try:
        return audience_segmentation.cluster_audience(
            db, org_id,
            timeframe=payload.timeframe,
            min_segment_size=payload.min_segment_size,
            max_segments=payload.max_segments,
        )
    except TimeframeTooLargeError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/segments/refresh", response_model=list[AudienceSegmentOut])
def refresh_segments(
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    return audience_segmentation.update_audience_segments(db, org_id)

@router.post("/patterns", response_model=list[EngagementPatternOut])
def analyze_patterns(
    segment_id: int | None = None,
    timeframe: str = "30d",
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    try:
        if segment_id is not None:
            audience_segmentation.get_segment(db, org_id, segment_id)
        return audience_segmentation.analyze_engagement_patterns(db, org_id, segment_id=segment_id, timeframe=timeframe)
    except SegmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TimeframeTooLargeError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/segments/{segment_id}/recommendations", response_model=list[ContentRecommendationOut])
def generate_recommendations(
    segment_id: int,
    payload: RecommendationsIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    try:
        return audience_segmentation.generate_personalized_recommendations(
            db, org_id, segment_id, content_goal=payload.content_goal
        )
    except SegmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.patch("/recommendations/{recommendation_id}", response_model=ContentRecommendationOut)
def record_outcome(
    recommendation_id: int,
    payload: RecommendationOutcomeIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    rec = audience_segmentation.record_recommendation_outcome(
        db, org_id, recommendation_id, payload.status, payload.actual_performance
    )
    if not rec:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    return rec

@router.post("/posting-times", response_model=list[PostingTimeOut])
def predict_posting_times(
    segment_id: int | None = None,
    platform: Platform | None = None,
    tz: str = "UTC",
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    try:
        return audience_segmentation.predict_optimal_posting_times(
            db, org_id, segment_id=segment_id, platform=platform, tz_name=tz
        )
    except SegmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownTimeZoneError:
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {tz}")
