from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import AnalyticsMetric, AudienceSegment
from ..schemas import MetricsBulkIn, MetricOut
from ..security.rbac import get_current_org_id
from ..logging_setup import log_event

router = APIRouter(prefix="/metrics", tags=["metrics"])

@router.post("", response_model=list[MetricOut])
def ingest_metrics(
    payload: MetricsBulkIn,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    segment_ids = {m.segment_id for m in payload.metrics if m.segment_id is not None}
    if segment_ids:
        owned = set(db.execute(
            select(AudienceSegment.id).where(AudienceSegment.org_id == org_id, AudienceSegment.id.in_(segment_ids))
        ).scalars().all())
        if owned != segment_ids:
            raise HTTPException(status_code=404, detail="Segment not found")

    rows = []
    for m in payload.metrics:
        fields = m.model_dump(exclude_none=True)
        row = AnalyticsMetric(org_id=org_id, **fields)
        db.add(row)
        rows.append(row)
    db.commit()
    for row in rows:
        db.refresh(row)

    log_event("metrics_ingested", org_id=org_id, count=len(rows))
    return rows

@router.get("", response_model=list[MetricOut])
def list_metrics(
    platform: str | None = None,
    metric_type: str | None = None,
    segment_id: int | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    org_id: int = Depends(get_current_org_id),
):
    stmt = select(AnalyticsMetric).where(AnalyticsMetric.org_id == org_id).order_by(AnalyticsMetric.created_at.desc())
    if platform:
        stmt = stmt.where(AnalyticsMetric.platform == platform)
    if metric_type:
        stmt = stmt.where(AnalyticsMetric.metric_type == metric_type)
    if segment_id:
        stmt = stmt.where(AnalyticsMetric.segment_id == segment_id)
    limit = max(1, min(limit, 1000))
    return db.execute(stmt.limit(limit)).scalars().all()
