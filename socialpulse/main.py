import logging
import os
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .config import settings
from .db import engine, SessionLocal
from .logging_setup import setup_logging, request_id_var
from .models import Base, Org, ApiKey, User, OrgMember
from .routes import auth, metrics, sentiment, audience
from .security.auth import get_password_hash, hash_api_key
from .services.scheduler import start_scheduler

setup_logging()
logger = logging.getLogger(__name__)

if not settings.openai_api_key:
    logger.warning("OPENAI_API_KEY is not set; sentiment and segmentation will use rule-based fallbacks.")
if settings.secret_key == "change-me-in-production-for-jwt":
    logger.warning("JWT_SECRET is using the default insecure key.")

app = FastAPI(title="SocialPulse - Audience & Sentiment Intelligence")

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    token = request_id_var.set(request.headers.get("X-Request-Id") or uuid.uuid4().hex)
    try:
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id_var.get()
        return response
    finally:
        request_id_var.reset(token)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal Server Error: {str(exc)}", "type": type(exc).__name__},
    )

@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "now": datetime.now(timezone.utc).isoformat(),
        "scheduler": "running" if getattr(app.state, "scheduler", None) else "disabled",
    }

@app.get("/ready")
def readiness_check():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT id FROM orgs LIMIT 1"))
        return {"status": "ready"}
    except Exception:
        return JSONResponse(status_code=503, content={"status": "not_ready", "detail": "Database migrations pending or DB unreachable."})

app.include_router(auth.router)
app.include_router(metrics.router)
app.include_router(sentiment.router)
app.include_router(audience.router)

def bootstrap_saas():
    """Seeds a default workspace, an initial API key and the superadmin when the DB is empty."""
    db = SessionLocal()
    try:
        superadmin = db.query(User).filter(User.is_superadmin == True).first()
        if not superadmin and os.getenv("SUPERADMIN_EMAIL") and os.getenv("SUPERADMIN_PASSWORD"):
            superadmin = User(
                email=os.environ["SUPERADMIN_EMAIL"],
                password_hash=get_password_hash(os.environ["SUPERADMIN_PASSWORD"]),
                is_superadmin=True,
                is_active=True,
                name="Platform Superadmin"
            )
            db.add(superadmin)
            db.flush()

        if db.query(Org).first():
            db.commit()
            return

        org = Org(name="Default Workspace")
        db.add(org)
        db.flush()

        raw_key = os.getenv("INITIAL_API_KEY")
        if raw_key:
            db.add(ApiKey(org_id=org.id, name="Default Key", key_hash=hash_api_key(raw_key)))

        if superadmin:
            db.add(OrgMember(org_id=org.id, user_id=superadmin.id, role="owner"))

        db.commit()
        logger.info("Bootstrap complete: default workspace created")
    except Exception:
        db.rollback()
        logger.exception("Bootstrap failed")
    finally:
        db.close()

@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    bootstrap_saas()

    app.state.scheduler = None
    if settings.scheduler_enabled:
        try:
            app.state.scheduler = start_scheduler(SessionLocal)
        except Exception:
            logger.exception("Scheduler start failed")

@app.on_event("shutdown")
def on_shutdown():
    if getattr(app.state, "scheduler", None):
        app.state.scheduler.shutdown(wait=False)
