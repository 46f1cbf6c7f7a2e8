"""
Zira Forms Backend API
FastAPI application for form-submission email automation.
"""

import logging
import os
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.routers import email_admin, form_emails
from app.db import supabase_admin

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Zira Forms API",
    description="Form submission email automation for the Zira Technologies website",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the Vite dev server (http://localhost:5173 and
    http://127.0.0.1:5173). Additional origins are read from the
    CORS_ORIGINS environment variable as a comma-separated list, e.g.:
        CORS_ORIGINS=https://ziratech.com,https://www.ziratech.com

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(form_emails.router, prefix="/api/form-emails", tags=["form-emails"])
app.include_router(email_admin.router, prefix="/api/email", tags=["email-admin"])


@app.on_event("startup")
async def log_startup() -> None:
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info("Zira Forms API running at http://localhost:%s", host_port)
    if not os.getenv("RESEND_API_KEY"):
        logger.warning("RESEND_API_KEY is not set; automation emails will fail to send")


@app.get("/")
async def root():
    return {"message": "Zira Forms API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Reads one row from email_automation_rules to verify that the service-role
    client can reach the database. Returns 503 on failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table("email_automation_rules").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
