"""FastAPI application entry point for the Bandwidth Usage Report.

This service renders an analytics report over per-user bandwidth history
exported as a static JSON payload. It exposes the active report view
(tables and chart series), the user actions that change it, and CSV export.

Run with: uvicorn bandwidth_report.main:app --reload
"""

from fastapi import FastAPI

from bandwidth_report.config import settings
from bandwidth_report.routers.report import router as report_router
from bandwidth_report.services.session import get_report_session

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Shamsi-calendar-aware bandwidth usage report. Filters daily per-user "
        "usage by date range and rolls it up into monthly and quarterly "
        "summaries with highest-consumer rankings."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(report_router)


@app.on_event("startup")
def on_startup():  # pragma: no cover
    """Load the report payload on startup so the first request is fast."""
    get_report_session()


@app.get("/", tags=["Health"])
def health_check():
    """Health check endpoint to verify the service is running."""
    return {"status": "healthy", "service": settings.APP_NAME}
