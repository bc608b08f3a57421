"""
HTTP routes.

Thin handlers over the ingestion coordinator and the SQLite stores.
Ingestion makes blocking AWS and SQLite calls, so it runs in the threadpool.
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from spot_alert.clients.base import ObjectStore, UpstreamError
from spot_alert.core.ingestion import IngestionCoordinator
from spot_alert.core.reports import build_incident_report
from spot_alert.storage.repository import AlertRecorder, UsageLedger

router = APIRouter()
usage_router = APIRouter()
elite_router = APIRouter(prefix="/api/elite", tags=["elite"])


def get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def get_ledger(request: Request) -> UsageLedger:
    return request.app.state.ledger


def get_alerts(request: Request) -> AlertRecorder:
    return request.app.state.alerts


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


# ---------------- HEALTH ----------------
@router.get("/health")
def health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


# ---------------- TRIGGER ALERT ----------------
@router.post("/trigger-alert")
async def trigger_alert(
    image: UploadFile | None = File(None),
    plan: str | None = Form(None),
    email: str | None = Form(None),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """
    Upload an image, classify it and notify on unknown faces.
    Form: image (file), plan, email
    """
    if image is None:
        raise HTTPException(status_code=400, detail="Missing image")

    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty image")

    result = await run_in_threadpool(
        coordinator.handle,
        data,
        filename=image.filename,
        plan=plan,
        recipient=email,
        content_type=image.content_type or "image/jpeg",
    )
    if not result.ok:
        return JSONResponse(status_code=500, content=result.to_response())
    return result.to_response()


# ---------------- RECENT ALERTS ----------------
@router.get("/api/alerts")
def recent_alerts(
    limit: int = Query(10, ge=1, le=500),
    alerts: AlertRecorder = Depends(get_alerts),
):
    return [
        {
            "id": record.id,
            "type": record.alert_type,
            "timestamp": record.timestamp.isoformat(),
            "key": record.image_key,
        }
        for record in alerts.fetch_recent(limit)
    ]


# ---------------- USAGE SUMMARY ----------------
@usage_router.get("/usage-summary")
def usage_summary(
    email: str | None = None,
    ledger: UsageLedger = Depends(get_ledger),
):
    if not email:
        raise HTTPException(status_code=400, detail="Missing email")

    summary = ledger.month_to_date(email, datetime.now(timezone.utc))
    return {
        "email": summary.recipient,
        "month": summary.month,
        "total_cost": round(float(summary.total_cost), 3),
        "details": [
            {
                "channel": detail.channel,
                "count": detail.count,
                "total": round(float(detail.total), 3),
            }
            for detail in summary.details
        ],
    }


# ---------------- USAGE RESET ----------------
@usage_router.post("/usage-reset")
def usage_reset(ledger: UsageLedger = Depends(get_ledger)):
    removed = ledger.reset()
    return {"ok": True, "message": "Usage log reset successful.", "removed": removed}


# ---------------- USAGE EXPORT ----------------
@usage_router.get("/usage-export")
def usage_export(ledger: UsageLedger = Depends(get_ledger)):
    return Response(
        content=ledger.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=usage.csv"},
    )


# ---------------- REPLAY ----------------
@elite_router.get("/replay")
def replay(
    minutes: int = Query(10, ge=1),
    alerts: AlertRecorder = Depends(get_alerts),
):
    """Frames recorded within the last N minutes, oldest first."""
    since = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    frames = [
        {"key": record.image_key, "ts": record.timestamp.isoformat()}
        for record in alerts.fetch_since(since)
    ]
    return {"frames": frames}


# ---------------- FRAME URL ----------------
@elite_router.get("/frame-url")
def frame_url(
    key: str | None = None,
    object_store: ObjectStore = Depends(get_object_store),
):
    if not key:
        raise HTTPException(status_code=400, detail="Missing key")
    try:
        url = object_store.presigned_url(key, expires_in=3600)
    except UpstreamError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})
    return {"url": url}


# ---------------- INCIDENT PDF ----------------
@elite_router.get("/incident-pdf")
def incident_pdf(alerts: AlertRecorder = Depends(get_alerts)):
    """Last 10 alerts, newest first, as a downloadable PDF."""
    return Response(
        content=build_incident_report(alerts.fetch_recent(10)),
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=SpotAlert_Incident_Report.pdf"},
    )
