from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from work_time_tracker.config import load_settings
from work_time_tracker.db import Database
from work_time_tracker.db_converters import snapshot_from_payload, snapshot_to_payload, work_log_to_payload
from work_time_tracker.db_repo.work_logs import PUNCH_IN, PUNCH_OUT
from work_time_tracker.errors import NoActiveRowError, RowNotFoundError, TimerValidationError
from work_time_tracker.intervals import KIND_BREAK, derive_intervals, summarize
from work_time_tracker.logging_setup import setup_logging
from work_time_tracker.models import CalendarInterval, ManualSession, Notification, PeriodSummary
from work_time_tracker.time_utils import parse_date_param

logger = logging.getLogger(__name__)


def _require_user(request: Request) -> str:
    user_id = (request.headers.get("x-user-id") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-admin-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def _parse_timestamp(raw: str | None, field: str) -> datetime:
    if not raw:
        raise HTTPException(status_code=400, detail=f"Missing {field}")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field}") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _date_range(start_raw: str | None, end_raw: str | None) -> tuple[date | None, date | None]:
    start = parse_date_param(start_raw)
    end = parse_date_param(end_raw)
    if start is None or end is None:
        return None, None
    return start, end


def _interval_to_payload(interval: CalendarInterval) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": interval.id,
        "type": interval.kind,
        "title": interval.title,
        "start": interval.start.isoformat(),
        "end": interval.end.isoformat(),
        "durationMs": interval.duration_ms,
        "isActive": interval.is_active,
        "rowIds": list(interval.row_ids),
    }
    if interval.kind == KIND_BREAK:
        payload["previousLogId"], payload["nextLogId"] = interval.row_ids
    else:
        payload["logId"] = interval.row_ids[0]
    return payload


def _summary_to_payload(summary: PeriodSummary) -> dict[str, Any]:
    return {
        "days": [
            {
                "date": day.day.isoformat(),
                "totalHours": day.total_hours,
                "sessions": day.sessions,
                "breakMinutes": day.break_minutes,
            }
            for day in summary.days
        ],
        "totalHours": summary.total_hours,
        "daysWorked": summary.days_worked,
        "avgHoursPerDay": summary.avg_hours_per_day,
    }


def _notification_to_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "message": notification.message,
        "type": notification.type,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat(),
    }


class TimerLogPayload(BaseModel):
    type: str
    time: int


class TimerSyncRequest(BaseModel):
    isActive: bool = False
    startTime: int | None = None
    targetWorkMs: int = 0
    targetBreakMs: int = 0
    accumulatedWorkMs: int = 0
    accumulatedBreakMs: int = 0
    lastStatusChange: int | None = None
    status: str = "idle"
    logs: list[TimerLogPayload] = Field(default_factory=list)
    hasFiredOtNotification: bool = False


class ManualSessionPayload(BaseModel):
    punchIn: str
    punchOut: str


class WorkLogRequest(BaseModel):
    type: str
    time: str | None = None
    date: str | None = None
    totalHours: float | None = None
    sessions: list[ManualSessionPayload] = Field(default_factory=list)


class BreakRequest(BaseModel):
    breakStart: str | None = None
    breakEnd: str | None = None


class MergeRequest(BaseModel):
    previousLogId: int | None = None
    nextLogId: int | None = None


class DeleteSessionRequest(BaseModel):
    action: str
    previousLogId: int | None = None
    nextLogId: int | None = None
    logId: int | None = None


class WorkLogUpdateRequest(BaseModel):
    punchIn: str | None = None
    punchOut: str | None = None
    totalHours: float | None = None
    status: str | None = None


class MarkReadRequest(BaseModel):
    ids: list[int] = Field(default_factory=list)


class NotificationRequest(BaseModel):
    userId: str | None = None
    message: str
    type: str


def build_api_app(db: Database, admin_token: str | None) -> FastAPI:
    app = FastAPI(title="Work Time Tracker", version="1.0.0")

    @app.exception_handler(TimerValidationError)
    async def validation_error(request: Request, exc: TimerValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RowNotFoundError)
    async def row_not_found(request: Request, exc: RowNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NoActiveRowError)
    async def no_active_row(request: Request, exc: NoActiveRowError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/api/timer-sync")
    async def get_timer(request: Request) -> dict[str, Any] | None:
        user_id = _require_user(request)
        snapshot = db.load_snapshot(user_id)
        if snapshot is None or not snapshot.is_active:
            return None
        return snapshot_to_payload(snapshot)

    @app.post("/api/timer-sync")
    async def sync_timer(request: Request, payload: TimerSyncRequest) -> dict[str, Any]:
        user_id = _require_user(request)
        try:
            snapshot = snapshot_from_payload(payload.model_dump())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from None
        updated_at = db.save_snapshot(user_id, snapshot)
        return {"success": True, "updatedAt": updated_at.isoformat()}

    @app.delete("/api/timer-sync")
    async def delete_timer(request: Request) -> dict[str, Any]:
        user_id = _require_user(request)
        db.delete_snapshot(user_id)
        return {"success": True}

    @app.get("/api/worklog")
    async def list_worklog(
        request: Request,
        startDate: str | None = None,
        endDate: str | None = None,
    ) -> list[dict[str, Any]]:
        user_id = _require_user(request)
        start, end = _date_range(startDate, endDate)
        rows = db.list_rows(user_id, start, end)
        return [_interval_to_payload(i) for i in derive_intervals(rows, datetime.now())]

    @app.get("/api/worklog/summary")
    async def worklog_summary(
        request: Request,
        startDate: str | None = None,
        endDate: str | None = None,
    ) -> dict[str, Any]:
        user_id = _require_user(request)
        start, end = _date_range(startDate, endDate)
        rows = db.list_rows(user_id, start, end)
        return _summary_to_payload(summarize(derive_intervals(rows, datetime.now())))

    @app.post("/api/worklog", status_code=201)
    async def add_worklog(request: Request, payload: WorkLogRequest) -> Any:
        user_id = _require_user(request)

        if payload.type == PUNCH_IN:
            at = _parse_timestamp(payload.time, "time")
            day = parse_date_param(payload.date) or at.date()
            return work_log_to_payload(db.append_work_log(user_id, PUNCH_IN, at, day=day))

        if payload.type == PUNCH_OUT:
            at = _parse_timestamp(payload.time, "time")
            row = db.append_work_log(user_id, PUNCH_OUT, at, total_hours=payload.totalHours)
            return JSONResponse(status_code=200, content=work_log_to_payload(row))

        if payload.type == "bulk":
            day = parse_date_param(payload.date)
            if day is None:
                raise HTTPException(status_code=400, detail="Missing date")
            sessions = [
                ManualSession(
                    punch_in=_parse_timestamp(s.punchIn, "punchIn"),
                    punch_out=_parse_timestamp(s.punchOut, "punchOut"),
                )
                for s in payload.sessions
            ]
            rows = db.add_manual_sessions(user_id, day, sessions)
            return {"success": True, "logs": [work_log_to_payload(r) for r in rows]}

        raise HTTPException(status_code=400, detail="Invalid type")

    @app.delete("/api/worklog/today")
    async def clear_today(request: Request, day_param: str | None = Query(None, alias="date")) -> dict[str, Any]:
        user_id = _require_user(request)
        day = parse_date_param(day_param) or datetime.now().date()
        deleted = db.clear_day(user_id, day)
        logger.info("cleared %s rows for user %s on %s", deleted, user_id, day)
        return {"success": True, "deletedCount": deleted}

    @app.post("/api/worklog/add-break")
    async def add_break(request: Request, payload: BreakRequest) -> dict[str, Any]:
        user_id = _require_user(request)
        if not payload.breakStart or not payload.breakEnd:
            raise HTTPException(status_code=400, detail="Missing breakStart or breakEnd")
        break_start = _parse_timestamp(payload.breakStart, "breakStart")
        break_end = _parse_timestamp(payload.breakEnd, "breakEnd")
        if break_end > datetime.now():
            raise HTTPException(status_code=400, detail="breakEnd cannot be in the future")
        db.split_open_row(user_id, break_start, break_end)
        return {"success": True, "mode": "split-active"}

    @app.post("/api/worklog/merge")
    async def merge_worklog(request: Request, payload: MergeRequest) -> dict[str, Any]:
        user_id = _require_user(request)
        if payload.previousLogId is None or payload.nextLogId is None:
            raise HTTPException(status_code=400, detail="Missing log IDs")
        merged = db.merge_rows(user_id, payload.previousLogId, payload.nextLogId)
        return {"success": True, "log": work_log_to_payload(merged)}

    @app.post("/api/worklog/delete-session")
    async def delete_session(request: Request, payload: DeleteSessionRequest) -> dict[str, Any]:
        user_id = _require_user(request)

        if payload.action == "delete-break":
            if payload.previousLogId is None or payload.nextLogId is None:
                raise HTTPException(status_code=400, detail="Missing previousLogId or nextLogId")
            db.merge_rows(user_id, payload.previousLogId, payload.nextLogId)
            return {
                "success": True,
                "merged": {"prevLogId": payload.previousLogId, "deletedLogId": payload.nextLogId},
            }

        if payload.action == "delete-work":
            if payload.logId is None:
                raise HTTPException(status_code=400, detail="Missing logId")
            db.delete_row(user_id, payload.logId)
            return {"success": True, "deletedLogId": payload.logId}

        raise HTTPException(status_code=400, detail="Invalid action. Use 'delete-break' or 'delete-work'.")

    @app.patch("/api/worklog/{row_id}")
    async def update_worklog(row_id: int, request: Request, payload: WorkLogUpdateRequest) -> dict[str, Any]:
        user_id = _require_user(request)
        updated = db.update_row(
            user_id,
            row_id,
            punch_in=_parse_timestamp(payload.punchIn, "punchIn") if payload.punchIn else None,
            punch_out=_parse_timestamp(payload.punchOut, "punchOut") if payload.punchOut else None,
            total_hours=payload.totalHours,
            status=payload.status,
        )
        return work_log_to_payload(updated)

    @app.delete("/api/worklog/{row_id}")
    async def delete_worklog(row_id: int, request: Request) -> dict[str, Any]:
        user_id = _require_user(request)
        db.delete_row(user_id, row_id)
        return {"success": True}

    @app.get("/api/notifications")
    async def list_notifications(request: Request) -> dict[str, Any]:
        user_id = _require_user(request)
        notifications = db.list_unread_notifications(user_id)
        return {
            "notifications": [_notification_to_payload(n) for n in notifications],
            "notificationsEnabled": True,
        }

    @app.put("/api/notifications")
    async def mark_notifications(request: Request, payload: MarkReadRequest) -> dict[str, Any]:
        user_id = _require_user(request)
        updated = db.mark_notifications_read(user_id, payload.ids)
        return {"success": True, "updated": updated}

    @app.post("/api/admin/notifications", status_code=201)
    async def create_notification(request: Request, payload: NotificationRequest) -> dict[str, Any]:
        _require_auth(request, admin_token)
        if not payload.message.strip():
            raise HTTPException(status_code=400, detail="Missing required fields")
        try:
            if payload.userId:
                recipients = [payload.userId]
            else:
                recipients = db.list_known_users()
            now = datetime.now()
            created = [db.create_notification(uid, payload.message, payload.type, now) for uid in recipients]
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from None
        return {"success": True, "notifications": [_notification_to_payload(n) for n in created]}

    @app.get("/api/admin/users/{user_id}/logs")
    async def admin_user_logs(
        user_id: str,
        request: Request,
        startDate: str | None = None,
        endDate: str | None = None,
    ) -> list[dict[str, Any]]:
        _require_auth(request, admin_token)
        start, end = _date_range(startDate, endDate)
        rows = db.list_rows(user_id, start, end)
        return [_interval_to_payload(i) for i in derive_intervals(rows, datetime.now())]

    return app


def run_api() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_api_app(db, settings.admin_token)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
