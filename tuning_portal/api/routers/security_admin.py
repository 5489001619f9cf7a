"""
Security administration API endpoints.

Provides the admin dashboard with the security log, aggregate statistics,
unresolved alert triage and manual account unlock. All endpoints require an
admin principal and are rate limited per client IP.
"""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from tuning_portal.core.best_effort import log_failure
from tuning_portal.core.dependencies import (
    LockoutServiceDep,
    SecurityEventServiceDep,
    SecurityReportServiceDep,
)
from tuning_portal.core.time_utils import ensure_utc
from tuning_portal.middleware.auth import AdminUser
from tuning_portal.middleware.rate_limiting import (
    get_client_ip,
    get_user_agent,
    rate_limit_dependency,
)
from tuning_portal.models.security_events import (
    SecurityEventType,
    SecurityLogPage,
    SecurityLogQuery,
    SecurityLogStats,
    SecuritySeverity,
    SecurityStats,
    UnresolvedAlert,
)

logger = logging.getLogger(__name__)

LOGS_DEFAULT_LIMIT = 50
LOGS_MAX_LIMIT = 100
STATS_UNRESOLVED_LIMIT = 10

router = APIRouter(
    prefix="/api/admin/security",
    tags=["security-admin"],
    dependencies=[Depends(rate_limit_dependency("admin_api"))],
)


class SecurityStatsResponse(BaseModel):
    """Response for the windowed security statistics."""

    stats: SecurityLogStats
    unresolved_alerts: list[UnresolvedAlert] = Field(serialization_alias="unresolvedAlerts")


class ResolveAlertRequest(BaseModel):
    """Request to resolve a security alert."""

    model_config = ConfigDict(populate_by_name=True)

    alert_id: int | None = Field(default=None, alias="alertId")
    notes: str | None = None


class OperationResponse(BaseModel):
    """Generic success response."""

    success: bool
    message: str | None = None


def _parse_positive_int(value: str | None) -> int | None:
    try:
        parsed = int(value) if value is not None else None
    except ValueError:
        return None
    return parsed if parsed is not None and parsed > 0 else None


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def build_log_query(
    user_id: str | None,
    event_type: str | None,
    severity: str | None,
    start_date: str | None,
    end_date: str | None,
    limit: str | None,
    offset: str | None,
) -> SecurityLogQuery:
    """
    Build a log query from raw query string values.

    Unparseable or unknown filter values are ignored rather than rejected and
    the page size is capped.
    """
    query: dict[str, Any] = {
        "user_id": _parse_positive_int(user_id),
        "start_date": _parse_date(start_date),
        "end_date": _parse_date(end_date),
        "limit": min(_parse_positive_int(limit) or LOGS_DEFAULT_LIMIT, LOGS_MAX_LIMIT),
    }

    if event_type in {t.value for t in SecurityEventType}:
        query["event_type"] = SecurityEventType(event_type)
    if severity in {s.value for s in SecuritySeverity}:
        query["severity"] = SecuritySeverity(severity)

    try:
        parsed_offset = int(offset) if offset is not None else 0
    except ValueError:
        parsed_offset = 0
    query["offset"] = max(parsed_offset, 0)

    return SecurityLogQuery(**query)


@router.get("/logs", response_model=SecurityLogPage)
async def get_security_logs(
    admin: AdminUser,
    report_service: SecurityReportServiceDep,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    event_type: Annotated[str | None, Query(alias="eventType")] = None,
    severity: Annotated[str | None, Query()] = None,
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
    limit: Annotated[str | None, Query()] = None,
    offset: Annotated[str | None, Query()] = None,
) -> SecurityLogPage:
    """
    Get the filtered security log, newest first.

    Returns:
        Page of security events with the total match count
    """
    query = build_log_query(user_id, event_type, severity, start_date, end_date, limit, offset)
    page = await report_service.get_security_logs(query)
    logger.info(f"Retrieved {len(page.logs)} security logs, total count: {page.total}")
    return page


@router.get("/stats", response_model=SecurityStatsResponse, response_model_by_alias=True)
async def get_security_stats(
    admin: AdminUser,
    report_service: SecurityReportServiceDep,
    days: int = Query(30, ge=1, le=3650, description="Window for the event totals"),
) -> SecurityStatsResponse:
    """
    Get event statistics for the last ``days`` days and the top unresolved alerts.
    """
    stats = await report_service.get_security_log_stats(days)
    unresolved = await report_service.get_unresolved_alerts(STATS_UNRESOLVED_LIMIT)
    return SecurityStatsResponse(stats=stats, unresolved_alerts=unresolved)


@router.get("/overview", response_model=SecurityStats)
async def get_security_overview(
    admin: AdminUser,
    report_service: SecurityReportServiceDep,
) -> SecurityStats:
    """Get all-time event distribution, recent alerts and the unresolved count."""
    return await report_service.get_security_stats()


@router.get("/alerts", response_model=list[UnresolvedAlert])
async def get_unresolved_alerts(
    admin: AdminUser,
    report_service: SecurityReportServiceDep,
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of alerts to return"),
) -> list[UnresolvedAlert]:
    """Get unresolved alerts, most severe and newest first."""
    return await report_service.get_unresolved_alerts(limit)


@router.post("/alerts/resolve", response_model=OperationResponse)
async def resolve_security_alert(
    request: Request,
    body: ResolveAlertRequest,
    admin: AdminUser,
    report_service: SecurityReportServiceDep,
    event_service: SecurityEventServiceDep,
) -> OperationResponse:
    """
    Resolve a security alert.

    Raises:
        HTTPException: 400 if alertId or notes is missing, 404 if the alert
            does not exist, 500 if the update failed
    """
    if body.alert_id is None or not body.notes:
        raise HTTPException(status_code=400, detail="Alert ID and notes are required")

    if await report_service.get_alert(body.alert_id) is None:
        raise HTTPException(status_code=404, detail=f"Security alert {body.alert_id} not found")

    resolved = await report_service.resolve_security_alert(
        body.alert_id, admin["user_id"], body.notes
    )
    if not resolved:
        raise HTTPException(status_code=500, detail="Failed to resolve security alert")

    logged = await event_service.log_admin_action(
        admin["user_id"],
        SecurityEventType.ADMIN_SYSTEM_SETTING_CHANGE,
        get_client_ip(request),
        get_user_agent(request),
        {
            "action": "resolve_security_alert",
            "alertId": body.alert_id,
            "notes": body.notes,
        },
    )
    log_failure(logged, f"Admin action logging for alert {body.alert_id}")

    return OperationResponse(success=True, message="Security alert resolved successfully")


@router.post("/users/{user_id}/unlock", response_model=OperationResponse)
async def unlock_user_account(
    request: Request,
    user_id: int,
    admin: AdminUser,
    lockout_service: LockoutServiceDep,
    event_service: SecurityEventServiceDep,
) -> OperationResponse:
    """
    Manually unlock an account and reset its failed login counter.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    unlocked = await lockout_service.unlock_account(
        user_id, admin["user_id"], get_client_ip(request), get_user_agent(request)
    )
    if not unlocked:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")

    logged = await event_service.log_admin_action(
        admin["user_id"],
        SecurityEventType.ADMIN_USER_UPDATE,
        get_client_ip(request),
        get_user_agent(request),
        {"action": "unlock_account", "targetUserId": user_id},
    )
    log_failure(logged, f"Admin action logging for unlock of user {user_id}")

    return OperationResponse(success=True, message=f"User {user_id} unlocked")
