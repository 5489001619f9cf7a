"""Tests for the retention sweep."""

from datetime import timedelta

from sqlalchemy import update

from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import (
    AlertType,
    SecurityEventCreate,
    SecurityEventType,
    SecuritySeverity,
)
from tuning_portal.models.security_events_db import SecurityAlertDB
from tuning_portal.services.retention_service import RetentionResult, RetentionService


async def record_with_alert(event_service, age):
    event_id = await event_service.record_event(
        SecurityEventCreate(
            event_type=SecurityEventType.MULTIPLE_FAILED_ATTEMPTS,
            severity=SecuritySeverity.ERROR,
            created_at=utcnow() - age,
        )
    )
    alert_id = await event_service.create_alert(
        event_id=event_id,
        alert_type=AlertType.BRUTE_FORCE_ATTEMPT,
        severity=SecuritySeverity.ERROR,
        message="Brute force",
    )
    return event_id, alert_id


async def test_expired_events_take_their_alerts(
    event_repository, alert_repository, event_service
):
    old_event, old_alert = await record_with_alert(event_service, timedelta(days=400))
    new_event, new_alert = await record_with_alert(event_service, timedelta(days=10))

    result = await RetentionService(event_repository, alert_repository).run_sweep()

    assert result == RetentionResult(events_deleted=1, alerts_deleted=1)
    assert await event_repository.get_event(old_event) is None
    assert await alert_repository.get_alert(old_alert) is None
    assert await event_repository.get_event(new_event) is not None
    assert await alert_repository.get_alert(new_alert) is not None


async def test_old_resolutions_are_purged(
    event_repository, alert_repository, event_service, database_manager
):
    _, stale_alert = await record_with_alert(event_service, timedelta(days=1))
    _, fresh_alert = await record_with_alert(event_service, timedelta(days=1))
    _, open_alert = await record_with_alert(event_service, timedelta(days=1))

    await alert_repository.resolve_alert(
        stale_alert, 1, "old", resolved_at=utcnow() - timedelta(days=200)
    )
    await alert_repository.resolve_alert(fresh_alert, 1, "new")

    result = await RetentionService(event_repository, alert_repository).run_sweep()

    assert result.events_deleted == 0
    assert result.alerts_deleted == 1
    assert await alert_repository.get_alert(stale_alert) is None
    assert await alert_repository.get_alert(fresh_alert) is not None
    assert await alert_repository.get_alert(open_alert) is not None


async def test_unresolved_alerts_are_never_purged_on_age(
    event_repository, alert_repository, event_service, database_manager
):
    _, alert_id = await record_with_alert(event_service, timedelta(days=1))
    async with database_manager.get_session() as session:
        await session.execute(
            update(SecurityAlertDB)
            .where(SecurityAlertDB.id == alert_id)
            .values(created_at=utcnow() - timedelta(days=300))
        )
        await session.commit()

    result = await RetentionService(event_repository, alert_repository).run_sweep()

    assert result.alerts_deleted == 0


async def test_custom_retention_periods(event_repository, alert_repository, event_service):
    await record_with_alert(event_service, timedelta(days=40))

    service = RetentionService(
        event_repository, alert_repository, event_retention_days=30, resolved_alert_retention_days=7
    )
    result = await service.run_sweep()

    assert result.events_deleted == 1
    assert result.alerts_deleted == 1
