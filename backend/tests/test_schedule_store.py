"""Tests for ScheduleStore."""

from datetime import UTC, datetime
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.enums import TriggerSource
from app.schemas.schedule import ScheduledReportCreate, ScheduledReportUpdate
from app.services.schedule.execution_log import ExecutionLogStore
from app.services.schedule.locks import ScheduleLockRegistry
from app.services.schedule.service import ScheduleStore


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


START_TIME = utc(2024, 1, 15, 10, 0)


@pytest.fixture
def locks() -> ScheduleLockRegistry:
    return ScheduleLockRegistry()


@pytest.fixture
def store(locks: ScheduleLockRegistry, clock) -> ScheduleStore:
    return ScheduleStore(locks, clock=clock)


def make_create(payload: dict[str, Any], **overrides: Any) -> ScheduledReportCreate:
    return ScheduledReportCreate(**{**payload, **overrides})


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    """Test suite for ScheduleStore.create."""

    @pytest.mark.asyncio
    async def test_create_computes_next_run(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        await db_session.commit()

        assert schedule.next_run == utc(2024, 1, 16, 9, 0)
        assert schedule.last_run is None
        assert schedule.is_active is True
        assert schedule.needs_attention is False

    @pytest.mark.asyncio
    async def test_create_then_get_round_trips_client_fields(
        self,
        db_session: AsyncSession,
        async_session_maker,
        store: ScheduleStore,
        schedule_payload,
    ):
        created = await store.create(db_session, make_create(schedule_payload))
        await db_session.commit()

        async with async_session_maker() as other:
            fetched = await store.get(other, created.id)

        for key in (
            "company_id",
            "company_name",
            "name",
            "description",
            "report_type",
            "schedule_type",
            "cron_expression",
            "recipients",
            "cc_recipients",
            "filters",
            "created_by",
        ):
            assert getattr(fetched, key) == schedule_payload[key], key
        assert fetched.interval_minutes is None
        assert fetched.next_run == utc(2024, 1, 16, 9, 0)
        assert fetched.last_run is None

    @pytest.mark.asyncio
    async def test_create_keeps_preset_name(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(
            db_session, make_create(schedule_payload, cron_expression="weekly_monday")
        )

        assert schedule.cron_expression == "weekly_monday"
        assert schedule.next_run == utc(2024, 1, 22, 9, 0)

    @pytest.mark.asyncio
    async def test_create_interval_schedule(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(
            db_session,
            make_create(
                schedule_payload,
                schedule_type="interval",
                cron_expression=None,
                interval_minutes=30,
            ),
        )

        assert schedule.cron_expression is None
        assert schedule.interval_minutes == 30
        assert schedule.next_run == utc(2024, 1, 15, 10, 30)

    @pytest.mark.asyncio
    async def test_create_inactive_has_no_next_run(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(
            db_session, make_create(schedule_payload, is_active=False)
        )

        assert schedule.is_active is False
        assert schedule.next_run is None

    @pytest.mark.asyncio
    async def test_recipient_whitespace_is_stripped(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(
            db_session,
            make_create(schedule_payload, recipients=["  Leads@Example.com ", "b@example.com"]),
        )

        assert schedule.recipients == ["Leads@Example.com", "b@example.com"]

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"cron_expression": "0 9 * *"}, "cron_expression"),
            ({"cron_expression": "0 25 * * *"}, "cron_expression"),
            ({"cron_expression": None}, "cron_expression"),
            ({"cron_expression": "0 0 30 2 *"}, "cron_expression"),
            ({"interval_minutes": 30}, "interval_minutes"),
            (
                {"schedule_type": "interval", "cron_expression": None, "interval_minutes": 0},
                "interval_minutes",
            ),
            (
                {"schedule_type": "interval", "cron_expression": None},
                "interval_minutes",
            ),
            ({"schedule_type": "interval", "interval_minutes": 30}, "cron_expression"),
            ({"recipients": []}, "recipients"),
            ({"recipients": ["not-an-email"]}, "recipients"),
            ({"cc_recipients": ["broken@"]}, "cc_recipients"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_definition_is_rejected_without_persisting(
        self,
        db_session: AsyncSession,
        store: ScheduleStore,
        schedule_payload,
        overrides: dict[str, Any],
        field: str,
    ):
        with pytest.raises(ValidationError) as exc_info:
            await store.create(db_session, make_create(schedule_payload, **overrides))

        assert exc_info.value.field == field
        assert await store.list(db_session) == []


# =============================================================================
# Get / List
# =============================================================================


class TestGetAndList:
    """Test suite for ScheduleStore.get and ScheduleStore.list."""

    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, db_session: AsyncSession, store: ScheduleStore):
        with pytest.raises(NotFoundError):
            await store.get(db_session, 999_999)

    @pytest.mark.asyncio
    async def test_list_filters(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        await store.create(db_session, make_create(schedule_payload, name="a"))
        await store.create(db_session, make_create(schedule_payload, name="b", is_active=False))
        await store.create(db_session, make_create(schedule_payload, name="c", company_id=2))
        await db_session.commit()

        assert {s.name for s in await store.list(db_session)} == {"a", "b", "c"}
        assert {s.name for s in await store.list(db_session, company_id=1)} == {"a", "b"}
        assert {s.name for s in await store.list(db_session, is_active=True)} == {"a", "c"}
        assert [
            s.name for s in await store.list(db_session, company_id=1, is_active=False)
        ] == ["b"]
        assert len(await store.list(db_session, limit=2)) == 2


# =============================================================================
# Update
# =============================================================================


class TestUpdate:
    """Test suite for ScheduleStore.update."""

    @pytest.mark.asyncio
    async def test_update_without_timing_change_keeps_next_run(
        self, db_session: AsyncSession, store: ScheduleStore, clock, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        clock.advance(hours=2)

        updated = await store.update(
            db_session,
            schedule.id,
            ScheduledReportUpdate(name="Renamed", recipients=["x@example.com"]),
        )

        assert updated.name == "Renamed"
        assert updated.recipients == ["x@example.com"]
        assert updated.cc_recipients == ["manager@example.com"]
        assert updated.next_run == utc(2024, 1, 16, 9, 0)

    @pytest.mark.asyncio
    async def test_update_timing_recomputes_from_now(
        self, db_session: AsyncSession, store: ScheduleStore, clock, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        clock.set(utc(2024, 1, 16, 12, 0))

        updated = await store.update(
            db_session, schedule.id, ScheduledReportUpdate(cron_expression="30 14 * * *")
        )

        assert updated.cron_expression == "30 14 * * *"
        assert updated.next_run == utc(2024, 1, 16, 14, 30)

    @pytest.mark.asyncio
    async def test_switching_type_clears_other_definition(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))

        updated = await store.update(
            db_session,
            schedule.id,
            ScheduledReportUpdate(schedule_type="interval", interval_minutes=60),
        )

        assert updated.schedule_type == "interval"
        assert updated.cron_expression is None
        assert updated.interval_minutes == 60
        assert updated.next_run == START_TIME.replace(hour=11)

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_cron(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))

        with pytest.raises(ValidationError):
            await store.update(
                db_session, schedule.id, ScheduledReportUpdate(cron_expression="61 * * * *")
            )

    @pytest.mark.asyncio
    async def test_update_rejects_empty_recipients(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))

        with pytest.raises(ValidationError):
            await store.update(db_session, schedule.id, ScheduledReportUpdate(recipients=[]))

    @pytest.mark.asyncio
    async def test_deactivate_through_update_clears_next_run(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))

        updated = await store.update(
            db_session, schedule.id, ScheduledReportUpdate(is_active=False)
        )

        assert updated.is_active is False
        assert updated.next_run is None

    @pytest.mark.asyncio
    async def test_update_conflicts_with_held_lock(
        self,
        db_session: AsyncSession,
        store: ScheduleStore,
        locks: ScheduleLockRegistry,
        schedule_payload,
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        assert await locks.try_acquire(schedule.id)

        try:
            with pytest.raises(ConflictError):
                await store.update(db_session, schedule.id, ScheduledReportUpdate(name="x"))
        finally:
            locks.release(schedule.id)

    @pytest.mark.asyncio
    async def test_update_conflicts_with_running_execution(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        await ExecutionLogStore.start(db_session, schedule, TriggerSource.MANUAL, START_TIME)

        with pytest.raises(ConflictError) as exc_info:
            await store.update(db_session, schedule.id, ScheduledReportUpdate(name="x"))
        assert exc_info.value.operation == "update"


# =============================================================================
# Delete
# =============================================================================


class TestDelete:
    """Test suite for ScheduleStore.delete."""

    @pytest.mark.asyncio
    async def test_delete_hides_schedule_and_keeps_history(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        execution = await ExecutionLogStore.start(
            db_session, schedule, TriggerSource.SCHEDULE, START_TIME
        )
        await ExecutionLogStore.finalize_success(db_session, execution.id, 3, 2, START_TIME)

        await store.delete(db_session, schedule.id)
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await store.get(db_session, schedule.id)
        assert await store.list(db_session) == []
        assert await store.list_due(db_session, utc(2030, 1, 1)) == []

        history = await ExecutionLogStore.list_for_schedule(db_session, schedule.id)
        assert [e.id for e in history] == [execution.id]

    @pytest.mark.asyncio
    async def test_delete_twice_raises_not_found(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        await store.delete(db_session, schedule.id)

        with pytest.raises(NotFoundError):
            await store.delete(db_session, schedule.id)

    @pytest.mark.asyncio
    async def test_delete_conflicts_with_held_lock(
        self,
        db_session: AsyncSession,
        store: ScheduleStore,
        locks: ScheduleLockRegistry,
        schedule_payload,
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        await locks.acquire(schedule.id)

        try:
            with pytest.raises(ConflictError):
                await store.delete(db_session, schedule.id)
        finally:
            locks.release(schedule.id)

        assert (await store.get(db_session, schedule.id)).id == schedule.id


# =============================================================================
# Toggle and run bookkeeping
# =============================================================================


class TestToggle:
    """Test suite for ScheduleStore.toggle."""

    @pytest.mark.asyncio
    async def test_toggle_off_and_on_recomputes_from_now(
        self, db_session: AsyncSession, store: ScheduleStore, clock, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))

        paused = await store.toggle(db_session, schedule.id)
        assert paused.is_active is False
        assert paused.next_run is None

        # Three missed 09:00 slots are not replayed
        clock.set(utc(2024, 1, 19, 12, 0))
        resumed = await store.toggle(db_session, schedule.id)

        assert resumed.is_active is True
        assert resumed.next_run == utc(2024, 1, 20, 9, 0)

    @pytest.mark.asyncio
    async def test_toggle_allowed_while_locked(
        self,
        db_session: AsyncSession,
        store: ScheduleStore,
        locks: ScheduleLockRegistry,
        schedule_payload,
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        await locks.acquire(schedule.id)

        try:
            toggled = await store.toggle(db_session, schedule.id)
        finally:
            locks.release(schedule.id)

        assert toggled.is_active is False


class TestRunBookkeeping:
    """Test suite for complete_run and list_due."""

    @pytest.mark.asyncio
    async def test_complete_run_after_slot(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload))
        completed_at = utc(2024, 1, 16, 9, 0, 12)

        updated = await store.complete_run(db_session, schedule.id, completed_at)

        assert updated.last_run == completed_at
        assert updated.next_run == utc(2024, 1, 17, 9, 0)

    @pytest.mark.asyncio
    async def test_early_run_consumes_upcoming_slot(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        """next_run only moves forward, even for a run before the slot."""
        schedule = await store.create(db_session, make_create(schedule_payload))
        previous = schedule.next_run

        updated = await store.complete_run(db_session, schedule.id, utc(2024, 1, 15, 10, 5))

        assert updated.next_run > previous
        assert updated.next_run == utc(2024, 1, 17, 9, 0)

    @pytest.mark.asyncio
    async def test_interval_counts_from_completion(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(
            db_session,
            make_create(
                schedule_payload,
                schedule_type="interval",
                cron_expression=None,
                interval_minutes=15,
            ),
        )

        updated = await store.complete_run(db_session, schedule.id, utc(2024, 1, 15, 10, 20, 30))

        assert updated.next_run == utc(2024, 1, 15, 10, 35, 30)

    @pytest.mark.asyncio
    async def test_complete_run_of_inactive_schedule(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        schedule = await store.create(db_session, make_create(schedule_payload, is_active=False))

        updated = await store.complete_run(db_session, schedule.id, START_TIME)

        assert updated.last_run == START_TIME
        assert updated.next_run is None

    @pytest.mark.asyncio
    async def test_list_due(
        self, db_session: AsyncSession, store: ScheduleStore, schedule_payload
    ):
        due = await store.create(db_session, make_create(schedule_payload, name="due"))
        await store.create(
            db_session, make_create(schedule_payload, name="paused", is_active=False)
        )
        flagged = await store.create(db_session, make_create(schedule_payload, name="flagged"))
        await store.set_run_times(
            db_session, flagged.id, START_TIME, flagged.next_run, needs_attention=True
        )
        later = await store.create(
            db_session, make_create(schedule_payload, name="later", cron_expression="0 10 * * *")
        )
        await db_session.commit()

        assert await store.list_due(db_session, utc(2024, 1, 16, 8, 59)) == []

        listed = await store.list_due(db_session, utc(2024, 1, 16, 9, 0))
        assert [s.id for s in listed] == [due.id]

        listed = await store.list_due(db_session, utc(2024, 1, 16, 12, 0))
        assert [s.id for s in listed] == [due.id, later.id]
