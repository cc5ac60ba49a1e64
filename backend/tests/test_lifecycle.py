from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from timesheet_workflow.constants.statuses import TimesheetStatus
from timesheet_workflow.constants.violation_reasons import ReasonCode
from timesheet_workflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TimesheetError,
    ValidationError,
)
from timesheet_workflow.models import TimeEntry, Timesheet, TimesheetProjectApproval
from timesheet_workflow.schemas.entry import TimeEntryCreate
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.lifecycle import (
    TimesheetLifecycle,
    list_blocking_dependencies,
    normalize_week_start,
    transition_allowed,
)
from timesheet_workflow.services.project_approval import ProjectApprovalFanout
from timesheet_workflow.services.timesheet_queries import TimesheetQueries

from conftest import WEEK_START, RecordingNotifier, actor_for, project_entry

S = TimesheetStatus
SCENARIO_WEEK = date(2024, 5, 6)


def fill_and_submit(lifecycle, entry_manager, org, owner, hours="8"):
    actor = actor_for(owner)
    timesheet = lifecycle.create(actor, WEEK_START).result
    entry_manager.add_entry(actor, timesheet.id, project_entry(org.alpha, org.alpha_dev, hours=hours))
    return lifecycle.submit(actor, timesheet.id).result


@pytest.fixture
def submitted(lifecycle, entry_manager, org) -> Timesheet:
    return fill_and_submit(lifecycle, entry_manager, org, org.employee)


@pytest.fixture
def frozen(lifecycle, org, submitted) -> Timesheet:
    lifecycle.manager_decision(actor_for(org.manager), submitted.id, True)
    return lifecycle.management_decision(actor_for(org.management), submitted.id, True).result


class TestScenarios:
    def test_submit_with_hours(self, lifecycle, entry_manager, org, notifier):
        employee = actor_for(org.employee)
        timesheet = lifecycle.create(employee, SCENARIO_WEEK).result
        entry_manager.add_entry(employee, timesheet.id, TimeEntryCreate(
            project_id=org.alpha.id,
            task_id=org.alpha_dev.id,
            date=SCENARIO_WEEK,
            hours=Decimal("8"),
            is_billable=True,
        ))

        result = lifecycle.submit(employee, timesheet.id).result

        assert result.status == S.SUBMITTED.value
        assert result.total_hours == Decimal("8")
        assert result.submitted_at is not None
        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.timesheet_id == timesheet.id
        assert event.recipient_ids == [org.manager.id, org.lead.id]
        assert org.employee.id not in event.recipient_ids

    def test_reject_and_resubmit(self, lifecycle, org, submitted):
        rejected = lifecycle.manager_decision(
            actor_for(org.manager), submitted.id, False, reason="missing task detail"
        ).result
        assert rejected.status == S.MANAGER_REJECTED.value
        assert rejected.manager_rejection_reason == "missing task detail"

        resubmitted = lifecycle.submit(actor_for(org.employee), submitted.id).result
        assert resubmitted.status == S.SUBMITTED.value
        assert resubmitted.total_hours == Decimal("8")

    def test_duplicate_entry_leaves_total_alone(self, db, lifecycle, entry_manager, org):
        employee = actor_for(org.employee)
        timesheet = lifecycle.create(employee, WEEK_START).result
        entry_manager.add_entry(employee, timesheet.id, project_entry(org.alpha, org.alpha_dev, hours="3"))

        with pytest.raises(ValidationError):
            entry_manager.add_entry(employee, timesheet.id, project_entry(org.alpha, org.alpha_dev, hours="2"))
        assert db.get(Timesheet, timesheet.id).total_hours == Decimal("3")

    def test_daily_limit(self, lifecycle, entry_manager, org):
        employee = actor_for(org.employee)
        timesheet = lifecycle.create(employee, WEEK_START).result
        entry_manager.add_entries(employee, timesheet.id, [
            project_entry(org.alpha, org.alpha_dev, hours="4"),
            project_entry(org.beta, org.beta_ops, hours="2"),
        ])

        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entry(employee, timesheet.id, project_entry(org.alpha, org.alpha_review, hours="7"))
        assert exc.value.reason_code == ReasonCode.DAILY_LIMIT_EXCEEDED
        assert "current: 6, adding: 7, total: 13" in exc.value.message

    def test_manager_submission_skips_manager_tier(self, lifecycle, entry_manager, org, notifier):
        result = fill_and_submit(lifecycle, entry_manager, org, org.manager)
        assert result.status == S.MANAGEMENT_PENDING.value
        assert notifier.events[-1].recipient_ids == [org.management.id]
        assert notifier.events[-1].status == S.MANAGEMENT_PENDING.value


class TestCreate:
    def test_week_start_normalized_to_monday(self, lifecycle, org):
        timesheet = lifecycle.create(actor_for(org.employee), date(2024, 5, 9)).result
        assert timesheet.week_start_date == SCENARIO_WEEK
        assert timesheet.week_end_date == date(2024, 5, 12)
        assert timesheet.status == S.DRAFT.value
        assert timesheet.total_hours == 0

    def test_one_live_timesheet_per_week(self, lifecycle, org):
        actor = actor_for(org.employee)
        lifecycle.create(actor, WEEK_START)
        with pytest.raises(ConflictError) as exc:
            lifecycle.create(actor, WEEK_START)
        assert exc.value.reason_code == ReasonCode.WEEK_TAKEN
        assert exc.value.message == "A timesheet already exists for the week starting 2024-03-04. Status: draft"

    def test_manager_creates_for_report(self, lifecycle, org):
        timesheet = lifecycle.create(actor_for(org.manager), WEEK_START, user_id=org.employee.id).result
        assert timesheet.user_id == org.employee.id

    def test_lead_cannot_create_for_others(self, lifecycle, org):
        with pytest.raises(AuthorizationError):
            lifecycle.create(actor_for(org.lead), WEEK_START, user_id=org.employee.id)

    def test_unknown_owner(self, lifecycle, org):
        with pytest.raises(NotFoundError):
            lifecycle.create(actor_for(org.admin), WEEK_START, user_id=9999)

    def test_create_is_audited(self, lifecycle, audit, org):
        timesheet = lifecycle.create(actor_for(org.employee), WEEK_START).result
        record = audit.query(entity_type="timesheet", entity_id=timesheet.id)[0]
        assert record.action == "create"
        assert record.old_data is None
        assert record.new_data["status"] == "draft"
        assert record.context["week_start_date"] == "2024-03-04"


class TestSubmit:
    def test_zero_hours_cannot_be_submitted(self, lifecycle, audit, org):
        actor = actor_for(org.employee)
        timesheet = lifecycle.create(actor, WEEK_START).result
        with pytest.raises(TimesheetError) as exc:
            lifecycle.submit(actor, timesheet.id)
        assert exc.value.reason_code == ReasonCode.ZERO_HOURS
        assert exc.value.message == "Cannot submit timesheet with zero hours"
        assert audit.query(entity_type="timesheet", action="submit") == []

    def test_only_owner_submits(self, lifecycle, entry_manager, org):
        actor = actor_for(org.employee)
        timesheet = lifecycle.create(actor, WEEK_START).result
        entry_manager.add_entry(actor, timesheet.id, project_entry(org.alpha, org.alpha_dev))
        with pytest.raises(AuthorizationError):
            lifecycle.submit(actor_for(org.manager), timesheet.id)

    def test_cannot_submit_twice(self, lifecycle, org, submitted):
        with pytest.raises(TimesheetError) as exc:
            lifecycle.submit(actor_for(org.employee), submitted.id)
        assert exc.value.message == "Timesheet cannot be submitted from current status: submitted"

    def test_submit_is_audited_with_snapshots(self, audit, org, submitted):
        records = audit.query(entity_type="timesheet", entity_id=submitted.id, action="submit")
        assert len(records) == 1
        record = records[0]
        assert record.old_data["status"] == "draft"
        assert record.new_data["status"] == "submitted"
        assert record.context["resubmission"] is False
        assert record.side_effects["project_approvals"]["created"] == [org.alpha.id]
        assert record.actor_name == org.employee.full_name


class TestDecisions:
    def test_full_approval_path(self, lifecycle, audit, org, frozen):
        assert frozen.status == S.FROZEN.value
        assert frozen.is_frozen is True
        assert frozen.is_verified is True
        assert frozen.approved_by_manager_id == org.manager.id
        assert frozen.approved_by_management_id == org.management.id

        billed = lifecycle.mark_billed(actor_for(org.management), frozen.id, billing_snapshot_id=77).result
        assert billed.status == S.BILLED.value
        assert billed.billing_snapshot_id == 77
        assert billed.billed_at is not None

        actions = [r.action for r in audit.query(entity_type="timesheet", entity_id=frozen.id)]
        assert actions == ["mark_billed", "management_approve", "manager_approve", "submit", "create"]

    def test_manager_cannot_decide_own_timesheet(self, lifecycle, entry_manager, org):
        own = fill_and_submit(lifecycle, entry_manager, org, org.manager)
        with pytest.raises(AuthorizationError) as exc:
            lifecycle.manager_decision(actor_for(org.manager), own.id, True)
        assert exc.value.reason_code == ReasonCode.SELF_APPROVAL

    def test_management_cannot_decide_own_timesheet(self, lifecycle, entry_manager, org):
        own = fill_and_submit(lifecycle, entry_manager, org, org.management)
        assert own.status == S.MANAGEMENT_PENDING.value
        for approve in (True, False):
            with pytest.raises(AuthorizationError) as exc:
                lifecycle.management_decision(actor_for(org.management), own.id, approve, reason="no")
            assert exc.value.message == "You cannot approve or reject your own timesheet"

    def test_reject_requires_reason(self, db, lifecycle, org, submitted):
        for reason in (None, "", "   "):
            with pytest.raises(ValidationError) as exc:
                lifecycle.manager_decision(actor_for(org.manager), submitted.id, False, reason=reason)
            assert exc.value.reason_code == ReasonCode.REASON_REQUIRED
        assert db.get(Timesheet, submitted.id).status == S.SUBMITTED.value

    def test_employee_cannot_decide(self, lifecycle, org, submitted):
        with pytest.raises(AuthorizationError):
            lifecycle.manager_decision(actor_for(org.lead), submitted.id, True)

    def test_manager_cannot_take_management_decision(self, lifecycle, org, submitted):
        lifecycle.manager_decision(actor_for(org.manager), submitted.id, True)
        with pytest.raises(AuthorizationError):
            lifecycle.management_decision(actor_for(org.manager), submitted.id, True)

    def test_management_decision_needs_manager_approval_first(self, lifecycle, org, submitted):
        with pytest.raises(TimesheetError) as exc:
            lifecycle.management_decision(actor_for(org.management), submitted.id, True)
        assert exc.value.message == "Timesheet cannot be processed from current status: submitted"

    def test_management_rejection_reopens_for_editing(self, lifecycle, entry_manager, org, submitted):
        lifecycle.manager_decision(actor_for(org.manager), submitted.id, True)
        rejected = lifecycle.management_decision(
            actor_for(org.management), submitted.id, False, reason="Wrong project"
        ).result
        assert rejected.status == S.MANAGEMENT_REJECTED.value
        assert rejected.management_rejection_reason == "Wrong project"

        employee = actor_for(org.employee)
        entry_manager.add_entry(employee, submitted.id, project_entry(org.beta, org.beta_ops, day=1, hours="1"))
        assert lifecycle.submit(employee, submitted.id).result.status == S.SUBMITTED.value

    def test_manager_decision_on_draft_is_invalid(self, lifecycle, org):
        timesheet = lifecycle.create(actor_for(org.employee), WEEK_START).result
        with pytest.raises(TimesheetError) as exc:
            lifecycle.manager_decision(actor_for(org.manager), timesheet.id, True)
        assert exc.value.reason_code == ReasonCode.INVALID_STATUS

    def test_only_frozen_can_be_billed(self, lifecycle, org, submitted):
        with pytest.raises(TimesheetError):
            lifecycle.mark_billed(actor_for(org.management), submitted.id)

    def test_billed_is_terminal(self, lifecycle, org, frozen):
        lifecycle.mark_billed(actor_for(org.management), frozen.id)
        with pytest.raises(TimesheetError):
            lifecycle.mark_billed(actor_for(org.management), frozen.id)
        with pytest.raises(TimesheetError):
            lifecycle.submit(actor_for(org.employee), frozen.id)


class TestConcurrency:
    def test_losing_writer_sees_current_status(self, engine, lifecycle, audit, org, submitted):
        other_db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
        other_audit = AuditRecorder(other_db)
        other = TimesheetLifecycle(other_db, other_audit, ProjectApprovalFanout(other_db, other_audit), RecordingNotifier())
        read_status = lifecycle._require_status

        def rejected_meanwhile(timesheet, allowed, verb):
            current = read_status(timesheet, allowed, verb)
            other.manager_decision(actor_for(org.admin), timesheet.id, False, reason="Hours look off")
            return current

        try:
            with patch.object(lifecycle, "_require_status", side_effect=rejected_meanwhile):
                with pytest.raises(TimesheetError) as exc:
                    lifecycle.manager_decision(actor_for(org.manager), submitted.id, True)
        finally:
            other_db.close()

        assert exc.value.message == "Timesheet cannot be processed from current status: manager_rejected"
        assert lifecycle.db.get(Timesheet, submitted.id).status == S.MANAGER_REJECTED.value
        assert audit.query(entity_type="timesheet", action="manager_approve") == []
        assert len(audit.query(entity_type="timesheet", action="manager_reject")) == 1

    def test_concurrent_create_for_same_week_is_a_conflict(self, db, engine, lifecycle, audit, org):
        other_db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
        other_audit = AuditRecorder(other_db)
        other = TimesheetLifecycle(other_db, other_audit, ProjectApprovalFanout(other_db, other_audit), RecordingNotifier())
        find_live = lifecycle._live_for_week
        calls = []

        def created_meanwhile(user_id, week_start, exclude_id=None):
            calls.append(week_start)
            if len(calls) == 1:
                other.create(actor_for(org.employee), week_start)
                return None
            return find_live(user_id, week_start, exclude_id)

        try:
            with patch.object(lifecycle, "_live_for_week", side_effect=created_meanwhile):
                with pytest.raises(ConflictError) as exc:
                    lifecycle.create(actor_for(org.employee), WEEK_START)
        finally:
            other_db.close()

        assert exc.value.reason_code == ReasonCode.WEEK_TAKEN
        assert exc.value.message == "A timesheet already exists for the week starting 2024-03-04. Status: draft"
        assert db.query(Timesheet).filter(Timesheet.user_id == org.employee.id).count() == 1
        assert len(audit.query(entity_type="timesheet", action="create")) == 1

    def test_owner_delete_racing_submit_is_rejected(self, db, engine, lifecycle, entry_manager, org):
        employee = actor_for(org.employee)
        timesheet = lifecycle.create(employee, WEEK_START).result
        entry_manager.add_entry(employee, timesheet.id, project_entry(org.alpha, org.alpha_dev))

        other_db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
        other_audit = AuditRecorder(other_db)
        other = TimesheetLifecycle(other_db, other_audit, ProjectApprovalFanout(other_db, other_audit), RecordingNotifier())

        def submitted_meanwhile(current):
            other.submit(employee, current.id)
            return []

        try:
            with patch("timesheet_workflow.services.lifecycle.list_blocking_dependencies", side_effect=submitted_meanwhile):
                with pytest.raises(TimesheetError) as exc:
                    lifecycle.soft_delete(employee, timesheet.id)
        finally:
            other_db.close()

        assert exc.value.message == "Timesheet cannot be deleted from current status: submitted"
        reloaded = db.get(Timesheet, timesheet.id)
        assert reloaded.deleted_at is None
        assert reloaded.status == S.SUBMITTED.value


class TestDeletion:
    def test_owner_deletes_own_draft(self, db, lifecycle, org):
        actor = actor_for(org.employee)
        timesheet = lifecycle.create(actor, WEEK_START).result
        deleted = lifecycle.soft_delete(actor, timesheet.id, reason="Created by mistake").result
        assert deleted.deleted_at is not None
        assert deleted.deleted_reason == "Created by mistake"
        with pytest.raises(NotFoundError):
            lifecycle.submit(actor, timesheet.id)

    def test_owner_cannot_delete_submitted(self, lifecycle, org, submitted):
        with pytest.raises(TimesheetError):
            lifecycle.soft_delete(actor_for(org.employee), submitted.id)

    def test_management_deletes_submitted(self, lifecycle, org, submitted):
        deleted = lifecycle.soft_delete(actor_for(org.management), submitted.id).result
        assert deleted.deleted_by == org.management.id

    def test_frozen_timesheet_is_blocked(self, lifecycle, org, frozen):
        with pytest.raises(TimesheetError) as exc:
            lifecycle.soft_delete(actor_for(org.admin), frozen.id)
        assert exc.value.reason_code == ReasonCode.BLOCKED_BY_DEPENDENCIES
        assert exc.value.message == "Timesheet cannot be deleted: timesheet is frozen for billing"

    def test_deleted_week_can_be_reused_and_blocks_restore(self, lifecycle, org):
        actor = actor_for(org.employee)
        old = lifecycle.create(actor, WEEK_START).result
        lifecycle.soft_delete(actor, old.id)
        replacement = lifecycle.create(actor, WEEK_START).result
        assert replacement.id != old.id

        with pytest.raises(ConflictError):
            lifecycle.restore(actor_for(org.management), old.id)

    def test_restore(self, lifecycle, org):
        actor = actor_for(org.employee)
        timesheet = lifecycle.create(actor, WEEK_START).result
        lifecycle.soft_delete(actor, timesheet.id)

        with pytest.raises(AuthorizationError):
            lifecycle.restore(actor, timesheet.id)
        restored = lifecycle.restore(actor_for(org.management), timesheet.id).result
        assert restored.deleted_at is None

    def test_restore_requires_deleted_timesheet(self, lifecycle, org):
        timesheet = lifecycle.create(actor_for(org.employee), WEEK_START).result
        with pytest.raises(TimesheetError):
            lifecycle.restore(actor_for(org.management), timesheet.id)

    def test_hard_delete_leaves_tombstone(self, db, lifecycle, audit, org, submitted):
        admin = actor_for(org.admin)
        with pytest.raises(TimesheetError):
            lifecycle.hard_delete(admin, submitted.id)

        lifecycle.soft_delete(actor_for(org.management), submitted.id)
        with pytest.raises(AuthorizationError):
            lifecycle.hard_delete(actor_for(org.management), submitted.id)

        tombstone = lifecycle.hard_delete(admin, submitted.id).result
        assert tombstone.is_hard_deleted is True
        assert tombstone.hard_deleted_by == org.admin.id
        assert db.query(TimeEntry).filter(TimeEntry.timesheet_id == submitted.id).count() == 0
        assert db.query(TimesheetProjectApproval).filter(TimesheetProjectApproval.timesheet_id == submitted.id).count() == 0

        record = audit.query(entity_type="timesheet", entity_id=submitted.id, action="hard_delete")[0]
        assert record.side_effects == {"entries_removed": 1, "project_approvals_removed": 1}

        with pytest.raises(NotFoundError):
            lifecycle.restore(actor_for(org.management), submitted.id)


class TestPureHelpers:
    def test_blocking_dependencies(self):
        draft = Timesheet(status="draft", is_frozen=False)
        assert list_blocking_dependencies(draft) == []

        billed = Timesheet(
            status="billed",
            is_frozen=True,
            billed_at=datetime(2024, 4, 1, tzinfo=timezone.utc),
            billing_snapshot_id=42,
        )
        assert list_blocking_dependencies(billed) == [
            "linked to billing snapshot 42",
            "timesheet has been billed",
            "timesheet is frozen for billing",
        ]

    def test_transition_table(self):
        assert transition_allowed(S.DRAFT, S.SUBMITTED)
        assert transition_allowed("manager_rejected", "management_pending")
        assert transition_allowed("frozen", "billed")
        assert not transition_allowed("submitted", "frozen")
        assert not transition_allowed("billed", "draft")
        assert not transition_allowed("draft", "manager_approved")

    def test_normalize_week_start(self):
        assert normalize_week_start(date(2024, 5, 6)) == date(2024, 5, 6)
        assert normalize_week_start(date(2024, 5, 12)) == date(2024, 5, 6)


def test_listing_with_unknown_status_is_a_validation_error(db, org):
    with pytest.raises(ValidationError) as exc:
        TimesheetQueries(db).list_timesheets(actor_for(org.employee), status="bogus")
    assert exc.value.reason_code == ReasonCode.INVALID_INPUT
    assert exc.value.message == "Invalid value for status: unknown status 'bogus'"
