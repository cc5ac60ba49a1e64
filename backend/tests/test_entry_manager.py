from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from timesheet_workflow.constants.violation_reasons import ReasonCode
from timesheet_workflow.exceptions import AuthorizationError, NotFoundError, TimesheetError, ValidationError
from timesheet_workflow.models import TimeEntry, Timesheet
from timesheet_workflow.schemas.entry import TimeEntryUpdate
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.lifecycle import TimesheetLifecycle
from timesheet_workflow.services.project_approval import ProjectApprovalFanout

from conftest import WEEK_START, RecordingNotifier, actor_for, custom_entry, project_entry


@pytest.fixture
def draft(lifecycle, org) -> Timesheet:
    return lifecycle.create(actor_for(org.employee), WEEK_START).result


def total_hours(db, timesheet_id) -> Decimal:
    return Decimal(str(db.get(Timesheet, timesheet_id).total_hours))


def live_entries(db, timesheet_id):
    return (
        db.query(TimeEntry)
        .filter(TimeEntry.timesheet_id == timesheet_id, TimeEntry.deleted_at.is_(None))
        .all()
    )


class TestAddEntries:
    def test_add_entry_updates_total_and_audits(self, db, entry_manager, audit, org, draft):
        created = entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev, hours="7.5"))

        assert created.id is not None
        assert total_hours(db, draft.id) == Decimal("7.5")
        records = audit.query(entity_type="time_entries", entity_id=draft.id)
        assert len(records) == 1
        assert records[0].action == "add_entries"
        assert records[0].actor_id == org.employee.id
        assert records[0].old_data["entries"] == []
        assert len(records[0].new_data["entries"]) == 1
        assert records[0].new_data["total_hours"] == 7.5

    def test_duplicate_is_rejected_and_nothing_persisted(self, db, entry_manager, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="2"))

        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="1"))
        assert exc.value.reason_code == ReasonCode.DUPLICATE_PROJECT_TASK
        assert len(live_entries(db, draft.id)) == 1
        assert total_hours(db, draft.id) == Decimal("2")

    def test_daily_ceiling_counts_stored_entries(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="8"))

        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_review, hours="3"))
        assert exc.value.reason_code == ReasonCode.DAILY_LIMIT_EXCEEDED
        assert "(current: 8, adding: 3, total: 11)" in exc.value.message

    def test_weekend_entry_stored_non_billable(self, entry_manager, org, draft):
        created = entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev, day=6))
        assert created.is_billable is False

    def test_batch_is_all_or_nothing(self, db, entry_manager, org, draft):
        batch = [
            project_entry(org.alpha, org.alpha_dev, day=0, hours="4"),
            project_entry(org.beta, org.beta_ops, day=1, hours="4"),
            project_entry(org.alpha, org.alpha_dev, day=0, hours="1"),
        ]
        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entries(actor_for(org.employee), draft.id, batch)
        assert exc.value.message.startswith("Entry 3: ")
        assert live_entries(db, draft.id) == []

    def test_empty_batch_is_rejected(self, entry_manager, org, draft):
        with pytest.raises(ValidationError):
            entry_manager.add_entries(actor_for(org.employee), draft.id, [])

    def test_task_must_belong_to_project(self, entry_manager, org, draft):
        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.beta_ops))
        assert exc.value.reason_code == ReasonCode.MISSING_PROJECT_OR_TASK

    def test_inactive_project_is_rejected(self, db, entry_manager, org, draft):
        org.beta.is_active = False
        db.commit()
        with pytest.raises(ValidationError):
            entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.beta, org.beta_ops))

    def test_custom_entry_drops_project_fields(self, entry_manager, org, draft):
        candidate = custom_entry("Team meeting", hours="1")
        candidate.project_id = org.alpha.id
        created = entry_manager.add_entry(actor_for(org.employee), draft.id, candidate)
        assert created.entry_type == "custom_task"
        assert created.project_id is None
        assert created.custom_task_description == "Team meeting"

    def test_manager_may_add_for_direct_report(self, entry_manager, org, draft):
        created = entry_manager.add_entry(actor_for(org.manager), draft.id, project_entry(org.alpha, org.alpha_dev))
        assert created.timesheet_id == draft.id

    def test_other_users_cannot_add(self, entry_manager, org, draft):
        for user in (org.outsider, org.lead, org.management):
            with pytest.raises(AuthorizationError):
                entry_manager.add_entry(actor_for(user), draft.id, project_entry(org.alpha, org.alpha_dev))

    def test_submitted_timesheet_is_locked(self, entry_manager, lifecycle, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev))
        lifecycle.submit(actor, draft.id)

        with pytest.raises(TimesheetError) as exc:
            entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_review, day=1))
        assert exc.value.message == "Cannot modify entries of timesheet in current status: submitted"

    def test_unknown_timesheet(self, entry_manager, org):
        with pytest.raises(NotFoundError):
            entry_manager.add_entry(actor_for(org.employee), 9999, project_entry(org.alpha, org.alpha_dev))


class TestReplaceEntries:
    def test_replace_all_writes_two_audit_records(self, db, entry_manager, audit, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entries(actor, draft.id, [
            project_entry(org.alpha, org.alpha_dev, day=0, hours="4"),
            project_entry(org.beta, org.beta_ops, day=1, hours="4"),
        ])

        replaced = entry_manager.replace_entries(actor, draft.id, [
            project_entry(org.alpha, org.alpha_review, day=2, hours="6"),
        ])

        assert len(replaced) == 1
        assert [e.id for e in live_entries(db, draft.id)] == [replaced[0].id]
        assert total_hours(db, draft.id) == Decimal("6")

        records = audit.query(entity_type="time_entries", entity_id=draft.id)
        assert [r.action for r in records] == ["add_entries", "delete_entries", "add_entries"]
        insertion, deletion = records[0], records[1]
        assert deletion.context["reason"] == "replace_all"
        assert deletion.context["count"] == 2
        assert insertion.context["reason"] == "replace_all"
        assert insertion.context["count"] == 1
        assert deletion.new_data["total_hours"] == 0
        assert insertion.old_data["entries"] == []

    def test_invalid_replacement_leaves_entries_untouched(self, db, entry_manager, audit, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="4"))

        with pytest.raises(ValidationError):
            entry_manager.replace_entries(actor, draft.id, [
                project_entry(org.alpha, org.alpha_review, hours="6"),
                project_entry(org.alpha, org.alpha_review, hours="1"),
            ])

        assert len(live_entries(db, draft.id)) == 1
        assert total_hours(db, draft.id) == Decimal("4")
        assert len(audit.query(entity_type="time_entries", entity_id=draft.id)) == 1

    def test_replacement_is_validated_without_old_entries(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="8"))

        replaced = entry_manager.replace_entries(actor, draft.id, [
            project_entry(org.alpha, org.alpha_dev, hours="9"),
        ])
        assert replaced[0].hours == Decimal("9")

    def test_empty_replacement_clears_timesheet(self, db, entry_manager, audit, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev))

        assert entry_manager.replace_entries(actor, draft.id, []) == []
        assert live_entries(db, draft.id) == []
        assert total_hours(db, draft.id) == 0
        actions = [r.action for r in audit.query(entity_type="time_entries", entity_id=draft.id)]
        assert actions == ["delete_entries", "add_entries"]


class TestUpdateAndDelete:
    def test_update_hours(self, db, entry_manager, org, draft):
        actor = actor_for(org.employee)
        created = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="4"))

        updated = entry_manager.update_entry(actor, draft.id, created.id, TimeEntryUpdate(hours=Decimal("6")))

        assert updated.hours == Decimal("6")
        assert total_hours(db, draft.id) == Decimal("6")

    def test_update_excludes_itself_from_duplicate_check(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        created = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="4"))
        updated = entry_manager.update_entry(actor, draft.id, created.id, TimeEntryUpdate(description="Refactoring"))
        assert updated.description == "Refactoring"

    def test_update_into_duplicate_is_rejected(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="2"))
        other = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_review, hours="2"))

        with pytest.raises(ValidationError) as exc:
            entry_manager.update_entry(actor, draft.id, other.id, TimeEntryUpdate(task_id=org.alpha_dev.id))
        assert exc.value.reason_code == ReasonCode.DUPLICATE_PROJECT_TASK

    def test_update_moving_to_weekend_clears_billable(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        created = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev))
        updated = entry_manager.update_entry(
            actor, draft.id, created.id, TimeEntryUpdate(date=WEEK_START.replace(day=WEEK_START.day + 5))
        )
        assert updated.is_billable is False

    def test_delete_entry_recomputes_total(self, db, entry_manager, audit, org, draft):
        actor = actor_for(org.employee)
        keep = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="3"))
        drop = entry_manager.add_entry(actor, draft.id, project_entry(org.beta, org.beta_ops, hours="2"))

        entry_manager.delete_entry(actor, draft.id, drop.id)

        assert [e.id for e in live_entries(db, draft.id)] == [keep.id]
        assert total_hours(db, draft.id) == Decimal("3")
        assert db.get(TimeEntry, drop.id).deleted_at is not None
        assert audit.query(entity_type="time_entries", entity_id=draft.id)[0].action == "delete_entries"

    def test_deleted_entry_cannot_be_updated(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        created = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev))
        entry_manager.delete_entry(actor, draft.id, created.id)
        with pytest.raises(NotFoundError):
            entry_manager.update_entry(actor, draft.id, created.id, TimeEntryUpdate(hours=Decimal("1")))

    def test_recompute_is_idempotent(self, entry_manager, org, draft):
        entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev, hours="5"))
        assert entry_manager.recompute_total_hours(draft.id) == Decimal("5")
        assert entry_manager.recompute_total_hours(draft.id) == Decimal("5")

    def test_list_entries_requires_view_permission(self, entry_manager, org, draft):
        entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev))
        assert len(entry_manager.list_entries(actor_for(org.manager), draft.id)) == 1
        with pytest.raises(AuthorizationError):
            entry_manager.list_entries(actor_for(org.outsider), draft.id)


class TestStoredPrecision:
    def test_hours_stored_as_validated(self, db, entry_manager, org, draft):
        created = entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev, hours="2.345"))
        assert created.hours == Decimal("2.35")
        assert total_hours(db, draft.id) == Decimal("2.35")

    def test_sub_precision_hours_are_rejected(self, db, entry_manager, org, draft):
        with pytest.raises(ValidationError) as exc:
            entry_manager.add_entry(actor_for(org.employee), draft.id, project_entry(org.alpha, org.alpha_dev, hours="0.001"))
        assert exc.value.reason_code == ReasonCode.NON_POSITIVE_HOURS
        assert live_entries(db, draft.id) == []

    def test_null_field_in_update_is_a_validation_error(self, entry_manager, org, draft):
        actor = actor_for(org.employee)
        created = entry_manager.add_entry(actor, draft.id, project_entry(org.alpha, org.alpha_dev, hours="4"))
        with pytest.raises(ValidationError) as exc:
            entry_manager.update_entry(actor, draft.id, created.id, TimeEntryUpdate(hours=None))
        assert exc.value.reason_code == ReasonCode.INVALID_INPUT
        assert exc.value.message.startswith("Invalid value for hours:")


class TestConcurrentStatusChange:
    def test_entry_added_while_submitted_is_discarded(self, db, engine, entry_manager, audit, org, draft):
        employee = actor_for(org.employee)
        entry_manager.add_entry(employee, draft.id, project_entry(org.alpha, org.alpha_dev, hours="6"))

        other_db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
        other_audit = AuditRecorder(other_db)
        other = TimesheetLifecycle(other_db, other_audit, ProjectApprovalFanout(other_db, other_audit), RecordingNotifier())
        check_references = entry_manager._check_references

        def submitted_meanwhile(entries):
            check_references(entries)
            other.submit(employee, draft.id)

        try:
            with patch.object(entry_manager, "_check_references", side_effect=submitted_meanwhile):
                with pytest.raises(TimesheetError) as exc:
                    entry_manager.add_entry(employee, draft.id, project_entry(org.alpha, org.alpha_review, hours="3"))
        finally:
            other_db.close()

        assert exc.value.message == "Cannot modify entries of timesheet in current status: submitted"
        assert exc.value.reason_code == ReasonCode.INVALID_STATUS
        assert len(live_entries(db, draft.id)) == 1
        assert total_hours(db, draft.id) == Decimal("6")
        assert len(audit.query(entity_type="time_entries", entity_id=draft.id)) == 1
