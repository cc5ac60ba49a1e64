import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timesheet_workflow.auth import create_actor_token
from timesheet_workflow.constants.statuses import EntryType, ProjectRole, Role
from timesheet_workflow.database import Base, get_db
from timesheet_workflow.dependencies import get_notifier
from timesheet_workflow.main import app
from timesheet_workflow.models import Project, ProjectMember, Task, User
from timesheet_workflow.schemas.auth import Actor
from timesheet_workflow.schemas.entry import TimeEntryCreate
from timesheet_workflow.services.audit import AuditRecorder
from timesheet_workflow.services.entry_manager import EntryManager
from timesheet_workflow.services.lifecycle import TimesheetLifecycle
from timesheet_workflow.services.notifications import NotificationDispatcher, SubmissionEvent
from timesheet_workflow.services.project_approval import ProjectApprovalFanout

# A Monday
WEEK_START = date(2024, 3, 4)


class RecordingNotifier(NotificationDispatcher):
    """Keeps dispatched events in memory."""

    def __init__(self):
        self.events: List[SubmissionEvent] = []

    def dispatch(self, event: SubmissionEvent) -> None:
        self.events.append(event)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(engine, notifier) -> TestClient:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Override dependency for test database session
    def override_get_db() -> Session:
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def audit(db) -> AuditRecorder:
    return AuditRecorder(db)


@pytest.fixture
def fanout(db, audit) -> ProjectApprovalFanout:
    return ProjectApprovalFanout(db, audit)


@pytest.fixture
def lifecycle(db, audit, fanout, notifier) -> TimesheetLifecycle:
    return TimesheetLifecycle(db, audit, fanout, notifier)


@pytest.fixture
def entry_manager(db, audit) -> EntryManager:
    return EntryManager(db, audit, max_daily_hours=10)


def _user(db: Session, name: str, role: Role, manager: User = None) -> User:
    user = User(
        full_name=name,
        email=f"{name.split()[0].lower()}@example.com",
        role=role.value,
        manager_id=manager.id if manager else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _member(db: Session, project: Project, user: User, role: ProjectRole = ProjectRole.MEMBER) -> ProjectMember:
    member = ProjectMember(project_id=project.id, user_id=user.id, project_role=role.value)
    db.add(member)
    db.commit()
    return member


@pytest.fixture
def org(db) -> SimpleNamespace:
    """
    Small organisation used across the workflow tests.

    management <- manager <- (lead, employee); project Alpha has a lead,
    project Beta has none. Both are managed by `manager`.
    """
    admin = _user(db, "Ada Admin", Role.SUPER_ADMIN)
    management = _user(db, "Maya Management", Role.MANAGEMENT)
    manager = _user(db, "Max Manager", Role.MANAGER, manager=management)
    lead = _user(db, "Lee Lead", Role.LEAD, manager=manager)
    employee = _user(db, "Emma Employee", Role.EMPLOYEE, manager=manager)
    outsider = _user(db, "Oscar Outsider", Role.EMPLOYEE)

    alpha = Project(name="Alpha", primary_manager_id=manager.id)
    beta = Project(name="Beta", primary_manager_id=manager.id)
    db.add_all([alpha, beta])
    db.commit()

    alpha_dev = Task(project_id=alpha.id, name="Development")
    alpha_review = Task(project_id=alpha.id, name="Code review")
    beta_ops = Task(project_id=beta.id, name="Operations")
    db.add_all([alpha_dev, alpha_review, beta_ops])
    db.commit()

    _member(db, alpha, lead, ProjectRole.LEAD)
    _member(db, alpha, employee)
    _member(db, beta, employee)
    _member(db, alpha, manager)

    return SimpleNamespace(
        admin=admin,
        management=management,
        manager=manager,
        lead=lead,
        employee=employee,
        outsider=outsider,
        alpha=alpha,
        beta=beta,
        alpha_dev=alpha_dev,
        alpha_review=alpha_review,
        beta_ops=beta_ops,
    )


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=Role(user.role), display_name=user.full_name)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_actor_token(actor_for(user))}"}


def project_entry(project: Project, task: Task, day: int = 0, hours="8", **kwargs) -> TimeEntryCreate:
    return TimeEntryCreate(
        entry_type=EntryType.PROJECT_TASK,
        project_id=project.id,
        task_id=task.id,
        date=WEEK_START + timedelta(days=day),
        hours=Decimal(str(hours)),
        **kwargs,
    )


def custom_entry(description: str, day: int = 0, hours="1", **kwargs) -> TimeEntryCreate:
    return TimeEntryCreate(
        entry_type=EntryType.CUSTOM_TASK,
        custom_task_description=description,
        date=WEEK_START + timedelta(days=day),
        hours=Decimal(str(hours)),
        **kwargs,
    )
