from __future__ import annotations

from collections.abc import Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gestao_obras.core.auth import APP_ROLE_TO_DB_ROLE, AppRole, ensure_user_principal
from gestao_obras.core.config import get_settings
from gestao_obras.db.base import Base
from gestao_obras.db.dependencies import get_db_session
import gestao_obras.models.entities  # noqa: F401
from gestao_obras.main import create_app
from gestao_obras.models.entities import (
    Client,
    ClientPortalAccess,
    PortalEvent,
    Project,
    ProjectCost,
    ProjectRevenue,
    Stage,
    User,
    UserRole,
)
from gestao_obras.services.mailer import Mailer, OutgoingEmail, get_mailer

TEST_TABLES = [
    User.__table__,
    UserRole.__table__,
    Client.__table__,
    Project.__table__,
    Stage.__table__,
    ProjectCost.__table__,
    ProjectRevenue.__table__,
    ClientPortalAccess.__table__,
    PortalEvent.__table__,
]


class RecordingMailer(Mailer):
    """Keeps sent messages in memory instead of talking to SMTP."""

    def __init__(self) -> None:
        super().__init__(get_settings())
        self.outbox: list[OutgoingEmail] = []
        self.fail_with: Exception | None = None

    def send(self, message: OutgoingEmail) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.outbox.append(message)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(db_session: Session, mailer: RecordingMailer) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(
    *,
    subject: str = "sub-admin",
    email: str = "admin@test.local",
    display_name: str = "Admin",
) -> dict[str, str]:
    return {
        "X-AUTH-SUBJECT": subject,
        "X-AUTH-EMAIL": email,
        "X-AUTH-NAME": display_name,
    }


def grant_role(db: Session, *, subject: str, email: str, display_name: str, role: AppRole) -> User:
    user = ensure_user_principal(db, auth_subject=subject, email=email, display_name=display_name)
    db.add(UserRole(user_id=user.id, role=APP_ROLE_TO_DB_ROLE[role], created_at=datetime.utcnow()))
    db.commit()
    return user


@pytest.fixture()
def admin_headers(db_session: Session) -> dict[str, str]:
    grant_role(
        db_session,
        subject="sub-admin",
        email="admin@test.local",
        display_name="Admin",
        role=AppRole.ADMIN,
    )
    return auth_headers()


@pytest.fixture()
def grant(db_session: Session):
    def factory(*, subject: str, email: str, role: AppRole, display_name: str = "") -> dict[str, str]:
        grant_role(db_session, subject=subject, email=email, display_name=display_name or email, role=role)
        return auth_headers(subject=subject, email=email, display_name=display_name or email)

    return factory


@pytest.fixture()
def make_client(db_session: Session):
    def factory(*, code: str = "CLI-001", name: str = "Construtora Alfa", **fields: object) -> Client:
        row = Client(code=code, name=name, **fields)
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return factory


@pytest.fixture()
def make_project(db_session: Session):
    def factory(client_row: Client, **fields: object) -> Project:
        values: dict[str, object] = {"name": "Residencial Aurora", "status": "em_andamento"}
        values.update(fields)
        row = Project(client_id=client_row.id, **values)
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return factory
