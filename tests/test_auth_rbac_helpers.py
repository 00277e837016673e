from __future__ import annotations

import uuid

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from gestao_obras.core.auth import AppRole, RequestUserContext, has_role, load_roles
from gestao_obras.models.entities import ClientPortalAccess, RoleType, User, UserRole


def _context(*roles: AppRole) -> RequestUserContext:
    return RequestUserContext(
        user_id=uuid.uuid4(),
        auth_subject="sub-1",
        email="user@test.local",
        display_name="User",
        status="active",
        roles=roles,
    )


def test_has_role_matches_expected_roles() -> None:
    context = _context(AppRole.CLIENT)

    assert has_role(context, {AppRole.CLIENT}) is True
    assert has_role(context, {AppRole.ADMIN}) is False
    assert context.is_admin is False


def test_admin_context() -> None:
    context = _context(AppRole.ADMIN, AppRole.CLIENT)

    assert context.is_admin is True
    assert has_role(context, {AppRole.ADMIN}) is True


def test_missing_identity_headers_are_unauthorized(client: TestClient) -> None:
    response = client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-only"})

    assert response.status_code == 401
    assert response.json() == {"error": "Não autorizado"}


def test_first_request_creates_user_without_roles(client: TestClient, db_session: Session) -> None:
    response = client.get(
        "/api/v1/me",
        headers={"X-AUTH-SUBJECT": "sub-new", "X-AUTH-EMAIL": "Novo@Test.Local"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "novo@test.local"
    assert body["display_name"] == "Novo@Test.Local"
    assert body["roles"] == []
    assert db_session.scalar(select(User).where(User.auth_subject == "sub-new")) is not None


def test_invited_user_is_linked_on_first_sign_in(client: TestClient, db_session: Session) -> None:
    invited = User(auth_subject=None, email="convidado@test.local", display_name="convidado@test.local", status="invited")
    db_session.add(invited)
    db_session.flush()
    db_session.add(UserRole(user_id=invited.id, role=RoleType.CLIENT))
    db_session.commit()

    response = client.get(
        "/api/v1/me",
        headers={
            "X-AUTH-SUBJECT": "sub-convidado",
            "X-AUTH-EMAIL": "convidado@test.local",
            "X-AUTH-NAME": "Convidado",
        },
    )

    assert response.status_code == 200
    assert response.json()["id"] == str(invited.id)
    assert response.json()["status"] == "active"
    assert load_roles(db_session, user_id=invited.id) == (AppRole.CLIENT,)
    db_session.refresh(invited)
    assert invited.auth_subject == "sub-convidado"


def test_changed_email_absorbs_invited_row(
    client: TestClient,
    db_session: Session,
    make_client,
    make_project,
) -> None:
    first = client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-1", "X-AUTH-EMAIL": "old@x.com"})
    assert first.status_code == 200
    signed_in_id = first.json()["id"]

    project = make_project(make_client())
    invited = User(auth_subject=None, email="new@x.com", display_name="new@x.com", status="invited")
    db_session.add(invited)
    db_session.flush()
    invited_id = invited.id
    db_session.add(UserRole(user_id=invited.id, role=RoleType.CLIENT))
    db_session.add(
        ClientPortalAccess(
            user_id=invited.id,
            client_id=project.client_id,
            project_id=project.id,
            email="new@x.com",
            created_by=invited.id,
        )
    )
    db_session.commit()

    response = client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-1", "X-AUTH-EMAIL": "new@x.com"})

    assert response.status_code == 200
    assert response.json()["id"] == signed_in_id
    assert response.json()["email"] == "new@x.com"
    assert response.json()["roles"] == ["client"]
    assert db_session.scalar(select(User).where(User.id == invited_id)) is None
    access = db_session.scalar(select(ClientPortalAccess).where(ClientPortalAccess.project_id == project.id))
    assert str(access.user_id) == signed_in_id
    assert str(access.created_by) == signed_in_id


def test_changed_email_owned_by_active_account_is_not_taken(client: TestClient) -> None:
    client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-a", "X-AUTH-EMAIL": "a@x.com"})
    client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-b", "X-AUTH-EMAIL": "b@x.com"})

    response = client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-a", "X-AUTH-EMAIL": "b@x.com"})

    assert response.status_code == 200
    assert response.json()["email"] == "a@x.com"


def test_new_subject_with_taken_email_conflicts(client: TestClient) -> None:
    client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-a", "X-AUTH-EMAIL": "a@x.com"})

    response = client.get("/api/v1/me", headers={"X-AUTH-SUBJECT": "sub-z", "X-AUTH-EMAIL": "a@x.com"})

    assert response.status_code == 409
    assert response.json() == {"error": "Email já vinculado a outra conta."}
