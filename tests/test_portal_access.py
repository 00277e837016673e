from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from gestao_obras.core.auth import AppRole
from gestao_obras.models.entities import ClientPortalAccess, RoleType, Stage, StageStatus, User, UserRole
from gestao_obras.services.mailer import MailDeliveryError

PORTAL_USERS_URL = "/api/v1/portal/users"


def test_new_portal_user_is_created_granted_and_invited(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    mailer,
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)

    response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "Cliente@Alfa.com.br", "client_id": str(client_row.id), "project_id": str(project.id)},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["is_new_user"] is True
    assert body["message"].startswith("Usuário criado e acesso concedido")

    user = db_session.scalar(select(User).where(User.email == "cliente@alfa.com.br"))
    assert user is not None
    assert str(user.id) == body["user_id"]
    assert user.auth_subject is None
    roles = db_session.scalars(select(UserRole.role).where(UserRole.user_id == user.id)).all()
    assert roles == [RoleType.CLIENT]
    access = db_session.scalar(select(ClientPortalAccess).where(ClientPortalAccess.user_id == user.id))
    assert access is not None
    assert access.project_id == project.id

    assert len(mailer.outbox) == 1
    sent = mailer.outbox[0]
    assert sent.to == "cliente@alfa.com.br"
    assert "Residencial Aurora" in sent.subject
    assert "/portal/login" in sent.body


def test_existing_user_is_reused_without_duplicate_access(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    mailer,
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    payload = {"email": "cliente@alfa.com.br", "client_id": str(client_row.id), "project_id": str(project.id)}

    first = client.post(PORTAL_USERS_URL, headers=admin_headers, json=payload)
    second = client.post(PORTAL_USERS_URL, headers=admin_headers, json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["is_new_user"] is False
    assert second.json()["user_id"] == first.json()["user_id"]
    assert second.json()["message"] == "Acesso concedido ao usuário existente"
    assert len(db_session.scalars(select(ClientPortalAccess)).all()) == 1
    assert len(db_session.scalars(select(UserRole).where(UserRole.role == RoleType.CLIENT)).all()) == 1
    assert [message.subject.startswith("Nova obra") for message in mailer.outbox] == [False, True]


def test_missing_fields_are_rejected(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.post(PORTAL_USERS_URL, headers=admin_headers, json={"email": "x@y.com"})

    assert response.status_code == 400
    assert response.json() == {"error": "email, client_id e project_id são obrigatórios"}


def test_project_must_belong_to_client(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    owner = make_client(code="CLI-1", name="Dono")
    other = make_client(code="CLI-2", name="Outro")
    project = make_project(owner)

    response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "x@y.com", "client_id": str(other.id), "project_id": str(project.id)},
    )

    assert response.status_code == 400


def test_unknown_project_is_not_found(client: TestClient, admin_headers: dict[str, str], make_client) -> None:
    client_row = make_client()

    response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "x@y.com", "client_id": str(client_row.id), "project_id": str(uuid.uuid4())},
    )

    assert response.status_code == 404


def test_unauthenticated_caller_is_rejected(client: TestClient) -> None:
    response = client.post(PORTAL_USERS_URL, json={"email": "x@y.com", "client_id": "a", "project_id": "b"})

    assert response.status_code == 401
    assert response.json() == {"error": "Não autorizado"}


def test_non_admin_caller_is_forbidden(client: TestClient, grant) -> None:
    headers = grant(subject="sub-client", email="cliente@test.local", role=AppRole.CLIENT)

    response = client.post(PORTAL_USERS_URL, headers=headers, json={})

    assert response.status_code == 403
    assert response.json() == {"error": "Apenas administradores podem criar acessos"}


def test_email_failure_rolls_back_and_hides_details(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    mailer,
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    mailer.fail_with = MailDeliveryError("smtp.internal:587 refused")

    response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "novo@alfa.com.br", "client_id": str(client_row.id), "project_id": str(project.id)},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Erro interno"}
    assert db_session.scalar(select(User).where(User.email == "novo@alfa.com.br")) is None
    assert db_session.scalars(select(ClientPortalAccess)).all() == []


def test_client_sees_only_granted_projects_with_weighted_progress(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    granted = make_project(client_row, name="Obra Liberada", start_date=date(2025, 1, 1))
    hidden = make_project(client_row, name="Obra Oculta")
    db_session.add_all(
        [
            Stage(project_id=granted.id, name="Fundação", status=StageStatus.CONCLUIDO,
                  stage_weight=Decimal("3"), created_at=datetime(2025, 1, 2)),
            Stage(project_id=granted.id, name="Estrutura", status=StageStatus.EM_ANDAMENTO,
                  stage_weight=Decimal("1"), created_at=datetime(2025, 2, 1)),
        ]
    )
    db_session.commit()

    grant_response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "cliente@alfa.com.br", "client_id": str(client_row.id), "project_id": str(granted.id)},
    )
    assert grant_response.status_code == 200

    client_headers = {
        "X-AUTH-SUBJECT": "sub-portal-client",
        "X-AUTH-EMAIL": "cliente@alfa.com.br",
        "X-AUTH-NAME": "Cliente Alfa",
    }

    listing = client.get("/api/v1/portal/projects", headers=client_headers)
    assert listing.status_code == 200
    assert [item["name"] for item in listing.json()["items"]] == ["Obra Liberada"]

    view = client.get(f"/api/v1/portal/projects/{granted.id}", headers=client_headers)
    assert view.status_code == 200
    assert view.json()["progress"] == 75
    assert [stage["name"] for stage in view.json()["stages"]] == ["Fundação", "Estrutura"]

    blocked = client.get(f"/api/v1/portal/projects/{hidden.id}", headers=client_headers)
    assert blocked.status_code == 404

    me = client.get("/api/v1/me", headers=client_headers)
    assert me.json()["id"] == grant_response.json()["user_id"]
    assert me.json()["roles"] == ["client"]


def test_admin_lists_every_project(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    make_project(client_row, name="B")
    make_project(client_row, name="A")

    response = client.get("/api/v1/portal/projects", headers=admin_headers)

    assert [item["name"] for item in response.json()["items"]] == ["A", "B"]


def test_repeat_grant_refreshes_access_record(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    grant,
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    payload = {"email": "cliente@alfa.com.br", "client_id": str(client_row.id), "project_id": str(project.id)}
    client.post(PORTAL_USERS_URL, headers=admin_headers, json=payload)
    other_admin = grant(subject="sub-admin-2", email="admin2@test.local", role=AppRole.ADMIN)

    response = client.post(PORTAL_USERS_URL, headers=other_admin, json=payload)

    assert response.status_code == 200
    access = db_session.scalar(select(ClientPortalAccess))
    db_session.refresh(access)
    second_admin = db_session.scalar(select(User).where(User.email == "admin2@test.local"))
    assert access.created_by == second_admin.id


def _granted_client_headers(client: TestClient, admin_headers: dict[str, str], client_row, project) -> dict[str, str]:
    response = client.post(
        PORTAL_USERS_URL,
        headers=admin_headers,
        json={"email": "cliente@alfa.com.br", "client_id": str(client_row.id), "project_id": str(project.id)},
    )
    assert response.status_code == 200
    return {"X-AUTH-SUBJECT": "sub-portal-client", "X-AUTH-EMAIL": "cliente@alfa.com.br"}


def test_client_raises_event_and_admin_answers_it(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    client_headers = _granted_client_headers(client, admin_headers, client_row, project)
    events_url = f"/api/v1/portal/projects/{project.id}/events"

    created = client.post(
        events_url,
        headers=client_headers,
        json={"event_type": "Problema", "title": "Infiltração", "description": "Mancha na parede da sala."},
    )
    assert created.status_code == 201
    event = created.json()
    assert event["status"] == "aberto"
    assert event["admin_response"] is None

    answered = client.patch(
        f"/api/v1/portal/events/{event['id']}",
        headers=admin_headers,
        json={"admin_response": "Equipe agendada para segunda.", "status": "em_analise"},
    )
    assert answered.status_code == 200
    assert answered.json()["status"] == "em_analise"
    assert answered.json()["admin_response"] == "Equipe agendada para segunda."
    assert answered.json()["responded_at"] is not None

    closed = client.patch(f"/api/v1/portal/events/{event['id']}", headers=admin_headers, json={"status": "resolvido"})
    assert closed.json()["status"] == "resolvido"
    assert closed.json()["admin_response"] == "Equipe agendada para segunda."

    listing = client.get(events_url, headers=client_headers)
    assert [item["title"] for item in listing.json()["items"]] == ["Infiltração"]
    assert listing.json()["items"][0]["status"] == "resolvido"


def test_events_require_access_to_the_project(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    granted = make_project(client_row, name="Liberada")
    hidden = make_project(client_row, name="Oculta")
    client_headers = _granted_client_headers(client, admin_headers, client_row, granted)

    posted = client.post(
        f"/api/v1/portal/projects/{hidden.id}/events",
        headers=client_headers,
        json={"event_type": "Dúvida", "title": "Prazo", "description": "Quando começa?"},
    )
    listed = client.get(f"/api/v1/portal/projects/{hidden.id}/events", headers=client_headers)

    assert posted.status_code == 404
    assert listed.status_code == 404


def test_event_payload_is_validated(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    client_headers = _granted_client_headers(client, admin_headers, client_row, project)
    events_url = f"/api/v1/portal/projects/{project.id}/events"

    bad_type = client.post(
        events_url,
        headers=client_headers,
        json={"event_type": "Reclamação", "title": "X", "description": "Y"},
    )
    blank_title = client.post(
        events_url,
        headers=client_headers,
        json={"event_type": "Sugestão", "title": "   ", "description": "Y"},
    )

    assert bad_type.status_code == 400
    assert blank_title.status_code == 400


def test_only_admins_answer_events(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    client_headers = _granted_client_headers(client, admin_headers, client_row, project)
    event = client.post(
        f"/api/v1/portal/projects/{project.id}/events",
        headers=client_headers,
        json={"event_type": "Solicitação", "title": "Visita", "description": "Gostaria de visitar a obra."},
    ).json()

    forbidden = client.patch(f"/api/v1/portal/events/{event['id']}", headers=client_headers, json={"status": "fechado"})
    empty = client.patch(f"/api/v1/portal/events/{event['id']}", headers=admin_headers, json={"admin_response": "  "})
    missing = client.patch(f"/api/v1/portal/events/{uuid.uuid4()}", headers=admin_headers, json={"status": "fechado"})

    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Apenas administradores podem responder ocorrências"}
    assert empty.status_code == 400
    assert missing.status_code == 404


def test_project_with_events_cannot_be_deleted(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    client_row = make_client()
    project = make_project(client_row)
    client_headers = _granted_client_headers(client, admin_headers, client_row, project)
    client.post(
        f"/api/v1/portal/projects/{project.id}/events",
        headers=client_headers,
        json={"event_type": "Dúvida", "title": "Prazo", "description": "Quando termina?"},
    )
    db_session.query(ClientPortalAccess).delete()
    db_session.commit()

    response = client.delete(f"/api/v1/projects/{project.id}", headers=admin_headers)

    assert response.status_code == 409
