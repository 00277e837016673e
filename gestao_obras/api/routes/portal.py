"""Client portal endpoints: access provisioning, project views and events."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_obras.api.responses import render_outcome
from gestao_obras.core.auth import RequestUserContext, get_current_user_context
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.models.entities import PortalEventStatus, PortalEventType
from gestao_obras.services.mailer import Mailer, get_mailer
from gestao_obras.services.portal_service import (
    PortalAccessRequest,
    PortalEventRequest,
    PortalEventResponse,
    PortalService,
)

router = APIRouter(prefix="/portal", tags=["portal"])


class PortalUserPayload(BaseModel):
    email: str | None = None
    client_id: str | None = None
    project_id: str | None = None


@router.post("/users")
def create_portal_user(
    payload: PortalUserPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
) -> JSONResponse:
    """Create or reuse a client login and grant it access to one obra."""

    service = PortalService(db, mailer)
    outcome = service.provision_access(
        context=context,
        request=PortalAccessRequest(
            email=payload.email,
            client_id=payload.client_id,
            project_id=payload.project_id,
        ),
    )
    return render_outcome(outcome)


@router.get("/projects")
def list_portal_projects(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = PortalService(db)
    return {"items": service.list_projects(context=context)}


@router.get("/projects/{project_id}")
def get_portal_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = PortalService(db)
    return service.project_view(context=context, project_id=project_id)


class PortalEventPayload(BaseModel):
    event_type: PortalEventType
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)


class PortalEventResponsePayload(BaseModel):
    admin_response: str | None = Field(default=None, max_length=5000)
    status: PortalEventStatus | None = None


@router.get("/projects/{project_id}/events")
def list_portal_events(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = PortalService(db)
    events = service.list_events(context=context, project_id=project_id)
    return {"items": [service.serialize_event(event) for event in events]}


@router.post("/projects/{project_id}/events", status_code=status.HTTP_201_CREATED)
def create_portal_event(
    project_id: UUID,
    payload: PortalEventPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = PortalService(db)
    event = service.create_event(
        context=context,
        project_id=project_id,
        request=PortalEventRequest(
            event_type=payload.event_type,
            title=payload.title,
            description=payload.description,
        ),
    )
    return service.serialize_event(event)


@router.patch("/events/{event_id}")
def respond_portal_event(
    event_id: UUID,
    payload: PortalEventResponsePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Answer a client event and/or move it to another status."""

    service = PortalService(db)
    event = service.respond_event(
        context=context,
        event_id=event_id,
        request=PortalEventResponse(admin_response=payload.admin_response, status=payload.status),
    )
    return service.serialize_event(event)
