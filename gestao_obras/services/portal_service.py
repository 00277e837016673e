"""Client portal: access provisioning, project views and client-raised events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestao_obras.core.auth import RequestUserContext
from gestao_obras.core.config import get_settings
from gestao_obras.models.entities import (
    ClientPortalAccess,
    PortalEvent,
    PortalEventStatus,
    PortalEventType,
    Project,
    RoleType,
    Stage,
    User,
)
from gestao_obras.repositories.obra_repository import ObraRepository
from gestao_obras.services.mailer import (
    PORTAL_ACCESS_GRANTED,
    PORTAL_INVITATION,
    MailDeliveryError,
    Mailer,
)
from gestao_obras.services.outcomes import Outcome
from gestao_obras.services.progress import StageInput, StageProgressCalculator
from gestao_obras.services.report_service import parse_uuid

logger = logging.getLogger(__name__)

ADMIN_ONLY = "Apenas administradores podem criar acessos"
FIELDS_REQUIRED = "email, client_id e project_id são obrigatórios"
ADMIN_ONLY_RESPONSE = "Apenas administradores podem responder ocorrências"


@dataclass(slots=True)
class PortalAccessRequest:
    email: str | None
    client_id: str | None
    project_id: str | None


@dataclass(slots=True)
class PortalEventRequest:
    event_type: PortalEventType
    title: str
    description: str


@dataclass(slots=True)
class PortalEventResponse:
    admin_response: str | None = None
    status: PortalEventStatus | None = None


class PortalService:
    """Grants portal access to client users and serves their project views."""

    def __init__(self, db: Session, mailer: Mailer | None = None) -> None:
        self.db = db
        self.repo = ObraRepository(db)
        self.mailer = mailer
        self.settings = get_settings()

    # ---------- Provisioning ----------
    def _portal_url(self) -> str:
        return f"{self.settings.portal_base_url.rstrip('/')}/portal/login"

    def provision_access(self, *, context: RequestUserContext, request: PortalAccessRequest) -> Outcome:
        if not context.is_admin:
            return Outcome.forbidden(ADMIN_ONLY)

        email = (request.email or "").strip().lower()
        if not email or not request.client_id or not request.project_id:
            return Outcome.bad_request(FIELDS_REQUIRED)
        if "@" not in email:
            return Outcome.bad_request("email inválido")

        client_id = parse_uuid(request.client_id)
        project_id = parse_uuid(request.project_id)
        if client_id is None or project_id is None:
            return Outcome.bad_request("client_id ou project_id inválido")

        try:
            return self._grant(context=context, email=email, client_id=client_id, project_id=project_id)
        except (SQLAlchemyError, MailDeliveryError):
            self.db.rollback()
            logger.exception(
                "Portal access provisioning failed",
                extra={"project_id": str(project_id), "client_id": str(client_id)},
            )
            return Outcome.internal_error()

    def _grant(self, *, context: RequestUserContext, email: str, client_id: UUID, project_id: UUID) -> Outcome:
        client = self.repo.get_client(client_id)
        if client is None:
            return Outcome.not_found("Cliente não encontrado")
        project = self.repo.get_project(project_id)
        if project is None:
            return Outcome.not_found("Obra não encontrada")
        if project.client_id != client.id:
            return Outcome.bad_request("A obra informada não pertence ao cliente")

        user = self.repo.find_user_by_email(email)
        is_new_user = user is None
        if user is None:
            now = datetime.utcnow()
            user = self.repo.add_user(
                User(
                    auth_subject=None,
                    email=email,
                    display_name=email,
                    status="invited",
                    created_at=now,
                    updated_at=now,
                )
            )

        self.repo.ensure_user_role(user.id, RoleType.CLIENT)
        access = self.repo.get_portal_access(user.id, project.id)
        if access is None:
            self.repo.add_portal_access(
                ClientPortalAccess(
                    user_id=user.id,
                    client_id=client.id,
                    project_id=project.id,
                    email=email,
                    created_by=context.user_id,
                )
            )
        else:
            access.client_id = client.id
            access.email = email
            access.created_by = context.user_id
            self.db.flush()

        # Delivery happens inside the transaction; a failure rolls the grant back.
        template = PORTAL_INVITATION if is_new_user else PORTAL_ACCESS_GRANTED
        if self.mailer is not None:
            self.mailer.send(
                template.render(
                    email,
                    project_name=project.name,
                    client_name=client.name,
                    portal_url=self._portal_url(),
                )
            )

        self.db.commit()
        logger.info(
            "Portal access granted",
            extra={"user_id": str(user.id), "project_id": str(project.id), "is_new_user": is_new_user},
        )

        if is_new_user:
            message = "Usuário criado e acesso concedido. O cliente receberá um email para definir a senha."
        else:
            message = "Acesso concedido ao usuário existente"
        return Outcome.ok(
            {
                "success": True,
                "user_id": str(user.id),
                "is_new_user": is_new_user,
                "message": message,
            }
        )

    # ---------- Portal views ----------
    def _visible_project_ids(self, context: RequestUserContext) -> list[UUID] | None:
        if context.is_admin:
            return None
        return list(self.repo.list_portal_project_ids(context.user_id))

    @staticmethod
    def serialize_stage(stage: Stage) -> dict[str, object]:
        return {
            "id": str(stage.id),
            "name": stage.name,
            "status": stage.status.value,
            "stage_weight": float(stage.stage_weight),
            "report_start_date": stage.report_start_date.isoformat() if stage.report_start_date else None,
            "report_end_date": stage.report_end_date.isoformat() if stage.report_end_date else None,
            "report": stage.report,
        }

    def _serialize_summary(self, project: Project) -> dict[str, object]:
        client = self.repo.get_client(project.client_id)
        return {
            "project_id": str(project.id),
            "name": project.name,
            "status": project.status,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "client_name": client.name if client else None,
        }

    def list_projects(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        visible = self._visible_project_ids(context)
        projects = self.repo.list_projects() if visible is None else self.repo.list_projects_by_ids(visible)
        return [self._serialize_summary(project) for project in projects]

    def _visible_project(self, context: RequestUserContext, project_id: UUID) -> Project:
        visible = self._visible_project_ids(context)
        project = self.repo.get_project(project_id)
        if project is None or (visible is not None and project.id not in visible):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Obra não encontrada ou sem acesso.",
            )
        return project

    def project_view(self, *, context: RequestUserContext, project_id: UUID) -> dict[str, object]:
        project = self._visible_project(context, project_id)
        client = self.repo.get_client(project.client_id)
        stages = self.repo.list_stages(project.id)
        calculator = StageProgressCalculator([StageInput.from_row(stage) for stage in stages])
        return {
            "id": str(project.id),
            "name": project.name,
            "status": project.status,
            "project_manager": project.project_manager,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "client": {
                "name": client.name if client else None,
                "email": client.email if client else None,
                "phone": client.phone if client else None,
            },
            "progress": calculator.weighted_progress(),
            "stages": [self.serialize_stage(stage) for stage in stages],
        }

    # ---------- Portal events ----------
    @staticmethod
    def serialize_event(event: PortalEvent) -> dict[str, object]:
        return {
            "id": str(event.id),
            "project_id": str(event.project_id),
            "user_id": str(event.user_id),
            "event_type": event.event_type,
            "title": event.title,
            "description": event.description,
            "status": event.status,
            "admin_response": event.admin_response,
            "responded_at": event.responded_at.isoformat() if event.responded_at else None,
            "responded_by": str(event.responded_by) if event.responded_by else None,
            "created_at": event.created_at.isoformat(),
        }

    def list_events(self, *, context: RequestUserContext, project_id: UUID) -> list[PortalEvent]:
        project = self._visible_project(context, project_id)
        return self.repo.list_portal_events(project.id)

    def create_event(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        request: PortalEventRequest,
    ) -> PortalEvent:
        project = self._visible_project(context, project_id)
        title = request.title.strip()
        description = request.description.strip()
        if not title or not description:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="event_type, title e description são obrigatórios",
            )

        now = datetime.utcnow()
        event = self.repo.add_portal_event(
            PortalEvent(
                project_id=project.id,
                user_id=context.user_id,
                event_type=request.event_type.value,
                title=title,
                description=description,
                status=PortalEventStatus.ABERTO.value,
                created_at=now,
                updated_at=now,
            )
        )
        self.db.commit()
        self.db.refresh(event)
        logger.info(
            "Portal event created",
            extra={"event_id": str(event.id), "project_id": str(project.id), "event_type": event.event_type},
        )
        return event

    def respond_event(
        self,
        *,
        context: RequestUserContext,
        event_id: UUID,
        request: PortalEventResponse,
    ) -> PortalEvent:
        if not context.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ADMIN_ONLY_RESPONSE)

        response = (request.admin_response or "").strip()
        if not response and request.status is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Informe uma resposta ou um novo status",
            )

        event = self.repo.get_portal_event(event_id)
        if event is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ocorrência não encontrada")

        now = datetime.utcnow()
        if response:
            event.admin_response = response
            event.responded_at = now
            event.responded_by = context.user_id
        if request.status is not None:
            event.status = request.status.value
        event.updated_at = now

        self.db.commit()
        self.db.refresh(event)
        return event
