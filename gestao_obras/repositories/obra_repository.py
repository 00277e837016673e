"""Repository helpers for clients, projects and their stage/financial rows."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gestao_obras.models.entities import (
    Client,
    ClientPortalAccess,
    PortalEvent,
    Project,
    ProjectCost,
    ProjectRevenue,
    RoleType,
    Stage,
    User,
    UserRole,
)


class ObraRepository:
    """Persistence operations used by back-office, report and portal services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Clients ----------
    def list_clients(self) -> list[Client]:
        return self.db.scalars(select(Client).order_by(Client.name.asc(), Client.code.asc())).all()

    def get_client(self, client_id: UUID) -> Client | None:
        return self.db.scalar(select(Client).where(Client.id == client_id))

    def add_client(self, client: Client) -> Client:
        self.db.add(client)
        self.db.flush()
        return client

    def delete_client(self, client: Client) -> None:
        self.db.delete(client)
        self.db.flush()

    def project_count_for_client(self, client_id: UUID) -> int:
        return self.db.scalar(select(func.count()).select_from(Project).where(Project.client_id == client_id)) or 0

    # ---------- Projects ----------
    def list_projects(self, client_id: UUID | None = None) -> list[Project]:
        query = select(Project)
        if client_id is not None:
            query = query.where(Project.client_id == client_id)
        return self.db.scalars(query.order_by(Project.name.asc())).all()

    def list_projects_by_ids(self, project_ids: list[UUID]) -> list[Project]:
        if not project_ids:
            return []
        return self.db.scalars(
            select(Project).where(Project.id.in_(project_ids)).order_by(Project.name.asc())
        ).all()

    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        self.db.delete(project)
        self.db.flush()

    def child_counts_for_project(self, project_id: UUID) -> dict[str, int]:
        return {
            "stages": self._count(Stage, Stage.project_id == project_id),
            "costs": self._count(ProjectCost, ProjectCost.project_id == project_id),
            "revenues": self._count(ProjectRevenue, ProjectRevenue.project_id == project_id),
            "portal_access": self._count(ClientPortalAccess, ClientPortalAccess.project_id == project_id),
            "portal_events": self._count(PortalEvent, PortalEvent.project_id == project_id),
        }

    def _count(self, entity: type, condition) -> int:
        return self.db.scalar(select(func.count()).select_from(entity).where(condition)) or 0

    # ---------- Stages ----------
    def list_stages(self, project_id: UUID) -> list[Stage]:
        return self.db.scalars(
            select(Stage)
            .where(Stage.project_id == project_id)
            .order_by(Stage.created_at.asc(), Stage.name.asc())
        ).all()

    def get_stage(self, stage_id: UUID) -> Stage | None:
        return self.db.scalar(select(Stage).where(Stage.id == stage_id))

    def add_stage(self, stage: Stage) -> Stage:
        self.db.add(stage)
        self.db.flush()
        return stage

    def delete_stage(self, stage: Stage) -> None:
        self.db.delete(stage)
        self.db.flush()

    # ---------- Costs and revenues ----------
    def list_costs(self, project_id: UUID) -> list[ProjectCost]:
        return self.db.scalars(
            select(ProjectCost)
            .where(ProjectCost.project_id == project_id)
            .order_by(ProjectCost.record_date.asc(), ProjectCost.created_at.asc())
        ).all()

    def get_cost(self, cost_id: UUID) -> ProjectCost | None:
        return self.db.scalar(select(ProjectCost).where(ProjectCost.id == cost_id))

    def list_revenues(self, project_id: UUID) -> list[ProjectRevenue]:
        return self.db.scalars(
            select(ProjectRevenue)
            .where(ProjectRevenue.project_id == project_id)
            .order_by(ProjectRevenue.record_date.asc(), ProjectRevenue.created_at.asc())
        ).all()

    def get_revenue(self, revenue_id: UUID) -> ProjectRevenue | None:
        return self.db.scalar(select(ProjectRevenue).where(ProjectRevenue.id == revenue_id))

    def add_row(self, row: ProjectCost | ProjectRevenue) -> ProjectCost | ProjectRevenue:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_row(self, row: ProjectCost | ProjectRevenue) -> None:
        self.db.delete(row)
        self.db.flush()

    # ---------- Users and portal access ----------
    def find_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def ensure_user_role(self, user_id: UUID, role: RoleType) -> UserRole:
        existing = self.db.scalar(select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role))
        if existing is not None:
            return existing
        row = UserRole(user_id=user_id, role=role)
        self.db.add(row)
        self.db.flush()
        return row

    def get_portal_access(self, user_id: UUID, project_id: UUID) -> ClientPortalAccess | None:
        return self.db.scalar(
            select(ClientPortalAccess).where(
                ClientPortalAccess.user_id == user_id,
                ClientPortalAccess.project_id == project_id,
            )
        )

    def add_portal_access(self, access: ClientPortalAccess) -> ClientPortalAccess:
        self.db.add(access)
        self.db.flush()
        return access

    def list_portal_project_ids(self, user_id: UUID) -> list[UUID]:
        return self.db.scalars(
            select(ClientPortalAccess.project_id).where(ClientPortalAccess.user_id == user_id)
        ).all()

    # ---------- Portal events ----------
    def list_portal_events(self, project_id: UUID) -> list[PortalEvent]:
        return self.db.scalars(
            select(PortalEvent)
            .where(PortalEvent.project_id == project_id)
            .order_by(PortalEvent.created_at.desc())
        ).all()

    def get_portal_event(self, event_id: UUID) -> PortalEvent | None:
        return self.db.scalar(select(PortalEvent).where(PortalEvent.id == event_id))

    def add_portal_event(self, event: PortalEvent) -> PortalEvent:
        self.db.add(event)
        self.db.flush()
        return event
