"""Back-office service for clients, projects, stages and financial entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gestao_obras.core.auth import AppRole, RequestUserContext, has_role
from gestao_obras.models.entities import Client, Project, ProjectCost, ProjectRevenue, Stage, StageStatus
from gestao_obras.repositories.obra_repository import ObraRepository

STAFF_ROLES = {AppRole.ADMIN}

ZERO = Decimal("0")


@dataclass(slots=True)
class ClientData:
    code: str
    name: str
    responsible: str | None = None
    phone: str | None = None
    email: str | None = None
    street: str | None = None
    number: str | None = None
    complement: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


@dataclass(slots=True)
class ClientUpdateData:
    """Partial client change; only names listed in ``provided`` are applied."""

    code: str | None = None
    name: str | None = None
    responsible: str | None = None
    phone: str | None = None
    email: str | None = None
    street: str | None = None
    number: str | None = None
    complement: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    provided: frozenset[str] = frozenset()


@dataclass(slots=True)
class ProjectCreateData:
    client_id: UUID
    name: str
    project_manager: str | None
    start_date: date | None
    end_date: date | None
    status: str


@dataclass(slots=True)
class ProjectUpdateData:
    name: str | None = None
    project_manager: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    provided: frozenset[str] = frozenset()


@dataclass(slots=True)
class StageCreateData:
    name: str
    status: StageStatus
    stage_weight: Decimal
    report_start_date: date | None
    report_end_date: date | None
    report: str | None


@dataclass(slots=True)
class StageUpdateData:
    name: str | None = None
    status: StageStatus | None = None
    stage_weight: Decimal | None = None
    report_start_date: date | None = None
    report_end_date: date | None = None
    report: str | None = None
    provided: frozenset[str] = frozenset()


@dataclass(slots=True)
class FinancialEntryData:
    category: str
    description: str | None
    expected_value: Decimal
    actual_value: Decimal
    record_date: date | None


@dataclass(slots=True)
class FinancialEntryUpdateData:
    category: str | None = None
    description: str | None = None
    expected_value: Decimal | None = None
    actual_value: Decimal | None = None
    record_date: date | None = None
    provided: frozenset[str] = frozenset()


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _required_text(value: str | None, field_name: str) -> str:
    cleaned = _clean(value)
    if cleaned is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{field_name} não pode ser vazio.",
        )
    return cleaned


def _required_amount(value: Decimal | None, field_name: str) -> Decimal:
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{field_name} não pode ser vazio.",
        )
    _validate_non_negative(value, field_name)
    return value


def _validate_date_range(start: date | None, end: date | None, *, label: str) -> None:
    if start is not None and end is not None and end < start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label}: data final deve ser maior ou igual à data inicial.",
        )


def _validate_non_negative(value: Decimal, field_name: str) -> None:
    if value < ZERO:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{field_name} deve ser maior ou igual a zero.",
        )


class RegistryService:
    """CRUD over the records that feed reports and the client portal."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = ObraRepository(db)

    # ---------- Access ----------
    @staticmethod
    def ensure_staff(context: RequestUserContext) -> None:
        if not has_role(context, STAFF_ROLES):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permissão insuficiente para esta operação.",
            )

    def _get_project(self, context: RequestUserContext, project_id: UUID) -> Project:
        self.ensure_staff(context)
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Obra não encontrada")
        return project

    # ---------- Serialization ----------
    @staticmethod
    def serialize_client(client: Client) -> dict[str, object]:
        return {
            "id": str(client.id),
            "code": client.code,
            "name": client.name,
            "responsible": client.responsible,
            "phone": client.phone,
            "email": client.email,
            "street": client.street,
            "number": client.number,
            "complement": client.complement,
            "neighborhood": client.neighborhood,
            "city": client.city,
            "state": client.state,
            "zip_code": client.zip_code,
        }

    @staticmethod
    def serialize_project(project: Project) -> dict[str, object]:
        return {
            "id": str(project.id),
            "client_id": str(project.client_id),
            "name": project.name,
            "project_manager": project.project_manager,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "status": project.status,
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_stage(stage: Stage) -> dict[str, object]:
        return {
            "id": str(stage.id),
            "project_id": str(stage.project_id),
            "name": stage.name,
            "status": stage.status.value,
            "stage_weight": str(stage.stage_weight),
            "report_start_date": stage.report_start_date.isoformat() if stage.report_start_date else None,
            "report_end_date": stage.report_end_date.isoformat() if stage.report_end_date else None,
            "report": stage.report,
        }

    @staticmethod
    def serialize_cost(row: ProjectCost) -> dict[str, object]:
        return {
            "id": str(row.id),
            "project_id": str(row.project_id),
            "cost_type": row.cost_type,
            "description": row.description,
            "expected_value": str(row.expected_value),
            "actual_value": str(row.actual_value),
            "record_date": row.record_date.isoformat() if row.record_date else None,
        }

    @staticmethod
    def serialize_revenue(row: ProjectRevenue) -> dict[str, object]:
        return {
            "id": str(row.id),
            "project_id": str(row.project_id),
            "revenue_type": row.revenue_type,
            "description": row.description,
            "expected_value": str(row.expected_value),
            "actual_value": str(row.actual_value),
            "record_date": row.record_date.isoformat() if row.record_date else None,
        }

    # ---------- Clients ----------
    def list_clients(self, *, context: RequestUserContext) -> list[Client]:
        self.ensure_staff(context)
        return self.repo.list_clients()

    def create_client(self, *, context: RequestUserContext, data: ClientData) -> Client:
        self.ensure_staff(context)
        now = datetime.utcnow()
        client = Client(
            code=data.code.strip(),
            name=data.name.strip(),
            responsible=_clean(data.responsible),
            phone=_clean(data.phone),
            email=_clean(data.email),
            street=_clean(data.street),
            number=_clean(data.number),
            complement=_clean(data.complement),
            neighborhood=_clean(data.neighborhood),
            city=_clean(data.city),
            state=_clean(data.state),
            zip_code=_clean(data.zip_code),
            created_at=now,
            updated_at=now,
        )
        self.repo.add_client(client)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Já existe um cliente com este código.",
            ) from exc
        self.db.refresh(client)
        return client

    def update_client(self, *, context: RequestUserContext, client_id: UUID, data: ClientUpdateData) -> Client:
        self.ensure_staff(context)
        client = self.repo.get_client(client_id)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")

        for field_name in data.provided:
            value = getattr(data, field_name)
            if field_name in {"code", "name"}:
                setattr(client, field_name, _required_text(value, field_name))
            else:
                setattr(client, field_name, _clean(value))
        client.updated_at = datetime.utcnow()

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Já existe um cliente com este código.",
            ) from exc
        self.db.refresh(client)
        return client

    def delete_client(self, *, context: RequestUserContext, client_id: UUID) -> None:
        self.ensure_staff(context)
        client = self.repo.get_client(client_id)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")
        if self.repo.project_count_for_client(client.id) > 0:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Não é possível excluir cliente com obras cadastradas.",
            )
        self.repo.delete_client(client)
        self.db.commit()

    # ---------- Projects ----------
    def list_projects(self, *, context: RequestUserContext, client_id: UUID | None = None) -> list[Project]:
        self.ensure_staff(context)
        return self.repo.list_projects(client_id)

    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        self.ensure_staff(context)
        if self.repo.get_client(data.client_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")
        _validate_date_range(data.start_date, data.end_date, label="Obra")

        now = datetime.utcnow()
        project = Project(
            client_id=data.client_id,
            name=data.name.strip(),
            project_manager=_clean(data.project_manager),
            start_date=data.start_date,
            end_date=data.end_date,
            status=data.status.strip(),
            created_at=now,
            updated_at=now,
        )
        self.repo.add_project(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def get_project(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        return self._get_project(context, project_id)

    def update_project(self, *, context: RequestUserContext, project_id: UUID, data: ProjectUpdateData) -> Project:
        project = self._get_project(context, project_id)

        sent = data.provided
        target_start = data.start_date if "start_date" in sent else project.start_date
        target_end = data.end_date if "end_date" in sent else project.end_date
        _validate_date_range(target_start, target_end, label="Obra")

        if "name" in sent:
            project.name = _required_text(data.name, "name")
        if "project_manager" in sent:
            project.project_manager = _clean(data.project_manager)
        if "status" in sent:
            project.status = _required_text(data.status, "status")
        project.start_date = target_start
        project.end_date = target_end
        project.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        project = self._get_project(context, project_id)
        counts = self.repo.child_counts_for_project(project.id)
        if any(counts.values()):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Não é possível excluir obra com etapas, lançamentos ou acessos vinculados.",
            )
        self.repo.delete_project(project)
        self.db.commit()

    # ---------- Stages ----------
    def list_stages(self, *, context: RequestUserContext, project_id: UUID) -> list[Stage]:
        self._get_project(context, project_id)
        return self.repo.list_stages(project_id)

    def create_stage(self, *, context: RequestUserContext, project_id: UUID, data: StageCreateData) -> Stage:
        self._get_project(context, project_id)
        _validate_non_negative(data.stage_weight, "stage_weight")
        _validate_date_range(data.report_start_date, data.report_end_date, label="Etapa")

        now = datetime.utcnow()
        stage = Stage(
            project_id=project_id,
            name=data.name.strip(),
            status=data.status,
            stage_weight=data.stage_weight,
            report_start_date=data.report_start_date,
            report_end_date=data.report_end_date,
            report=_clean(data.report),
            created_at=now,
            updated_at=now,
        )
        self.repo.add_stage(stage)
        self.db.commit()
        self.db.refresh(stage)
        return stage

    def _get_stage(self, project_id: UUID, stage_id: UUID) -> Stage:
        stage = self.repo.get_stage(stage_id)
        if stage is None or stage.project_id != project_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Etapa não encontrada")
        return stage

    def update_stage(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        stage_id: UUID,
        data: StageUpdateData,
    ) -> Stage:
        self._get_project(context, project_id)
        stage = self._get_stage(project_id, stage_id)

        sent = data.provided
        target_start = data.report_start_date if "report_start_date" in sent else stage.report_start_date
        target_end = data.report_end_date if "report_end_date" in sent else stage.report_end_date
        _validate_date_range(target_start, target_end, label="Etapa")

        if "stage_weight" in sent:
            stage.stage_weight = _required_amount(data.stage_weight, "stage_weight")
        if "name" in sent:
            stage.name = _required_text(data.name, "name")
        if "status" in sent:
            if data.status is None:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="status não pode ser vazio.",
                )
            stage.status = data.status
        if "report" in sent:
            stage.report = _clean(data.report)
        stage.report_start_date = target_start
        stage.report_end_date = target_end
        stage.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(stage)
        return stage

    def delete_stage(self, *, context: RequestUserContext, project_id: UUID, stage_id: UUID) -> None:
        self._get_project(context, project_id)
        stage = self._get_stage(project_id, stage_id)
        self.repo.delete_stage(stage)
        self.db.commit()

    # ---------- Costs and revenues ----------
    def _get_cost(self, project_id: UUID, cost_id: UUID) -> ProjectCost:
        row = self.repo.get_cost(cost_id)
        if row is None or row.project_id != project_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Custo não encontrado")
        return row

    def _get_revenue(self, project_id: UUID, revenue_id: UUID) -> ProjectRevenue:
        row = self.repo.get_revenue(revenue_id)
        if row is None or row.project_id != project_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receita não encontrada")
        return row

    def _apply_entry_changes(
        self,
        row: ProjectCost | ProjectRevenue,
        category_attr: str,
        data: FinancialEntryUpdateData,
    ) -> None:
        sent = data.provided
        if "category" in sent:
            setattr(row, category_attr, _required_text(data.category, category_attr))
        if "description" in sent:
            row.description = _clean(data.description)
        if "expected_value" in sent:
            row.expected_value = _required_amount(data.expected_value, "expected_value")
        if "actual_value" in sent:
            row.actual_value = _required_amount(data.actual_value, "actual_value")
        if "record_date" in sent:
            row.record_date = data.record_date
        row.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(row)

    def list_costs(self, *, context: RequestUserContext, project_id: UUID) -> list[ProjectCost]:
        self._get_project(context, project_id)
        return self.repo.list_costs(project_id)

    def create_cost(self, *, context: RequestUserContext, project_id: UUID, data: FinancialEntryData) -> ProjectCost:
        self._get_project(context, project_id)
        _validate_non_negative(data.expected_value, "expected_value")
        _validate_non_negative(data.actual_value, "actual_value")

        now = datetime.utcnow()
        row = ProjectCost(
            project_id=project_id,
            cost_type=data.category.strip(),
            description=_clean(data.description),
            expected_value=data.expected_value,
            actual_value=data.actual_value,
            record_date=data.record_date,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_row(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update_cost(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        cost_id: UUID,
        data: FinancialEntryUpdateData,
    ) -> ProjectCost:
        self._get_project(context, project_id)
        row = self._get_cost(project_id, cost_id)
        self._apply_entry_changes(row, "cost_type", data)
        return row

    def delete_cost(self, *, context: RequestUserContext, project_id: UUID, cost_id: UUID) -> None:
        self._get_project(context, project_id)
        row = self._get_cost(project_id, cost_id)
        self.repo.delete_row(row)
        self.db.commit()

    def list_revenues(self, *, context: RequestUserContext, project_id: UUID) -> list[ProjectRevenue]:
        self._get_project(context, project_id)
        return self.repo.list_revenues(project_id)

    def create_revenue(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: FinancialEntryData,
    ) -> ProjectRevenue:
        self._get_project(context, project_id)
        _validate_non_negative(data.expected_value, "expected_value")
        _validate_non_negative(data.actual_value, "actual_value")

        now = datetime.utcnow()
        row = ProjectRevenue(
            project_id=project_id,
            revenue_type=data.category.strip(),
            description=_clean(data.description),
            expected_value=data.expected_value,
            actual_value=data.actual_value,
            record_date=data.record_date,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_row(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update_revenue(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        revenue_id: UUID,
        data: FinancialEntryUpdateData,
    ) -> ProjectRevenue:
        self._get_project(context, project_id)
        row = self._get_revenue(project_id, revenue_id)
        self._apply_entry_changes(row, "revenue_type", data)
        return row

    def delete_revenue(self, *, context: RequestUserContext, project_id: UUID, revenue_id: UUID) -> None:
        self._get_project(context, project_id)
        row = self._get_revenue(project_id, revenue_id)
        self.repo.delete_row(row)
        self.db.commit()
