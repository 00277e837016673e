"""Project, stage and financial-entry endpoints for the back office."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_obras.core.auth import RequestUserContext, get_current_user_context
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.models.entities import StageStatus
from gestao_obras.services.registry_service import (
    FinancialEntryData,
    FinancialEntryUpdateData,
    ProjectCreateData,
    ProjectUpdateData,
    RegistryService,
    StageCreateData,
    StageUpdateData,
)

router = APIRouter(tags=["projects"])


class ProjectCreatePayload(BaseModel):
    client_id: UUID
    name: str = Field(min_length=1, max_length=255)
    project_manager: str | None = Field(default=None, max_length=255)
    start_date: date | None = None
    end_date: date | None = None
    status: str = Field(default="planejamento", min_length=1, max_length=32)


class ProjectUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    project_manager: str | None = Field(default=None, max_length=255)
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = Field(default=None, min_length=1, max_length=32)


class StageCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    status: StageStatus = StageStatus.PENDENTE
    stage_weight: Decimal = Field(default=Decimal("0"), ge=0)
    report_start_date: date | None = None
    report_end_date: date | None = None
    report: str | None = None


class StageUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: StageStatus | None = None
    stage_weight: Decimal | None = Field(default=None, ge=0)
    report_start_date: date | None = None
    report_end_date: date | None = None
    report: str | None = None


class CostCreatePayload(BaseModel):
    cost_type: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=2000)
    expected_value: Decimal = Field(default=Decimal("0"), ge=0)
    actual_value: Decimal = Field(default=Decimal("0"), ge=0)
    record_date: date | None = None


class RevenueCreatePayload(BaseModel):
    revenue_type: str = Field(default="Medição", min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=2000)
    expected_value: Decimal = Field(default=Decimal("0"), ge=0)
    actual_value: Decimal = Field(default=Decimal("0"), ge=0)
    record_date: date | None = None


class CostUpdatePayload(BaseModel):
    cost_type: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=2000)
    expected_value: Decimal | None = Field(default=None, ge=0)
    actual_value: Decimal | None = Field(default=None, ge=0)
    record_date: date | None = None


class RevenueUpdatePayload(BaseModel):
    revenue_type: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=2000)
    expected_value: Decimal | None = Field(default=None, ge=0)
    actual_value: Decimal | None = Field(default=None, ge=0)
    record_date: date | None = None


def _registry_service(db: Session) -> RegistryService:
    return RegistryService(db)


def _entry_changes(payload: BaseModel, category_field: str) -> FinancialEntryUpdateData:
    values = payload.model_dump(exclude_unset=True)
    provided = {("category" if name == category_field else name) for name in values}
    return FinancialEntryUpdateData(
        category=values.get(category_field),
        description=values.get("description"),
        expected_value=values.get("expected_value"),
        actual_value=values.get("actual_value"),
        record_date=values.get("record_date"),
        provided=frozenset(provided),
    )


@router.get("/projects")
def list_projects(
    client_id: UUID | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _registry_service(db)
    items = service.list_projects(context=context, client_id=client_id)
    return {"items": [service.serialize_project(project) for project in items]}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            client_id=payload.client_id,
            name=payload.name,
            project_manager=payload.project_manager,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=payload.status,
        ),
    )
    return service.serialize_project(project)


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    project = service.get_project(context=context, project_id=project_id)
    return service.serialize_project(project)


@router.patch("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            name=payload.name,
            project_manager=payload.project_manager,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=payload.status,
            provided=frozenset(payload.model_fields_set),
        ),
    )
    return service.serialize_project(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _registry_service(db)
    service.delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/stages")
def list_project_stages(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _registry_service(db)
    rows = service.list_stages(context=context, project_id=project_id)
    return {"items": [service.serialize_stage(stage) for stage in rows]}


@router.post("/projects/{project_id}/stages", status_code=status.HTTP_201_CREATED)
def create_project_stage(
    project_id: UUID,
    payload: StageCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    stage = service.create_stage(
        context=context,
        project_id=project_id,
        data=StageCreateData(
            name=payload.name,
            status=payload.status,
            stage_weight=payload.stage_weight,
            report_start_date=payload.report_start_date,
            report_end_date=payload.report_end_date,
            report=payload.report,
        ),
    )
    return service.serialize_stage(stage)


@router.patch("/projects/{project_id}/stages/{stage_id}")
def update_project_stage(
    project_id: UUID,
    stage_id: UUID,
    payload: StageUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    stage = service.update_stage(
        context=context,
        project_id=project_id,
        stage_id=stage_id,
        data=StageUpdateData(
            name=payload.name,
            status=payload.status,
            stage_weight=payload.stage_weight,
            report_start_date=payload.report_start_date,
            report_end_date=payload.report_end_date,
            report=payload.report,
            provided=frozenset(payload.model_fields_set),
        ),
    )
    return service.serialize_stage(stage)


@router.delete("/projects/{project_id}/stages/{stage_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project_stage(
    project_id: UUID,
    stage_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _registry_service(db)
    service.delete_stage(context=context, project_id=project_id, stage_id=stage_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/costs")
def list_project_costs(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _registry_service(db)
    rows = service.list_costs(context=context, project_id=project_id)
    return {"items": [service.serialize_cost(row) for row in rows]}


@router.post("/projects/{project_id}/costs", status_code=status.HTTP_201_CREATED)
def create_project_cost(
    project_id: UUID,
    payload: CostCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    row = service.create_cost(
        context=context,
        project_id=project_id,
        data=FinancialEntryData(
            category=payload.cost_type,
            description=payload.description,
            expected_value=payload.expected_value,
            actual_value=payload.actual_value,
            record_date=payload.record_date,
        ),
    )
    return service.serialize_cost(row)


@router.patch("/projects/{project_id}/costs/{cost_id}")
def update_project_cost(
    project_id: UUID,
    cost_id: UUID,
    payload: CostUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    row = service.update_cost(
        context=context,
        project_id=project_id,
        cost_id=cost_id,
        data=_entry_changes(payload, "cost_type"),
    )
    return service.serialize_cost(row)


@router.delete("/projects/{project_id}/costs/{cost_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project_cost(
    project_id: UUID,
    cost_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _registry_service(db)
    service.delete_cost(context=context, project_id=project_id, cost_id=cost_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/revenues")
def list_project_revenues(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _registry_service(db)
    rows = service.list_revenues(context=context, project_id=project_id)
    return {"items": [service.serialize_revenue(row) for row in rows]}


@router.post("/projects/{project_id}/revenues", status_code=status.HTTP_201_CREATED)
def create_project_revenue(
    project_id: UUID,
    payload: RevenueCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    row = service.create_revenue(
        context=context,
        project_id=project_id,
        data=FinancialEntryData(
            category=payload.revenue_type,
            description=payload.description,
            expected_value=payload.expected_value,
            actual_value=payload.actual_value,
            record_date=payload.record_date,
        ),
    )
    return service.serialize_revenue(row)


@router.patch("/projects/{project_id}/revenues/{revenue_id}")
def update_project_revenue(
    project_id: UUID,
    revenue_id: UUID,
    payload: RevenueUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _registry_service(db)
    row = service.update_revenue(
        context=context,
        project_id=project_id,
        revenue_id=revenue_id,
        data=_entry_changes(payload, "revenue_type"),
    )
    return service.serialize_revenue(row)


@router.delete("/projects/{project_id}/revenues/{revenue_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project_revenue(
    project_id: UUID,
    revenue_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    service = _registry_service(db)
    service.delete_revenue(context=context, project_id=project_id, revenue_id=revenue_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
