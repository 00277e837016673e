"""Management report endpoint."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gestao_obras.api.responses import render_outcome
from gestao_obras.core.auth import AppRole, RequestUserContext, require_roles
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


class ManagementReportPayload(BaseModel):
    project_id: str | None = None
    as_of: date | None = None


def _service(db: Session) -> ReportService:
    return ReportService(db)


@router.post("/project-management")
def project_management_report(
    payload: ManagementReportPayload,
    context: RequestUserContext = Depends(require_roles(AppRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> JSONResponse:
    """Physical and financial analysis of one obra, recomputed on every call."""

    service = _service(db)
    return render_outcome(service.generate(payload.project_id, as_of=payload.as_of))
