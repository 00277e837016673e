"""Export endpoint for the management report."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from gestao_obras.api.responses import render_outcome
from gestao_obras.core.auth import AppRole, RequestUserContext, require_roles
from gestao_obras.db.dependencies import get_db_session
from gestao_obras.services.outcomes import Outcome
from gestao_obras.services.report_export import EXPORT_FORMATS, export_report
from gestao_obras.services.report_service import ReportService

router = APIRouter(prefix="/exports", tags=["exports"])


@router.get("/project-management")
def export_project_management_report(
    project_id: str | None = Query(default=None),
    format: str = Query(default="xlsx"),
    as_of: date | None = Query(default=None),
    context: RequestUserContext = Depends(require_roles(AppRole.ADMIN)),
    db: Session = Depends(get_db_session),
) -> Response:
    if format.strip().lower() not in EXPORT_FORMATS:
        return render_outcome(Outcome.bad_request("format deve ser csv ou xlsx"))

    outcome = ReportService(db).generate(project_id, as_of=as_of)
    if not outcome.is_ok:
        return render_outcome(outcome)

    report = outcome.payload or {}
    exported = export_report(
        report,
        format_name=format,
        base_filename=f"relatorio-gerencial-{report['obra']['id']}",
    )
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
