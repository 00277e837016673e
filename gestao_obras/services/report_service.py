"""Project management report: physical and financial analysis of one obra."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestao_obras.models.entities import Client, Project
from gestao_obras.repositories.obra_repository import ObraRepository
from gestao_obras.services.financial import CostInput, FinancialRollup, RevenueInput
from gestao_obras.services.outcomes import Outcome
from gestao_obras.services.progress import StageInput, StageProgressCalculator

logger = logging.getLogger(__name__)

PROJECT_NOT_FOUND = "Obra não encontrada"
PROJECT_ID_REQUIRED = "project_id é obrigatório"

SECONDS_PER_DAY = 86400


def parse_uuid(value: object) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except (TypeError, ValueError):
        return None


def planned_duration_days(start_date: date | None, end_date: date | None) -> int | None:
    """Whole days between planned start and end, rounded up; None if either is missing."""

    if start_date is None or end_date is None:
        return None
    return math.ceil((end_date - start_date).total_seconds() / SECONDS_PER_DAY)


def client_address(client: Client | None) -> str:
    if client is None:
        return ""
    parts = [client.street, client.number, client.city, client.state]
    return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass(slots=True)
class _ReportSources:
    project: Project
    client: Client | None
    stages: list[StageInput]
    costs: list[CostInput]
    revenues: list[RevenueInput]


class ReportService:
    """Builds the management report for a project on every request."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = ObraRepository(db)

    def _load_sources(self, project_id: UUID) -> _ReportSources | None:
        project = self.repo.get_project(project_id)
        if project is None:
            return None
        return _ReportSources(
            project=project,
            client=self.repo.get_client(project.client_id),
            stages=[StageInput.from_row(row) for row in self.repo.list_stages(project.id)],
            costs=[CostInput.from_row(row) for row in self.repo.list_costs(project.id)],
            revenues=[RevenueInput.from_row(row) for row in self.repo.list_revenues(project.id)],
        )

    @staticmethod
    def serialize_project(project: Project) -> dict[str, object]:
        return {
            "id": str(project.id),
            "nome": project.name,
            "gestor": project.project_manager,
            "data_inicio": project.start_date.isoformat() if project.start_date else None,
            "data_conclusao_prevista": project.end_date.isoformat() if project.end_date else None,
            "prazo_dias": planned_duration_days(project.start_date, project.end_date),
            "status": project.status,
        }

    @staticmethod
    def serialize_client(client: Client | None) -> dict[str, object]:
        return {
            "nome": client.name if client else "",
            "codigo": client.code if client else "",
            "responsavel": (client.responsible or "") if client else "",
            "telefone": (client.phone or "") if client else "",
            "endereco": client_address(client),
        }

    def build_report(self, project_id: UUID, *, as_of: date | None = None) -> dict[str, object] | None:
        """Assemble the report payload, or None when the project does not exist."""

        sources = self._load_sources(project_id)
        if sources is None:
            return None

        progress = StageProgressCalculator(sources.stages, as_of=as_of).calculate()
        rollup = FinancialRollup(sources.costs, sources.revenues)
        ignored = rollup.ignored_costs()
        if ignored:
            logger.info(
                "Cost entries outside Direto/Indireto left out of report totals",
                extra={"project_id": str(project_id), "ignored_entries": len(ignored)},
            )
        summary = rollup.calculate()

        return {
            "obra": self.serialize_project(sources.project),
            "cliente": self.serialize_client(sources.client),
            "analise_fisica": progress.as_dict(),
            "analise_financeira": summary.as_dict(),
            "observacoes_gerenciais": "",
        }

    def generate(self, project_id: object, *, as_of: date | None = None) -> Outcome:
        if project_id is None or (isinstance(project_id, str) and not project_id.strip()):
            return Outcome.bad_request(PROJECT_ID_REQUIRED)

        parsed_id = parse_uuid(project_id)
        if parsed_id is None:
            return Outcome.not_found(PROJECT_NOT_FOUND)

        try:
            report = self.build_report(parsed_id, as_of=as_of)
        except SQLAlchemyError:
            logger.exception("Management report failed", extra={"project_id": str(parsed_id)})
            return Outcome.internal_error()

        if report is None:
            return Outcome.not_found(PROJECT_NOT_FOUND)
        return Outcome.ok(report)
