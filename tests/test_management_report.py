from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gestao_obras.core.auth import AppRole
from gestao_obras.models.entities import ProjectCost, ProjectRevenue, Stage, StageStatus
from gestao_obras.repositories.obra_repository import ObraRepository
from gestao_obras.services.report_service import client_address, planned_duration_days

REPORT_URL = "/api/v1/reports/project-management"


def _seed_obra(db: Session, make_client, make_project):
    client_row = make_client(
        code="CLI-042",
        name="Construtora Alfa",
        responsible="Maria Souza",
        phone="(11) 99999-0000",
        street="Rua das Flores",
        number="120",
        city="",
        state="SP",
    )
    project = make_project(
        client_row,
        name="Residencial Aurora",
        project_manager="João Lima",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status="em_andamento",
    )
    db.add_all(
        [
            Stage(project_id=project.id, name="Fundação", status=StageStatus.CONCLUIDO,
                  stage_weight=Decimal("0.2"), report_end_date=date(2024, 1, 10)),
            Stage(project_id=project.id, name="Estrutura", status=StageStatus.CONCLUIDO,
                  stage_weight=Decimal("0.3"), report_end_date=date(2024, 1, 20)),
            Stage(project_id=project.id, name="Alvenaria", status=StageStatus.EM_ANDAMENTO,
                  stage_weight=Decimal("0.3"), report_end_date=date(2024, 2, 5)),
            Stage(project_id=project.id, name="Acabamento", status=StageStatus.PENDENTE,
                  stage_weight=Decimal("0.2"), report_end_date=None),
            ProjectCost(project_id=project.id, cost_type="Direto",
                        expected_value=Decimal("1000"), actual_value=Decimal("900")),
            ProjectCost(project_id=project.id, cost_type="Indireto",
                        expected_value=Decimal("500"), actual_value=Decimal("600")),
            ProjectCost(project_id=project.id, cost_type="Contingência",
                        expected_value=Decimal("250"), actual_value=Decimal("250")),
            ProjectRevenue(project_id=project.id, revenue_type="Medição",
                           expected_value=Decimal("2000"), actual_value=Decimal("1800")),
        ]
    )
    db.commit()
    return project


def test_report_combines_physical_and_financial_analysis(
    client: TestClient,
    db_session: Session,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    project = _seed_obra(db_session, make_client, make_project)

    response = client.post(
        REPORT_URL,
        headers=admin_headers,
        json={"project_id": str(project.id), "as_of": "2024-02-10"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["obra"] == {
        "id": str(project.id),
        "nome": "Residencial Aurora",
        "gestor": "João Lima",
        "data_inicio": "2024-01-01",
        "data_conclusao_prevista": "2024-01-31",
        "prazo_dias": 30,
        "status": "em_andamento",
    }
    assert body["cliente"] == {
        "nome": "Construtora Alfa",
        "codigo": "CLI-042",
        "responsavel": "Maria Souza",
        "telefone": "(11) 99999-0000",
        "endereco": "Rua das Flores, 120, SP",
    }

    physical = body["analise_fisica"]
    assert physical["ifec"] == {"valor": 50.0, "descricao": "2/4 etapas concluídas"}
    assert physical["iec"] == {"valor": 62.5, "descricao": "Eficiência: 62.5%"}
    assert physical["producao_mensal"] == [
        {"mes_ano": "2024-01", "previsto": 50.0, "real": 50.0, "variacao": 0.0},
        {"mes_ano": "2024-02", "previsto": 30.0, "real": 0.0, "variacao": -30.0},
    ]
    assert physical["producao_acumulada"] == [
        {"mes_ano": "2024-01", "previsto": 50.0, "real": 50.0, "variacao": 0.0},
        {"mes_ano": "2024-02", "previsto": 80.0, "real": 50.0, "variacao": -30.0},
    ]

    financial = body["analise_financeira"]
    assert financial["custo_total_previsto"] == 1500.0
    assert financial["custo_total_real"] == 1500.0
    assert financial["custo_direto_real"] == 900.0
    assert financial["custo_indireto_real"] == 600.0
    assert financial["variacao_custo"] == 0.0
    assert financial["receita_total_prevista"] == 2000.0
    assert financial["receita_total_realizada"] == 1800.0
    assert financial["variacao_receita"] == -200.0
    assert financial["saldo_obra"] == 300.0
    assert financial["margem_lucro"] == 16.67
    assert body["observacoes_gerenciais"] == ""


def test_report_without_dates_or_rows(
    client: TestClient,
    admin_headers: dict[str, str],
    make_client,
    make_project,
) -> None:
    project = make_project(make_client(), start_date=date(2024, 1, 1), end_date=None)

    response = client.post(REPORT_URL, headers=admin_headers, json={"project_id": str(project.id)})

    assert response.status_code == 200
    body = response.json()
    assert body["obra"]["prazo_dias"] is None
    assert body["obra"]["data_conclusao_prevista"] is None
    assert body["cliente"]["endereco"] == ""
    assert body["analise_fisica"]["ifec"]["valor"] == 0.0
    assert body["analise_fisica"]["iec"]["descricao"] == "Sem etapas planejadas até hoje"
    assert body["analise_financeira"]["margem_lucro"] == 0.0


def test_missing_project_id_is_bad_request(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.post(REPORT_URL, headers=admin_headers, json={})

    assert response.status_code == 400
    assert response.json() == {"error": "project_id é obrigatório"}


def test_unknown_project_is_not_found(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.post(REPORT_URL, headers=admin_headers, json={"project_id": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json() == {"error": "Obra não encontrada"}


def test_malformed_project_id_is_not_found(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.post(REPORT_URL, headers=admin_headers, json={"project_id": "obra-123"})

    assert response.status_code == 404
    assert response.json() == {"error": "Obra não encontrada"}


def test_store_failure_returns_generic_error(
    client: TestClient,
    admin_headers: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken_get_project(self, project_id):
        raise OperationalError("SELECT projects", {}, Exception("connection reset: secret-host:5432"))

    monkeypatch.setattr(ObraRepository, "get_project", broken_get_project)

    response = client.post(REPORT_URL, headers=admin_headers, json={"project_id": str(uuid.uuid4())})

    assert response.status_code == 500
    assert response.json() == {"error": "Erro interno"}
    assert "secret-host" not in response.text


def test_report_requires_authentication(client: TestClient) -> None:
    response = client.post(REPORT_URL, json={"project_id": str(uuid.uuid4())})

    assert response.status_code == 401
    assert response.json() == {"error": "Não autorizado"}


def test_report_requires_admin_role(client: TestClient, grant) -> None:
    headers = grant(subject="sub-client", email="cliente@test.local", role=AppRole.CLIENT)

    response = client.post(REPORT_URL, headers=headers, json={"project_id": str(uuid.uuid4())})

    assert response.status_code == 403


def test_planned_duration_days() -> None:
    assert planned_duration_days(date(2024, 1, 1), date(2024, 1, 31)) == 30
    assert planned_duration_days(date(2024, 1, 1), None) is None
    assert planned_duration_days(None, date(2024, 1, 31)) is None
    assert planned_duration_days(date(2024, 2, 1), date(2024, 1, 30)) == -2


def test_client_address_without_client() -> None:
    assert client_address(None) == ""
