"""Project-level rollup of planned vs. actual costs and revenues."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from gestao_obras.models.entities import CostType, ProjectCost, ProjectRevenue

ZERO = Decimal("0")
HUNDRED = Decimal("100")
Q2 = Decimal("0.01")


def _as_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(slots=True, frozen=True)
class CostInput:
    cost_type: str
    expected_value: Decimal
    actual_value: Decimal

    @classmethod
    def from_row(cls, row: ProjectCost) -> CostInput:
        return cls(
            cost_type=row.cost_type,
            expected_value=_as_decimal(row.expected_value),
            actual_value=_as_decimal(row.actual_value),
        )


@dataclass(slots=True, frozen=True)
class RevenueInput:
    expected_value: Decimal
    actual_value: Decimal

    @classmethod
    def from_row(cls, row: ProjectRevenue) -> RevenueInput:
        return cls(
            expected_value=_as_decimal(row.expected_value),
            actual_value=_as_decimal(row.actual_value),
        )


@dataclass(slots=True, frozen=True)
class FinancialSummary:
    cost_direct_planned: Decimal
    cost_indirect_planned: Decimal
    cost_direct_actual: Decimal
    cost_indirect_actual: Decimal
    revenue_planned: Decimal
    revenue_actual: Decimal
    margin: Decimal

    @property
    def cost_total_planned(self) -> Decimal:
        return self.cost_direct_planned + self.cost_indirect_planned

    @property
    def cost_total_actual(self) -> Decimal:
        return self.cost_direct_actual + self.cost_indirect_actual

    @property
    def cost_variance(self) -> Decimal:
        return self.cost_total_actual - self.cost_total_planned

    @property
    def revenue_variance(self) -> Decimal:
        return self.revenue_actual - self.revenue_planned

    @property
    def balance(self) -> Decimal:
        return self.revenue_actual - self.cost_total_actual

    def as_dict(self) -> dict[str, float]:
        return {
            "custo_total_previsto": float(self.cost_total_planned),
            "custo_direto_previsto": float(self.cost_direct_planned),
            "custo_indireto_previsto": float(self.cost_indirect_planned),
            "custo_total_real": float(self.cost_total_actual),
            "custo_direto_real": float(self.cost_direct_actual),
            "custo_indireto_real": float(self.cost_indirect_actual),
            "variacao_custo": float(self.cost_variance),
            "receita_total_prevista": float(self.revenue_planned),
            "receita_total_realizada": float(self.revenue_actual),
            "variacao_receita": float(self.revenue_variance),
            "saldo_obra": float(self.balance),
            "margem_lucro": float(self.margin),
        }


class FinancialRollup:
    """Sums cost and revenue rows into a project financial summary.

    Only ``Direto`` and ``Indireto`` costs enter the totals; entries in any
    other category are ignored without error.
    """

    def __init__(self, costs: list[CostInput], revenues: list[RevenueInput]) -> None:
        self.costs = list(costs)
        self.revenues = list(revenues)

    def _cost_sum(self, cost_type: CostType, *, actual: bool) -> Decimal:
        return sum(
            (
                cost.actual_value if actual else cost.expected_value
                for cost in self.costs
                if cost.cost_type == cost_type.value
            ),
            ZERO,
        )

    def ignored_costs(self) -> list[CostInput]:
        known = {member.value for member in CostType}
        return [cost for cost in self.costs if cost.cost_type not in known]

    def calculate(self) -> FinancialSummary:
        direct_planned = self._cost_sum(CostType.DIRETO, actual=False)
        indirect_planned = self._cost_sum(CostType.INDIRETO, actual=False)
        direct_actual = self._cost_sum(CostType.DIRETO, actual=True)
        indirect_actual = self._cost_sum(CostType.INDIRETO, actual=True)
        revenue_planned = sum((revenue.expected_value for revenue in self.revenues), ZERO)
        revenue_actual = sum((revenue.actual_value for revenue in self.revenues), ZERO)

        balance = revenue_actual - (direct_actual + indirect_actual)
        if revenue_actual > ZERO:
            margin = (balance / revenue_actual * HUNDRED).quantize(Q2, rounding=ROUND_HALF_UP)
        else:
            margin = ZERO

        return FinancialSummary(
            cost_direct_planned=direct_planned,
            cost_indirect_planned=indirect_planned,
            cost_direct_actual=direct_actual,
            cost_indirect_actual=indirect_actual,
            revenue_planned=revenue_planned,
            revenue_actual=revenue_actual,
            margin=margin,
        )
