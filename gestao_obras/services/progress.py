"""Stage-based physical progress indices and production series.

Two indices are derived from a project's stage list:

- IFEC (physical completion): share of stages marked ``concluido``,
  unweighted.
- IEC (schedule efficiency): completed stage weight over the weight of
  stages whose ``report_end_date`` is due by the reference date.

Stage weights are relative to their siblings, so every ratio uses the
actual sums and never an assumed total. Empty lists, missing dates and
zero weights degrade to zero values instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal

from gestao_obras.models.entities import Stage, StageStatus

ZERO = Decimal("0")
HUNDRED = Decimal("100")
Q1 = Decimal("0.1")
Q2 = Decimal("0.01")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2, rounding=ROUND_HALF_UP)


def _as_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def utc_today() -> date:
    return datetime.now(UTC).date()


@dataclass(slots=True, frozen=True)
class StageInput:
    name: str
    status: str
    stage_weight: Decimal
    report_end_date: date | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == StageStatus.CONCLUIDO.value

    @classmethod
    def from_row(cls, row: Stage) -> StageInput:
        status = row.status.value if isinstance(row.status, StageStatus) else str(row.status)
        return cls(
            name=row.name,
            status=status,
            stage_weight=_as_decimal(row.stage_weight),
            report_end_date=row.report_end_date,
        )


@dataclass(slots=True, frozen=True)
class IndexValue:
    valor: Decimal
    descricao: str

    def as_dict(self) -> dict[str, object]:
        return {"valor": float(self.valor), "descricao": self.descricao}


@dataclass(slots=True, frozen=True)
class ProductionPoint:
    mes_ano: str
    previsto: Decimal
    real: Decimal
    variacao: Decimal

    def as_dict(self) -> dict[str, object]:
        return {
            "mes_ano": self.mes_ano,
            "previsto": float(self.previsto),
            "real": float(self.real),
            "variacao": float(self.variacao),
        }


@dataclass(slots=True)
class MonthBucket:
    previsto: Decimal = ZERO
    real: Decimal = ZERO


@dataclass(slots=True)
class StageProgress:
    ifec: IndexValue
    iec: IndexValue
    total_stages: int
    completed_stages: int
    completed_weight: Decimal
    planned_weight: Decimal
    producao_mensal: list[ProductionPoint] = field(default_factory=list)
    producao_acumulada: list[ProductionPoint] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "ifec": self.ifec.as_dict(),
            "iec": self.iec.as_dict(),
            "producao_mensal": [point.as_dict() for point in self.producao_mensal],
            "producao_acumulada": [point.as_dict() for point in self.producao_acumulada],
        }


class StageProgressCalculator:
    """Computes completion indices and production series for one project."""

    def __init__(self, stages: list[StageInput], as_of: date | None = None) -> None:
        self.stages = list(stages)
        self.as_of = as_of or utc_today()

    def completed_stages(self) -> list[StageInput]:
        return [stage for stage in self.stages if stage.is_completed]

    def completed_weight(self) -> Decimal:
        return sum((stage.stage_weight for stage in self.completed_stages()), ZERO)

    def planned_weight(self) -> Decimal:
        return sum(
            (
                stage.stage_weight
                for stage in self.stages
                if stage.report_end_date is not None and stage.report_end_date <= self.as_of
            ),
            ZERO,
        )

    def total_weight(self) -> Decimal:
        return sum((stage.stage_weight for stage in self.stages), ZERO)

    def ifec(self) -> Decimal:
        total = len(self.stages)
        if total == 0:
            return ZERO
        return Decimal(len(self.completed_stages())) / Decimal(total) * HUNDRED

    def iec(self) -> Decimal:
        planned = self.planned_weight()
        if planned <= ZERO:
            return ZERO
        return self.completed_weight() / planned * HUNDRED

    def weighted_progress(self) -> int:
        """Completed share of total stage weight, as a whole percentage."""

        total = self.total_weight()
        if total <= ZERO:
            return 0
        ratio = self.completed_weight() / total * HUNDRED
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def monthly_buckets(self) -> list[tuple[str, MonthBucket]]:
        """Stage weights grouped by ``YYYY-MM`` of ``report_end_date``.

        Keys sort lexically in chronological order; stages without an end
        date are left out of the series.
        """

        buckets: dict[str, MonthBucket] = {}
        for stage in self.stages:
            if stage.report_end_date is None:
                continue
            bucket = buckets.setdefault(month_key(stage.report_end_date), MonthBucket())
            bucket.previsto += stage.stage_weight
            if stage.is_completed:
                bucket.real += stage.stage_weight
        return sorted(buckets.items())

    def production_series(self) -> tuple[list[ProductionPoint], list[ProductionPoint]]:
        monthly: list[ProductionPoint] = []
        cumulative: list[ProductionPoint] = []
        running_previsto = ZERO
        running_real = ZERO

        for key, bucket in self.monthly_buckets():
            monthly.append(
                ProductionPoint(
                    mes_ano=key,
                    previsto=_q2(bucket.previsto * HUNDRED),
                    real=_q2(bucket.real * HUNDRED),
                    variacao=_q2((bucket.real - bucket.previsto) * HUNDRED),
                )
            )
            running_previsto += bucket.previsto
            running_real += bucket.real
            cumulative.append(
                ProductionPoint(
                    mes_ano=key,
                    previsto=_q2(running_previsto * HUNDRED),
                    real=_q2(running_real * HUNDRED),
                    variacao=_q2((running_real - running_previsto) * HUNDRED),
                )
            )
        return monthly, cumulative

    def calculate(self) -> StageProgress:
        total = len(self.stages)
        completed = len(self.completed_stages())
        planned_weight = self.planned_weight()
        iec_value = self.iec()
        monthly, cumulative = self.production_series()

        if planned_weight > ZERO:
            iec_description = f"Eficiência: {iec_value.quantize(Q1, rounding=ROUND_HALF_UP)}%"
        else:
            iec_description = "Sem etapas planejadas até hoje"

        return StageProgress(
            ifec=IndexValue(valor=_q2(self.ifec()), descricao=f"{completed}/{total} etapas concluídas"),
            iec=IndexValue(valor=_q2(iec_value), descricao=iec_description),
            total_stages=total,
            completed_stages=completed,
            completed_weight=self.completed_weight(),
            planned_weight=planned_weight,
            producao_mensal=monthly,
            producao_acumulada=cumulative,
        )
