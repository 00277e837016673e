"""CSV and XLSX exports of the management report."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from io import BytesIO

from openpyxl import Workbook

EXPORT_FORMATS = {"csv", "xlsx"}

SUMMARY_COLUMNS = ["secao", "campo", "valor"]
SERIES_COLUMNS = ["serie", "mes_ano", "previsto", "real", "variacao"]


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _cell(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def flatten_summary(report: dict[str, object]) -> list[dict[str, str]]:
    """One row per scalar field of the obra, cliente and analysis sections."""

    rows: list[dict[str, str]] = []
    for section in ("obra", "cliente", "analise_financeira"):
        values = report.get(section)
        if not isinstance(values, dict):
            continue
        for field_name, value in values.items():
            rows.append({"secao": section, "campo": field_name, "valor": _cell(value)})

    physical = report.get("analise_fisica")
    if isinstance(physical, dict):
        for index_name in ("ifec", "iec"):
            index = physical.get(index_name)
            if isinstance(index, dict):
                rows.append({"secao": "analise_fisica", "campo": index_name, "valor": _cell(index.get("valor"))})
                rows.append(
                    {
                        "secao": "analise_fisica",
                        "campo": f"{index_name}_descricao",
                        "valor": _cell(index.get("descricao")),
                    }
                )
    return rows


def flatten_series(report: dict[str, object]) -> list[dict[str, str]]:
    physical = report.get("analise_fisica")
    if not isinstance(physical, dict):
        return []

    rows: list[dict[str, str]] = []
    for series_name in ("producao_mensal", "producao_acumulada"):
        points = physical.get(series_name)
        if not isinstance(points, list):
            continue
        for point in points:
            if not isinstance(point, dict):
                continue
            record = {"serie": series_name}
            for column in SERIES_COLUMNS[1:]:
                record[column] = _cell(point.get(column))
            rows.append(record)
    return rows


def export_report(report: dict[str, object], *, format_name: str, base_filename: str) -> ExportFilePayload:
    normalized_format = format_name.strip().lower()
    if normalized_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {format_name}")

    summary_rows = flatten_summary(report)
    series_rows = flatten_series(report)

    if normalized_format == "csv":
        sio = io.StringIO()
        writer = csv.DictWriter(sio, fieldnames=SUMMARY_COLUMNS)
        writer.writeheader()
        writer.writerows(summary_rows)
        if series_rows:
            sio.write("\r\n")
            series_writer = csv.DictWriter(sio, fieldnames=SERIES_COLUMNS)
            series_writer.writeheader()
            series_writer.writerows(series_rows)
        return ExportFilePayload(
            media_type="text/csv; charset=utf-8",
            filename=f"{base_filename}.csv",
            content=sio.getvalue().encode("utf-8"),
        )

    workbook = Workbook()
    summary_sheet = workbook.active
    summary_sheet.title = "resumo"
    summary_sheet.append(SUMMARY_COLUMNS)
    for row in summary_rows:
        summary_sheet.append([row[column] for column in SUMMARY_COLUMNS])

    series_sheet = workbook.create_sheet("producao")
    series_sheet.append(SERIES_COLUMNS)
    for row in series_rows:
        series_sheet.append([row[column] for column in SERIES_COLUMNS])

    output = BytesIO()
    workbook.save(output)
    return ExportFilePayload(
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"{base_filename}.xlsx",
        content=output.getvalue(),
    )
