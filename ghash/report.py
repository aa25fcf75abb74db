"""Verification report exports (Excel, CSV, JSON)."""
from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterable, Union

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from .verify import STATUS_OK, VerifyOutcome, VerifySummary

GREEN_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
RED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
BOLD = Font(bold=True)

_FIELDS = ["status", "path", "detail", "line"]


def _rows(outcomes: Iterable[VerifyOutcome]):
    for item in outcomes:
        yield {"status": item.status, "path": item.path, "detail": item.detail, "line": item.line}


def export_to_excel(path: Union[str, Path], summary: VerifySummary) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Verification"

    headers = ["Line", "Status", "Path", "Details"]
    ws.append(headers)

    for row_idx, item in enumerate(summary.outcomes(), start=2):
        ws.append([item.line or None, item.status, item.path, item.detail])
        status_cell = ws.cell(row=row_idx, column=2)
        status_cell.fill = GREEN_FILL if item.status == STATUS_OK else RED_FILL
        if item.status != STATUS_OK:
            status_cell.font = BOLD

    totals = wb.create_sheet("Summary")
    for key, value in summary.as_dict().items():
        totals.append([key, value])

    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    for column_idx, column_title in enumerate(headers, start=1):
        column_letter = get_column_letter(column_idx)
        max_length = len(column_title)
        for cell in ws[column_letter]:
            if cell.value is None:
                continue
            max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[column_letter].width = max_length + 2

    wb.save(Path(path))


def export_to_csv(path: Union[str, Path], summary: VerifySummary) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=_FIELDS)
        writer.writeheader()
        writer.writerows(_rows(summary.outcomes()))


def export_to_json(path: Union[str, Path], summary: VerifySummary) -> None:
    payload = {"summary": summary.as_dict(), "items": list(_rows(summary.outcomes()))}
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def save_report(path: Union[str, Path], summary: VerifySummary) -> Path:
    """Pick the exporter from the file suffix; JSON is the fallback."""
    target = Path(path)
    suffix = target.suffix.lower()
    if suffix == ".xlsx":
        export_to_excel(target, summary)
    elif suffix == ".csv":
        export_to_csv(target, summary)
    else:
        export_to_json(target, summary)
    return target


__all__ = ["export_to_csv", "export_to_excel", "export_to_json", "save_report"]
