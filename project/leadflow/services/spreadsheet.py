# leadflow/services/spreadsheet.py

"""
Импорт / экспорт лидов в Excel (openpyxl).
Только преобразование данных, без доступа к базе.
"""

from io import BytesIO
from typing import Iterable

import openpyxl
from openpyxl.styles import Font, PatternFill

from leadflow.models.enums import LeadStatus

EXPORT_HEADERS = ["Name", "Email", "Phone", "Source", "Status", "Tags", "Assigned To", "Created"]
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class SpreadsheetError(ValueError):
    """Файл не читается как книга Excel."""


def _cell(value) -> str:
    return str(value).strip() if value is not None else ""


def read_leads(content: bytes) -> tuple[list[dict], int]:
    """
    Читает первый лист книги. Первая строка: заголовки
    (Name, Email, Phone, Source, Status, Tags; регистр не важен).
    Строки без Name пропускаются.

    Возвращает (список словарей для создания лидов, число пропущенных строк).
    """
    try:
        wb = openpyxl.load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise SpreadsheetError(f"Invalid spreadsheet file: {e}") from e

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return [], 0

        columns = {_cell(name).lower(): idx for idx, name in enumerate(header) if _cell(name)}

        def get(row, key):
            idx = columns.get(key)
            if idx is None or idx >= len(row):
                return ""
            return _cell(row[idx])

        leads, skipped = [], 0
        for row in rows:
            if row is None or not any(v is not None and _cell(v) for v in row):
                continue
            name = get(row, "name")
            if not name:
                skipped += 1
                continue

            status = LeadStatus.NEW
            raw_status = get(row, "status").lower()
            for candidate in LeadStatus:
                if candidate.value.lower() == raw_status:
                    status = candidate

            leads.append({
                "name": name,
                "email": get(row, "email"),
                "phone": get(row, "phone"),
                "source": get(row, "source") or "Imported",
                "status": status,
                "tags": [t.strip() for t in get(row, "tags").split(",") if t.strip()],
            })
        return leads, skipped
    finally:
        wb.close()


def write_leads(leads: Iterable) -> bytes:
    """Собирает книгу с листом "Leads" и возвращает её байты."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Leads"

    # Заголовки со стилем
    for col, header in enumerate(EXPORT_HEADERS, start=1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(start_color="667eea", end_color="667eea", fill_type="solid")

    for row, lead in enumerate(leads, start=2):
        ws.cell(row=row, column=1, value=lead.name)
        ws.cell(row=row, column=2, value=lead.email)
        ws.cell(row=row, column=3, value=lead.phone)
        ws.cell(row=row, column=4, value=lead.source)
        ws.cell(row=row, column=5, value=LeadStatus(lead.status).value)
        ws.cell(row=row, column=6, value=", ".join(lead.tags))
        ws.cell(row=row, column=7, value=lead.assignee.name if lead.assignee else "")
        ws.cell(row=row, column=8, value=lead.created_at.strftime("%Y-%m-%d %H:%M"))

    # Ширина колонок по содержимому
    for col in ws.columns:
        width = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(width + 2, 50)

    out = BytesIO()
    wb.save(out)
    return out.getvalue()
