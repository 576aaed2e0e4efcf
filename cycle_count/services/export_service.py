from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from io import BytesIO, StringIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from cycle_count.errors import CountError, CountValidationError
from cycle_count.models import CountItem
from cycle_count.services.count_service import get_count_session, list_count_items

EXPORT_FORMATS = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}


@dataclass(frozen=True)
class ExportOptions:
    format: str = 'csv'
    include_snapshots: bool = False
    include_notes: bool = True
    include_audit_trail: bool = False


@dataclass(frozen=True)
class CountExport:
    filename: str
    media_type: str
    content: bytes
    row_count: int


def export_headers(options: ExportOptions) -> list[str]:
    headers = ['SKU', 'Item Name', 'Unit', 'Theoretical Qty', 'Counted Qty', 'Variance Qty', 'Variance Value', 'Counted By']
    if options.include_snapshots:
        headers += ['Avg Cost', 'Snapshot At']
    if options.include_notes:
        headers.append('Notes')
    if options.include_audit_trail:
        headers.append('Counted At')
    return headers


def export_row(item: CountItem, options: ExportOptions) -> list:
    row = [
        item.sku,
        item.name,
        item.unit,
        item.snapshot_qty,
        item.counted_qty,
        item.variance_qty,
        item.variance_value,
        item.counted_by,
    ]
    if options.include_snapshots:
        row += [item.snapshot_avg_cost, item.snapshot_timestamp]
    if options.include_notes:
        row.append(item.notes)
    if options.include_audit_trail:
        row.append(item.counted_at)
    return row


_FORMULA_PREFIXES = ('=', '+', '-', '@', '\t', '\r')


def _safe_text(value: str) -> str:
    # Spreadsheets evaluate cells that start with these characters.
    if value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def _csv_value(value) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return _safe_text(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _xlsx_value(value):
    if value is None:
        return ''
    if isinstance(value, str):
        return _safe_text(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def render_csv(headers: list[str], rows: list[list]) -> bytes:
    sio = StringIO()
    writer = csv.writer(sio)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_value(value) for value in row])
    return sio.getvalue().encode('utf-8')


def render_xlsx(headers: list[str], rows: list[list], *, title: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
    header_font = Font(bold=True, color='FFFFFF')
    ws.append(headers)
    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center', vertical='center')

    for row in rows:
        ws.append([_xlsx_value(value) for value in row])

    for column in ws.columns:
        width = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        ws.column_dimensions[get_column_letter(column[0].column)].width = min(width + 2, 50)
    ws.freeze_panes = 'A2'

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_count(db: Session, *, count_id: str, options: ExportOptions, now: datetime | None = None) -> CountExport:
    if options.format not in EXPORT_FORMATS:
        raise CountValidationError(
            [CountError(code='INVALID_FORMAT', message=f'Unsupported export format: {options.format}', field='format')]
        )

    count_session = get_count_session(db, count_id=count_id)
    items = list_count_items(db, count_id=count_id)
    headers = export_headers(options)
    rows = [export_row(item, options) for item in items]

    if options.format == 'xlsx':
        content = render_xlsx(headers, rows, title='Count')
    else:
        content = render_csv(headers, rows)

    stamp = (now or datetime.now(tz=timezone.utc)).strftime('%Y-%m-%d')
    return CountExport(
        filename=f'count-{count_session.id}-{stamp}.{options.format}',
        media_type=EXPORT_FORMATS[options.format],
        content=content,
        row_count=len(rows),
    )
