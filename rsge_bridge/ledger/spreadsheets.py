"""
Spreadsheet reading and writing with openpyxl.

Uploads arrive as raw bytes and exports leave as raw bytes, so nothing here
touches the filesystem.
"""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter

from rsge_bridge.errors import ImportValidationError

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _load(content: bytes):
    try:
        return load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ImportValidationError(f"Could not read the spreadsheet: {e}") from e


def read_sheet_rows(content: bytes, sheet_index: int = 0, fallback_to_first: bool = True) -> List[List[Any]]:
    """
    All rows of one sheet as lists of raw cell values (header row included).

    When the workbook has fewer sheets than `sheet_index + 1` the first sheet
    is used instead, unless `fallback_to_first` is off.
    """
    wb = _load(content)
    try:
        sheets = wb.worksheets
        if not sheets:
            raise ImportValidationError("The workbook has no sheets")
        if sheet_index >= len(sheets):
            if not fallback_to_first:
                raise ImportValidationError(f"Sheet {sheet_index} not found")
            sheet_index = 0
        ws = sheets[sheet_index]
        logger.info("Reading sheet %r (%d of %d)", ws.title, sheet_index + 1, len(sheets))
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def read_sheet_records(content: bytes, sheet_index: int = 0) -> List[Dict[str, Any]]:
    """First sheet rows keyed by the header row; fully blank rows are dropped."""
    rows = read_sheet_rows(content, sheet_index)
    if not rows:
        return []
    headers = [str(h).strip() if h is not None else "" for h in rows[0]]
    records: List[Dict[str, Any]] = []
    for row in rows[1:]:
        if not any(v not in (None, "") for v in row):
            continue
        records.append({headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]})
    return records


def build_workbook(
    sheet_title: str,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    column_widths: Optional[Sequence[int]] = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    # Sheet titles are capped at 31 characters
    ws.title = sheet_title[:31]
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))

    if column_widths:
        for idx, width in enumerate(column_widths):
            ws.column_dimensions[get_column_letter(idx + 1)].width = width

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()
