"""
Streaming readers for CSV and Excel uploads.

Rows come out in chunks of plain dicts keyed by normalized column names
("Room Number" -> "room_number"), so bulk imports never hold a whole sheet
in memory.
"""
import csv
import io
import re
from typing import Iterator, Dict, List, Any
from openpyxl import load_workbook

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm')


def normalize_header(name, position: int = 0) -> str:
    """Lowercase, trim and snake-case a column header."""
    if name is None or not str(name).strip():
        return f'column_{position}'
    text = re.sub(r'(?<=[a-z0-9])(?=[A-Z])', '_', str(name).strip())
    return re.sub(r'[\s\-]+', '_', text).lower()


def process_csv_stream(file_stream, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """
    Stream a CSV file in chunks.

    Args:
        file_stream: Binary file-like object (e.g. request.files['file'].stream)
        chunk_size: Number of rows per chunk

    Yields:
        Lists of row dictionaries
    """
    text_stream = io.TextIOWrapper(file_stream, encoding='utf-8-sig', newline='')
    reader = csv.reader(text_stream)
    try:
        headers = [normalize_header(h, i) for i, h in enumerate(next(reader))]
    except StopIteration:
        return

    chunk = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        chunk.append({h: v.strip() for h, v in zip(headers, values)})
        if len(chunk) == chunk_size:
            yield chunk
            chunk = []

    if chunk:
        yield chunk


def process_excel_stream(file_stream, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """
    Stream the active sheet of an Excel workbook in chunks.
    Uses openpyxl's read_only mode.
    """
    workbook = load_workbook(file_stream, read_only=True, data_only=True)
    try:
        rows_iter = workbook.active.iter_rows(values_only=True)
        try:
            headers = [normalize_header(h, i) for i, h in enumerate(next(rows_iter))]
        except StopIteration:
            return

        chunk = []
        for row_values in rows_iter:
            if all(v is None or str(v).strip() == '' for v in row_values):
                continue
            chunk.append({
                header: '' if value is None else str(value).strip()
                for header, value in zip(headers, row_values)
            })
            if len(chunk) == chunk_size:
                yield chunk
                chunk = []

        if chunk:
            yield chunk
    finally:
        workbook.close()


def read_sheet_rows(file_stream) -> List[List[Any]]:
    """All rows of the first sheet as raw value lists (no header handling)."""
    workbook = load_workbook(file_stream, read_only=True, data_only=True)
    try:
        return [list(row) for row in workbook.worksheets[0].iter_rows(values_only=True)]
    finally:
        workbook.close()


def process_upload_stream(upload_file, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """
    Pick the CSV or Excel reader from the upload's file name.

    Raises:
        ValueError: If the file type is not supported
    """
    filename = (upload_file.filename or '').lower()

    if filename.endswith('.csv'):
        yield from process_csv_stream(upload_file.stream, chunk_size)
    elif filename.endswith(EXCEL_EXTENSIONS):
        yield from process_excel_stream(upload_file.stream, chunk_size)
    else:
        raise ValueError('Unsupported file type. Upload CSV or Excel (.xlsx) files only.')


def get_missing_columns(available_columns: set, required_columns: set) -> set:
    return required_columns - available_columns
