from __future__ import annotations

import argparse
import logging
from pathlib import Path

from openpyxl import load_workbook

from ordering_portal.db import SessionLocal
from ordering_portal.logging_config import configure_logging
from ordering_portal.services.import_service import import_products


logger = logging.getLogger(__name__)


def read_rows(path: Path, sheet: str | None = None) -> list[dict]:
    """Rows of a worksheet as dicts keyed by the header row; blank rows are dropped."""
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb[sheet] if sheet else wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        headers = [str(cell).strip() if cell is not None else '' for cell in header]

        records = []
        for values in rows:
            if values is None or all(value is None or str(value).strip() == '' for value in values):
                continue
            records.append({h: v for h, v in zip(headers, values) if h})
        return records
    finally:
        wb.close()


def run_import(path: Path, *, distributor_id: int | None, sheet: str | None = None, dry_run: bool = False):
    rows = read_rows(path, sheet)
    logger.info('Read %d rows from %s', len(rows), path)
    with SessionLocal() as db:
        result = import_products(db, rows, default_distributor_id=distributor_id)
        if dry_run:
            db.rollback()
        else:
            db.commit()
    return result


def main() -> None:
    parser = argparse.ArgumentParser(description='Import a distributor catalog from an .xlsx file.')
    parser.add_argument('path', type=Path, help='Spreadsheet to import.')
    parser.add_argument(
        '--distributor-id',
        type=int,
        default=None,
        help='Distributor used for rows without a distributor column.',
    )
    parser.add_argument('--sheet', default=None, help='Worksheet name (defaults to the first sheet).')
    parser.add_argument('--dry-run', action='store_true', help='Validate rows without saving them.')
    args = parser.parse_args()

    configure_logging()
    result = run_import(args.path, distributor_id=args.distributor_id, sheet=args.sheet, dry_run=args.dry_run)
    for error in result.errors:
        print(f"row {error['row']}: {error['message']}")
    print(f'Catalog import complete: imported={result.imported}, skipped={result.skipped}')


if __name__ == '__main__':
    main()
