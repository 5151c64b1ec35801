from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ordering_portal.models import Distributor
from ordering_portal.services.catalog_service import create_product
from ordering_portal.services.normalization_service import parse_decimal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    key: str
    aliases: tuple[str, ...]
    # Substrings that map a header to this field when no alias matches exactly.
    keywords: tuple[str, ...] = ()
    required: bool = False


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec(
        'name',
        ('Name', 'Nome', 'Produto', 'Item Description', 'Description', 'Descrição', 'DESCRICAO'),
        ('descr', 'nome', 'produto'),
        required=True,
    ),
    FieldSpec(
        'item_code',
        ('Código', 'CODIGO', 'Item Code', 'Code', 'COD', 'Referencia', 'REF'),
        ('codigo', 'itemcode', 'referencia'),
        required=True,
    ),
    FieldSpec(
        'distributor_id',
        ('distributorId', 'Distributor Id', 'Distribuidor', 'Fornecedor Id'),
        ('distributorid', 'distribuidorid', 'fornecedorid'),
        required=True,
    ),
    FieldSpec('supplier_code', ('Cód.Forn.', 'CODFORN', 'Supplier Code', 'COD_FORN'), ('forn', 'supplier')),
    FieldSpec('bar_code', ('Cód.Barra', 'GTIN', 'EAN', 'Bar Code', 'CODBARRAS'), ('barra', 'gtin', 'ean', 'barcode')),
    FieldSpec('description', ('Departamento', 'Notes', 'DEPTO', 'Description'), ('depart', 'setor', 'notes')),
    FieldSpec('group_name', ('Grupo', 'GRUPO', 'Categoria'), ('grupo', 'categoria', 'familia')),
    FieldSpec('box_price', ('Preço Caixa', 'PREÇO CAIXA', 'Box Price', 'PRECO CAIXA'), ('caixa', 'boxprice')),
    FieldSpec(
        'unit_price',
        ('Preço Compra', 'PREÇO COMPRA', 'Preço', 'PRECO', 'Unit Price', 'Valor'),
        ('preco', 'custo', 'price'),
    ),
    FieldSpec('box_quantity', ('Qtd/Caixa', 'QTD/CAIXA', 'Box Quantity'), ('qtd', 'quantity')),
    FieldSpec('unit', ('Unid.', 'Unidade', 'Unit', 'UN'), ('unid',)),
)

REQUIRED_FIELDS = tuple(spec.key for spec in FIELD_SPECS if spec.required)
PRICE_FIELDS = ('unit_price', 'box_price')


def normalize_header(value: Any) -> str:
    text = unicodedata.normalize('NFD', '' if value is None else str(value))
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r'[^a-z0-9]', '', text.lower())


def resolve_columns(headers: list[str]) -> dict[str, str]:
    """Map system fields to the spreadsheet headers carrying them.

    For each field the first alias (in alias order) present among the headers
    wins; failing that, the first header containing one of its keywords.
    Normalization drops case, accents and punctuation, so "PREÇO COMPRA"
    equals "Preço Compra". A header is assigned to at most one field, and
    fields are resolved in declaration order, so "Preço Caixa" is taken by the
    box price before the unit price keywords are tried.
    """
    normalized = [(header, normalize_header(header)) for header in headers]
    mapping: dict[str, str] = {}
    taken: set[str] = set()

    for spec in FIELD_SPECS:
        match = None
        for alias in spec.aliases:
            wanted = normalize_header(alias)
            match = next(
                (header for header, norm in normalized if header not in taken and norm == wanted),
                None,
            )
            if match is not None:
                break
        if match is None:
            match = next(
                (
                    header
                    for header, norm in normalized
                    if header not in taken and any(keyword in norm for keyword in spec.keywords)
                ),
                None,
            )
        if match is not None:
            mapping[spec.key] = match
            taken.add(match)
    return mapping


def map_row(row: dict, mapping: dict[str, str]) -> dict:
    mapped: dict[str, Any] = {}
    for key, header in mapping.items():
        value = row.get(header)
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == '':
            continue
        mapped[key] = value
    return mapped


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def add_error(self, row_number: int, message: str) -> None:
        self.skipped += 1
        self.errors.append({'row': row_number, 'message': message})


def _distributor_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    # Spreadsheet cells may render whole numbers as "3.0".
    match = re.fullmatch(r'(\d+)(?:\.0*)?', str(value).strip())
    return int(match.group(1)) if match else None


def import_products(
    db: Session,
    rows: list[dict],
    *,
    default_distributor_id: int | None = None,
) -> ImportResult:
    """Import catalog rows, skipping the ones that cannot become products.

    Row numbers in the error list are 1-based positions in ``rows``. Each row
    is inserted inside its own savepoint so a failing row does not undo the
    ones before it.
    """
    result = ImportResult()
    if not rows:
        return result

    headers: list[str] = []
    for row in rows:
        for header in row.keys():
            if header not in headers:
                headers.append(header)
    mapping = resolve_columns(headers)
    known_distributors = set(db.execute(select(Distributor.id)).scalars().all())

    for row_number, row in enumerate(rows, start=1):
        fields = map_row(row, mapping)
        if 'distributor_id' not in fields and default_distributor_id is not None:
            fields['distributor_id'] = default_distributor_id

        missing = [key for key in REQUIRED_FIELDS if key not in fields]
        if missing:
            result.add_error(row_number, f"Missing required fields: {', '.join(missing)}")
            continue

        distributor_id = _distributor_id(fields['distributor_id'])
        if distributor_id is None or distributor_id not in known_distributors:
            result.add_error(row_number, f"Unknown distributor: {fields['distributor_id']}")
            continue
        invalid = [key for key in PRICE_FIELDS if key in fields and parse_decimal(fields[key]) is None]
        if invalid:
            result.add_error(row_number, f"Invalid {invalid[0]}: {fields[invalid[0]]}")
            continue
        fields['distributor_id'] = distributor_id
        fields['name'] = str(fields['name'])
        fields['item_code'] = str(fields['item_code'])

        try:
            with db.begin_nested():
                create_product(db, fields)
        except (SQLAlchemyError, ValueError, ArithmeticError) as exc:
            logger.warning('Import row %d rejected: %s', row_number, exc)
            result.add_error(row_number, str(exc))
            continue
        result.imported += 1

    logger.info('Product import finished: %d imported, %d skipped', result.imported, result.skipped)
    return result
