"""
The backend-agnostic result representation.

Every adapter turns its native result (Arrow record batches or Snowflake JSON
rowsets) into a `NormalizedRowSet` of stringified cells.
"""

__all__ = [
    'NormalizedRowSet', 'from_arrow_table', 'from_arrow_ipc',
    'from_json_rowset', 'rowset_to_pandas']

import datetime
import decimal
import json
from typing import Iterable, Optional, Sequence

import pandas as pd
import pyarrow as pa

NULL = 'NULL'


class NormalizedRowSet:
    """
    Column names plus rows of string cells.

    ``byte_count`` is the size of the native payload the rows were decoded
    from, so throughput numbers stay comparable across wire formats.
    """
    __slots__ = ('column_names', 'rows', 'byte_count')

    def __init__(
            self,
            column_names: Sequence[str],
            rows: Iterable[Sequence[str]] = (),
            byte_count: int = 0):
        self.column_names = tuple(column_names)
        self.rows = [tuple(row) for row in rows]
        self.byte_count = byte_count
        width = len(self.column_names)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f'Row {index} has {len(row)} cells, expected {width}')

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def __len__(self):
        return len(self.rows)

    def __eq__(self, other):
        if not isinstance(other, NormalizedRowSet):
            return NotImplemented
        return (self.column_names == other.column_names
                and self.rows == other.rows)

    def __repr__(self):
        return (f'NormalizedRowSet(columns={list(self.column_names)!r}, '
                f'row_count={self.row_count}, '
                f'byte_count={self.byte_count})')


def _format_cell(value, scale: int = 0) -> str:
    if value is None:
        return NULL
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int) and scale:
        return format(decimal.Decimal(value).scaleb(-scale), 'f')
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _field_scale(field: pa.Field) -> int:
    # Snowflake ships NUMBER(p, s) as scaled integers with the scale
    # recorded in the field metadata.
    if not pa.types.is_integer(field.type) or not field.metadata:
        return 0
    try:
        return int(field.metadata.get(b'scale', b'0'))
    except ValueError:
        return 0


def from_arrow_table(table: pa.Table, byte_count: Optional[int] = None) -> NormalizedRowSet:
    """Normalize an Arrow table (one or more record batches)."""
    columns = []
    for field, column in zip(table.schema, table.columns):
        scale = _field_scale(field)
        columns.append([_format_cell(value, scale) for value in column.to_pylist()])
    rows = zip(*columns) if columns else ()
    if byte_count is None:
        byte_count = table.nbytes
    return NormalizedRowSet(table.schema.names, rows, byte_count)


def from_arrow_ipc(
        payloads: Sequence[bytes],
        column_names: Sequence[str] = ()) -> NormalizedRowSet:
    """
    Normalize one or more Arrow IPC streams.

    ``column_names`` is used when every payload is empty and no schema is
    available.
    """
    tables = []
    for payload in payloads:
        if not payload:
            continue
        with pa.ipc.open_stream(payload) as reader:
            tables.append(reader.read_all())
    byte_count = sum(len(payload) for payload in payloads)
    if not tables:
        return NormalizedRowSet(column_names, (), byte_count)
    table = pa.concat_tables(tables) if len(tables) > 1 else tables[0]
    return from_arrow_table(table, byte_count)


def from_json_rowset(
        rowtype: Sequence[dict],
        rowset: Sequence[Sequence],
        byte_count: int = 0) -> NormalizedRowSet:
    """
    Normalize a Snowflake JSON result.

    Cells already arrive as strings (or null), in ``rowtype`` column order.
    """
    column_names = [col['name'] for col in rowtype]
    rows = [
        tuple(_format_cell(cell) for cell in row)
        for row in rowset]
    return NormalizedRowSet(column_names, rows, byte_count)


def rowset_to_pandas(rowset: NormalizedRowSet) -> pd.DataFrame:
    """A DataFrame of ``string`` dtype columns holding the row-set."""
    df = pd.DataFrame.from_records(
        rowset.rows,
        columns=list(rowset.column_names))
    return df.astype('string')
