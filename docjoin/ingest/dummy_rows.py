"""
Synthetic rows for tables imported from a schema dump.

A schema dump declares columns, types and foreign keys but carries no
data. Tables are filled parent-first so every foreign-key column takes
a value that exists in the referenced table, which keeps generated
documents joinable.
"""

import logging
import string
from collections import deque
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from faker import Faker

from docjoin.catalog.models import EdgeRecord, Row, Table

logger = logging.getLogger(__name__)

DEFAULT_ROW_COUNT = 10
_ALPHANUMERIC = string.ascii_letters + string.digits


def generate_value(fake: Faker, data_type: Optional[str], max_length: Optional[int] = None, scale: Optional[int] = None) -> Any:
    """Random value for a SQL Server column type."""
    t = (data_type or "").lower()
    if "uniqueidentifier" in t:
        return fake.uuid4()
    if t in ("int", "integer"):
        return fake.random_int(1, 1_000_000)
    if t == "bigint":
        return fake.random_int(1, 9_000_000)
    if t in ("smallint", "tinyint"):
        return fake.random_int(1, 1000)
    if t.startswith(("decimal", "numeric")):
        return round(fake.random.uniform(0, 10000), 2 if scale is None else scale)
    if t in ("float", "real"):
        return fake.random.uniform(0, 10000)
    if t == "bit":
        return fake.pybool()
    if "date" in t or "time" in t:
        return fake.date_time_between(start_date="-100d", end_date="now").isoformat()
    if "char" in t or "text" in t or "string" in t:
        length = max_length if max_length and 0 < max_length < 200 else 20
        return fake.lexify("?" * min(length, 50), letters=_ALPHANUMERIC)
    return fake.word()


def dependency_order(tables: Iterable[Table], edges: Iterable[EdgeRecord]) -> List[str]:
    """
    Table ids with referenced tables before the tables that reference them.

    Tables caught in a foreign-key cycle (self references included) are
    appended in their original order.
    """
    ids = [t.id for t in tables]
    known = set(ids)
    fk_edges = [e for e in edges if e.source in known and e.target in known]

    pending = {tid: 0 for tid in ids}
    for edge in fk_edges:
        pending[edge.source] += 1

    queue = deque(tid for tid in ids if pending[tid] == 0)
    order: List[str] = []
    while queue:
        tid = queue.popleft()
        order.append(tid)
        for edge in fk_edges:
            if edge.target != tid:
                continue
            pending[edge.source] -= 1
            if pending[edge.source] == 0:
                queue.append(edge.source)

    if len(order) < len(ids):
        logger.debug("Foreign-key cycle; remaining tables filled in declaration order")
        order.extend(tid for tid in ids if tid not in order)
    return order


def generate_dummy_rows(
    tables: List[Table],
    edges: Iterable[EdgeRecord],
    count: int = DEFAULT_ROW_COUNT,
    seed: Optional[int] = None,
) -> List[Table]:
    """
    Fill empty tables with `count` synthetic rows each.

    Primary keys count up from 1 (UUIDs for uniqueidentifier keys).
    Foreign-key columns copy the referenced column of a random parent
    row; other columns get a random value of their declared type.
    Tables that already have rows are returned unchanged and still
    serve as parents.

    Returns:
        New tables in the input order
    """
    fake = Faker()
    if seed is not None:
        fake.seed_instance(seed)

    edges = list(edges)
    by_id = {t.id: t for t in tables}
    foreign_keys: Dict[str, List[EdgeRecord]] = {}
    for edge in edges:
        if edge.source_handle and edge.target_handle:
            foreign_keys.setdefault(edge.source, []).append(edge)

    rows_by_table: Dict[str, List[Row]] = {t.id: t.rows for t in tables if t.rows}
    for tid in dependency_order(tables, edges):
        table = by_id[tid]
        if table.rows:
            continue

        counters = {col: 1 for col in table.primary_keys}
        rows: List[Row] = []
        for _ in range(count):
            row: Row = {}
            for col in table.columns:
                info = table.column_types.get(col)
                data_type = info.data_type if info else None
                is_pk = info.is_primary_key if info else col in table.primary_keys
                if is_pk:
                    if "uniqueidentifier" in (data_type or "").lower():
                        row[col] = fake.uuid4()
                    else:
                        row[col] = counters.get(col, 1)
                        counters[col] = row[col] + 1
                    continue

                fk = next((e for e in foreign_keys.get(tid, ()) if e.source_handle == col), None)
                parent_rows = rows_by_table.get(fk.target) if fk else None
                if parent_rows:
                    row[col] = fake.random.choice(parent_rows).get(fk.target_handle)
                    continue

                row[col] = generate_value(fake, data_type)
            rows.append(row)
        rows_by_table[tid] = rows

    logger.info(f"Generated rows for {sum(1 for t in tables if not t.rows)} tables")
    return [t if t.rows else replace(t, rows=rows_by_table.get(t.id, [])) for t in tables]
