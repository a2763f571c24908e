"""Client-side filtering, sorting and pagination for local mode."""

import logging
from typing import Any, Dict, List, Sequence, Tuple

import polars as pl

from ..core.pagination import clamp_page
from ..core.types import (
    FilterClause,
    Record,
    Relation,
    ResultSet,
    SortClause,
    SortOrder,
)

logger = logging.getLogger(__name__)

# Position of each record in the input, used to map the key frame back
ROW_INDEX = "__row"


def stringify_value(value: Any) -> str:
    """
    Render a field value the way it is compared by text filters.

    Missing/None becomes the empty string, booleans become 'true'/'false'
    and integral floats drop their trailing '.0'.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# Rank of each value kind within one sort column; nulls carry no rank
_NUMBER_RANK = 0
_TEXT_RANK = 1
SORT_KEY_SUFFIXES = ("_rank", "_num", "_text")


def _sort_key_columns(
    name: str, values: List[Any]
) -> Dict[str, Tuple[List[Any], pl.DataType]]:
    """
    Split a sort column into rank, numeric and text key columns.

    Two numbers compare numerically and any other pair lexically on the
    stringified values. Numbers rank before text, and missing values are
    null in all three keys so they go last.

    Returns:
        Dict mapping key column names to (values, dtype)
    """
    ranks: List[Any] = []
    numbers: List[Any] = []
    texts: List[Any] = []
    for value in values:
        if value is None:
            ranks.append(None)
            numbers.append(None)
            texts.append(None)
        elif _is_number(value):
            ranks.append(_NUMBER_RANK)
            numbers.append(value)
            texts.append(None)
        else:
            ranks.append(_TEXT_RANK)
            numbers.append(None)
            texts.append(stringify_value(value))

    present = [v for v in numbers if v is not None]
    if all(isinstance(v, int) for v in present):
        number_dtype = pl.Int64
    else:
        number_dtype = pl.Float64
        numbers = [None if v is None else float(v) for v in numbers]

    rank_name, number_name, text_name = (name + s for s in SORT_KEY_SUFFIXES)
    return {
        rank_name: (ranks, pl.Int8),
        number_name: (numbers, number_dtype),
        text_name: (texts, pl.Utf8),
    }


def _build_key_frame(
    records: Sequence[Record],
    filters: Sequence[FilterClause],
    sorters: Sequence[SortClause],
) -> Tuple[pl.DataFrame, Dict[str, str], Dict[str, str]]:
    """
    Build a frame holding only what filtering and sorting need.

    Returns:
        Tuple of (frame, filter column names, sort column names) where the
        dicts map record column ids to key frame column names (for sorters,
        the prefix of the rank/numeric/text key columns)
    """
    data: Dict[str, List[Any]] = {ROW_INDEX: list(range(len(records)))}
    schema: Dict[str, pl.DataType] = {ROW_INDEX: pl.Int64}

    filter_names: Dict[str, str] = {}
    for clause in filters:
        if clause.column in filter_names:
            continue
        name = f"__f{len(filter_names)}"
        filter_names[clause.column] = name
        data[name] = [
            stringify_value(record.get(clause.column)).lower() for record in records
        ]
        schema[name] = pl.Utf8

    sort_names: Dict[str, str] = {}
    for clause in sorters:
        if clause.column in sort_names:
            continue
        name = f"__s{len(sort_names)}"
        sort_names[clause.column] = name
        keys = _sort_key_columns(
            name, [record.get(clause.column) for record in records]
        )
        for key_name, (values, dtype) in keys.items():
            data[key_name] = values
            schema[key_name] = dtype

    return pl.DataFrame(data, schema=schema), filter_names, sort_names


def _filter_expression(column: str, clause: FilterClause) -> pl.Expr:
    value = clause.value.lower()
    col = pl.col(column)
    if clause.relation == Relation.EQUALS:
        return col == value
    if clause.relation == Relation.CONTAINS:
        return col.str.contains(value, literal=True)
    return col.str.starts_with(value)


def filter_records(
    data: pl.LazyFrame,
    filters: Sequence[FilterClause],
    column_names: Dict[str, str],
) -> pl.LazyFrame:
    """
    Keep rows satisfying every filter clause (logical AND).

    Args:
        data: Key frame with lowercased string columns
        filters: Filter clauses to apply
        column_names: Mapping of record column ids to key frame columns

    Returns:
        Filtered LazyFrame
    """
    if not filters:
        return data
    predicates = [
        _filter_expression(column_names[clause.column], clause) for clause in filters
    ]
    return data.filter(pl.all_horizontal(predicates))


def sort_records(
    data: pl.LazyFrame,
    sorters: Sequence[SortClause],
    column_names: Dict[str, str],
) -> pl.LazyFrame:
    """
    Stable multi-key sort following clause order.

    Each clause carries its own direction, so later clauses only break ties
    left by earlier ones. A clause sorts on its rank, numeric and text keys
    (see _sort_key_columns). Nulls go last regardless of direction.
    """
    if not sorters:
        return data
    # A repeated column adds nothing after its first occurrence
    seen = set()
    by: List[str] = []
    descending: List[bool] = []
    for clause in sorters:
        if clause.column in seen:
            continue
        seen.add(clause.column)
        name = column_names[clause.column]
        for suffix in SORT_KEY_SUFFIXES:
            by.append(name + suffix)
            descending.append(clause.order == SortOrder.DESC)
    return data.sort(by, descending=descending, nulls_last=True, maintain_order=True)


def process_records(
    records: Sequence[Record],
    filters: Sequence[FilterClause] = (),
    sorters: Sequence[SortClause] = (),
    page: int = 1,
    page_size: int = 8,
) -> ResultSet:
    """
    Filter, sort and paginate an in-memory record set.

    Pure and deterministic: the input records are never modified and the
    returned rows are the original record objects.

    Args:
        records: Full dataset
        filters: Filter clauses (AND)
        sorters: Sort clauses, earlier clauses take precedence
        page: Requested page, clamped into the valid range
        page_size: Rows per page

    Returns:
        ResultSet with the page rows, filtered total and the clamped page
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    records = list(records)
    frame, filter_names, sort_names = _build_key_frame(records, filters, sorters)

    data = frame.lazy()
    data = filter_records(data, filters, filter_names)
    data = sort_records(data, sorters, sort_names)
    ordered = data.select(ROW_INDEX).collect()

    total_count = ordered.height
    current_page = clamp_page(page, total_count, page_size)
    if current_page != page:
        logger.debug(
            "Clamped page %s to %s (%s rows, page size %s)",
            page,
            current_page,
            total_count,
            page_size,
        )

    offset = (current_page - 1) * page_size
    indices = ordered.slice(offset, page_size)[ROW_INDEX].to_list()

    return ResultSet(
        rows=[records[i] for i in indices],
        total_count=total_count,
        page=current_page,
    )
