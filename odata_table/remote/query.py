"""Translate view state into OData v4 style query strings."""

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from ..core.types import (
    ColumnDescriptor,
    DataType,
    FilterClause,
    Relation,
    SortClause,
    ViewState,
)

logger = logging.getLogger(__name__)

ColumnTypes = Mapping[str, DataType]

# Plain decimal or exponent notation, no inf/nan
_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def column_types(columns: Sequence[ColumnDescriptor]) -> Dict[str, DataType]:
    """Build the column id -> data type map used by the translator."""
    return {col.id: col.data_type for col in columns}


def _is_numeric_literal(value: str) -> bool:
    return _NUMBER_PATTERN.match(value.strip()) is not None


def _quote_literal(value: str) -> str:
    """Wrap a value in a protocol string literal, doubling single quotes."""
    return "'" + value.replace("'", "''") + "'"


def translate_filter(clause: FilterClause, data_type: DataType) -> str:
    """
    Translate one filter clause.

    Numeric columns only support 'equals' with a numeric value. Anything
    else yields an empty string and the clause is dropped.

    Args:
        clause: The filter clause
        data_type: Type of the clause's column

    Returns:
        Filter expression, or "" if the clause does not translate
    """
    if data_type == DataType.NUMBER:
        if clause.relation != Relation.EQUALS or not _is_numeric_literal(clause.value):
            logger.warning(
                "Dropping filter on numeric column '%s': relation=%s value=%r",
                clause.column,
                clause.relation.value,
                clause.value,
            )
            return ""
        return f"{clause.column} eq {clause.value.strip()}"

    literal = _quote_literal(clause.value)
    if clause.relation == Relation.EQUALS:
        return f"tolower({clause.column}) eq tolower({literal})"
    if clause.relation == Relation.CONTAINS:
        return f"contains(tolower({clause.column}), tolower({literal}))"
    return f"startswith(tolower({clause.column}), tolower({literal}))"


def build_filter_expression(
    filters: Sequence[FilterClause], types: ColumnTypes
) -> Optional[str]:
    """
    Join translated filter clauses with ' and '.

    Columns missing from the type map are treated as strings.

    Returns:
        The combined expression, or None when no clause survives
    """
    parts = [
        translate_filter(clause, types.get(clause.column, DataType.STRING))
        for clause in filters
    ]
    parts = [part for part in parts if part]
    if not parts:
        return None
    return " and ".join(parts)


def build_orderby(sorters: Sequence[SortClause]) -> Optional[str]:
    """Serialize sort clauses as 'col asc,other desc', None if empty."""
    if not sorters:
        return None
    return ",".join(f"{s.column} {s.order.value}" for s in sorters)


def encode_query(params: Sequence[Tuple[str, str]]) -> str:
    """
    Percent-encode query parameters.

    Names keep their literal '$' prefix. Values are fully encoded, so
    spaces become %20 and quotes, commas and parentheses are escaped.
    """
    return "&".join(f"{name}={quote(value, safe='')}" for name, value in params)


def translate(state: ViewState, types: ColumnTypes) -> str:
    """
    Build the data query for the current view state.

    Always carries $count, $top and $skip. $orderby and $filter are only
    present when there is something to express.

    Args:
        state: Current view state
        types: Mapping of column ids to data types

    Returns:
        Encoded query string without the leading '?'
    """
    params: List[Tuple[str, str]] = [
        ("$count", "true"),
        ("$top", str(state.page_size)),
        ("$skip", str(state.offset)),
    ]

    orderby = build_orderby(state.sorters)
    if orderby is not None:
        params.append(("$orderby", orderby))

    filter_expression = build_filter_expression(state.filters, types)
    if filter_expression is not None:
        params.append(("$filter", filter_expression))

    return encode_query(params)


def translate_count(state: ViewState, types: ColumnTypes) -> str:
    """
    Build the query for the count endpoint.

    Only the filter matters for counting, so paging and ordering are left
    out. Returns "" when there is no filter.
    """
    filter_expression = build_filter_expression(state.filters, types)
    if filter_expression is None:
        return ""
    return encode_query([("$filter", filter_expression)])
