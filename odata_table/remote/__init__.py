"""Remote service access: query translation and HTTP fetching."""

from .fetcher import RemoteFetcher
from .query import (
    build_filter_expression,
    build_orderby,
    column_types,
    translate,
    translate_count,
)

__all__ = [
    "RemoteFetcher",
    "translate",
    "translate_count",
    "build_filter_expression",
    "build_orderby",
    "column_types",
]
