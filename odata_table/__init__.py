"""
odata-table - Remote tabular data engine.

This package keeps a paginated, filterable, sortable view of records from an
OData-style service consistent as page, filter and sort state change. The
work runs either in memory (local mode) or on the service (server mode).
"""

from .core.config import EngineSettings, get_settings
from .core.errors import ContinuationLimitError, DecodeError, TableEngineError, TransportError
from .core.requests import FilterChange, LoadAll, PageChange, Refresh, Reload, SortChange
from .core.state import TableController
from .core.types import (
    ColumnDescriptor,
    FilterClause,
    Mode,
    ResultSet,
    SortClause,
    TableResult,
    ViewState,
)
from .preprocessing.filtering import process_records
from .remote.fetcher import RemoteFetcher
from .remote.query import translate, translate_count

__version__ = "0.1.0"

__all__ = [
    # Core
    "TableController",
    "EngineSettings",
    "get_settings",
    "ColumnDescriptor",
    "FilterClause",
    "SortClause",
    "ViewState",
    "ResultSet",
    "TableResult",
    "Mode",
    # Requests
    "PageChange",
    "FilterChange",
    "SortChange",
    "Refresh",
    "LoadAll",
    "Reload",
    # Errors
    "TableEngineError",
    "TransportError",
    "ContinuationLimitError",
    "DecodeError",
    # Engine parts
    "RemoteFetcher",
    "translate",
    "translate_count",
    "process_records",
]
