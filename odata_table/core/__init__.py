"""Core infrastructure for odata_table."""

from .config import EngineSettings, get_settings, reload_settings
from .errors import ContinuationLimitError, DecodeError, TableEngineError, TransportError
from .requests import FilterChange, LoadAll, PageChange, Refresh, Reload, SortChange
from .state import TableController
from .types import (
    ColumnDescriptor,
    DataType,
    FilterClause,
    Mode,
    Relation,
    ResultSet,
    SortClause,
    SortOrder,
    TableResult,
    ViewState,
)

__all__ = [
    "TableController",
    "EngineSettings",
    "get_settings",
    "reload_settings",
    "TableEngineError",
    "TransportError",
    "ContinuationLimitError",
    "DecodeError",
    "PageChange",
    "FilterChange",
    "SortChange",
    "Refresh",
    "LoadAll",
    "Reload",
    "ColumnDescriptor",
    "DataType",
    "FilterClause",
    "Mode",
    "Relation",
    "ResultSet",
    "SortClause",
    "SortOrder",
    "TableResult",
    "ViewState",
]
