"""Data model shared by the translator, fetcher, processor and controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

# Records are opaque column -> scalar mappings straight from the service
Record = Mapping[str, Any]


class DataType(str, Enum):
    """Column data type, as far as filtering and sorting care."""

    STRING = "string"
    NUMBER = "number"


class Relation(str, Enum):
    """Filter relation. Values are the spellings the UI sends."""

    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Mode(str, Enum):
    """Where filter/sort/paginate runs. Fixed for a controller's lifetime."""

    LOCAL = "local"
    SERVER = "server"


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    Static description of a table column.

    Attributes:
        id: Field name in the records
        caption: Header text (defaults to the id)
        data_type: 'string' or 'number'
        filterable: Whether filter clauses may target this column
        sortable: Whether sort clauses may target this column
        hide: Hidden columns stay filterable/sortable but are not displayed
    """

    id: str
    caption: str = ""
    data_type: DataType = DataType.STRING
    filterable: bool = False
    sortable: bool = False
    hide: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Column id must be a non-empty string")
        # Frozen dataclass - normalize through object.__setattr__
        object.__setattr__(self, "data_type", DataType(self.data_type))
        if not self.caption:
            object.__setattr__(self, "caption", self.id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnDescriptor":
        """Build a descriptor from a loose config dict (camelCase keys accepted)."""
        return cls(
            id=data["id"],
            caption=data.get("caption", ""),
            data_type=DataType(data.get("data_type", data.get("dataType", "string"))),
            filterable=bool(data.get("filterable", False)),
            sortable=bool(data.get("sortable", False)),
            hide=bool(data.get("hide", False)),
        )


@dataclass(frozen=True)
class FilterClause:
    column: str
    relation: Relation
    value: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "relation", Relation(self.relation))
        object.__setattr__(self, "value", "" if self.value is None else str(self.value))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilterClause":
        """Build a clause from UI output. Missing relation means 'contains'."""
        return cls(
            column=data.get("column") or "",
            relation=Relation(data.get("relation") or Relation.CONTAINS.value),
            value=data.get("value"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "column": self.column,
            "relation": self.relation.value,
            "value": self.value,
        }


@dataclass(frozen=True)
class SortClause:
    column: str
    order: SortOrder = SortOrder.ASC

    def __post_init__(self) -> None:
        object.__setattr__(self, "order", SortOrder(self.order))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SortClause":
        """Build a clause from UI output. Missing order means 'asc'."""
        return cls(
            column=data.get("column") or "",
            order=SortOrder(data.get("order") or SortOrder.ASC.value),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"column": self.column, "order": self.order.value}


FilterLike = Union[FilterClause, Mapping[str, Any]]
SortLike = Union[SortClause, Mapping[str, Any]]


@dataclass(frozen=True)
class ViewState:
    """
    Page, filter and sort selection driving what is displayed.

    Immutable: the controller replaces the whole value on every change, so
    an evaluation can keep a reference to the state that started it.
    """

    page: int = 1
    page_size: int = 8
    filters: Tuple[FilterClause, ...] = ()
    sorters: Tuple[SortClause, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise ValueError(f"page must be a positive integer, got {self.page!r}")
        if (
            isinstance(self.page_size, bool)
            or not isinstance(self.page_size, int)
            or self.page_size < 1
        ):
            raise ValueError(
                f"page_size must be a positive integer, got {self.page_size!r}"
            )
        object.__setattr__(self, "filters", tuple(self.filters))
        object.__setattr__(self, "sorters", tuple(self.sorters))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class ResultSet:
    """
    One page of rows plus the size of the full filtered set.

    Attributes:
        rows: Records on the page (at most page_size)
        total_count: Size of the filtered set before pagination
        page: Page the rows belong to, when the producer clamped it
    """

    rows: List[Record] = field(default_factory=list)
    total_count: int = 0
    page: Optional[int] = None


@dataclass(frozen=True)
class TableResult:
    """Emission sent to the UI collaborator after each evaluation step."""

    rows: List[Record]
    total_count: int
    is_loading: bool
    page: int
    page_size: int
    total_pages: int
    error: Optional[str] = None


def row_key(record: Record, id_field: str = "id") -> Any:
    """
    Return the identity key of a record.

    Uses the configured identifier column and falls back to the generic
    'id' field when the record has no usable value there.
    """
    value = record.get(id_field)
    if value is None or value == "":
        return record.get("id")
    return value


def coerce_columns(
    columns: Sequence[Union[ColumnDescriptor, Mapping[str, Any]]],
) -> Tuple[ColumnDescriptor, ...]:
    """Accept descriptors or plain dicts and return descriptors."""
    result = []
    seen = set()
    for col in columns:
        descriptor = (
            col if isinstance(col, ColumnDescriptor) else ColumnDescriptor.from_dict(col)
        )
        if descriptor.id in seen:
            raise ValueError(f"Duplicate column id '{descriptor.id}'")
        seen.add(descriptor.id)
        result.append(descriptor)
    return tuple(result)
