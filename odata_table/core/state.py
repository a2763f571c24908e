"""State controller owning the view state and driving evaluation."""

import logging
from dataclasses import replace
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ..preprocessing.filtering import process_records
from ..remote.fetcher import RemoteFetcher
from ..remote.query import column_types, translate, translate_count
from .config import EngineSettings, get_settings
from .errors import TableEngineError
from .pagination import total_pages
from .requests import (
    FilterChange,
    LoadAll,
    PageChange,
    Refresh,
    Reload,
    SortChange,
    TableRequest,
)
from .types import (
    ColumnDescriptor,
    DataType,
    FilterClause,
    FilterLike,
    Mode,
    Record,
    ResultSet,
    SortClause,
    SortLike,
    TableResult,
    ViewState,
    coerce_columns,
    row_key,
)

logger = logging.getLogger(__name__)

Listener = Callable[[TableResult], None]


class TableController:
    """
    Owns paging/filter/sort state and keeps the displayed page consistent.

    Features:
        - Local mode: filter/sort/paginate a cached dataset in memory
        - Server mode: translate state into a query and fetch one page plus
          the filtered count from the remote service
        - Generation-counter conflict resolution: a result is only applied
          if no newer request was made while it was in flight
        - Errors become an `error` field on the emission, never exceptions

    Every state change goes through the async operations below. Each one
    returns the emitted TableResult, or None when the evaluation was
    superseded by a newer request.

    Example:
        controller = TableController(columns, mode="server", fetcher=fetcher)
        controller.subscribe(render)
        await controller.set_filters([{"column": "Gender", "relation": "equals",
                                       "value": "Male"}])
        await controller.set_page(2)
    """

    def __init__(
        self,
        columns: Sequence[Union[ColumnDescriptor, Mapping[str, Any]]],
        *,
        mode: Union[Mode, str] = Mode.LOCAL,
        page_size: Optional[int] = None,
        fetcher: Optional[RemoteFetcher] = None,
        id_field: str = "id",
        filters: Optional[Sequence[FilterLike]] = None,
        sorters: Optional[Sequence[SortLike]] = None,
        records: Optional[Sequence[Record]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """
        Initialize the controller.

        Args:
            columns: Column descriptors (or dicts accepted by
                ColumnDescriptor.from_dict). Fixed for the controller's lifetime.
            mode: 'local' or 'server'. Never changes after construction.
            page_size: Rows per page, defaults to settings.page_size
            fetcher: RemoteFetcher, required in server mode and for reload()
            id_field: Column holding the record identity key
            filters: Initial filter clauses
            sorters: Initial sort clauses
            records: Initial local dataset (local mode only)
            settings: Engine settings, defaults to get_settings()
        """
        self._settings = settings or get_settings()
        self._columns = coerce_columns(columns)
        self._column_map: Dict[str, ColumnDescriptor] = {
            col.id: col for col in self._columns
        }
        self._column_types: Dict[str, DataType] = column_types(self._columns)
        self._mode = Mode(mode)
        self._fetcher = fetcher
        self._id_field = id_field

        if self._mode == Mode.SERVER and fetcher is None:
            raise ValueError("Server mode requires a fetcher")
        if self._mode == Mode.SERVER and records:
            raise ValueError("Initial records are only used in local mode")

        self._state = ViewState(
            page=1,
            page_size=self._settings.page_size if page_size is None else page_size,
            filters=self._normalize_filters(filters or ()),
            sorters=self._normalize_sorters(sorters or ()),
        )
        self._records: List[Record] = list(records or ())
        self._generation = 0
        self._is_loading = False
        self._last_result: Optional[TableResult] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Read-only accessors

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def columns(self) -> Tuple[ColumnDescriptor, ...]:
        return self._columns

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def state(self) -> ViewState:
        """Current view state (immutable snapshot)."""
        return self._state

    @property
    def can_reload(self) -> bool:
        """True when reload() can re-fetch the dataset from the service."""
        return self._mode == Mode.LOCAL and self._fetcher is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def generation(self) -> int:
        """Number of asynchronous evaluations started so far."""
        return self._generation

    @property
    def last_result(self) -> Optional[TableResult]:
        return self._last_result

    def row_key(self, record: Record) -> Any:
        return row_key(record, self._id_field)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for TableResult emissions.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations (the only mutators of the view state)

    async def set_page(self, page: int) -> Optional[TableResult]:
        """Go to a page, keeping filters and sorters."""
        self._state = replace(self._state, page=page)
        return await self._evaluate()

    async def set_filters(self, filters: Sequence[FilterLike]) -> Optional[TableResult]:
        """Replace the filter clauses and go back to page 1."""
        normalized = self._normalize_filters(filters)
        self._state = replace(self._state, filters=normalized, page=1)
        return await self._evaluate()

    async def set_sorters(self, sorters: Sequence[SortLike]) -> Optional[TableResult]:
        """Replace the sort clauses and go back to page 1."""
        normalized = self._normalize_sorters(sorters)
        self._state = replace(self._state, sorters=normalized, page=1)
        return await self._evaluate()

    async def refresh(self) -> Optional[TableResult]:
        """Re-evaluate the current state without changing it."""
        return await self._evaluate()

    async def load_all(self, records: Sequence[Record]) -> Optional[TableResult]:
        """
        Replace the cached dataset (local mode only) and go back to page 1.

        Supersedes a reload() still in flight.
        """
        self._require_local("load_all")
        self._records = list(records)
        self._state = replace(self._state, page=1)
        self._generation += 1
        self._is_loading = False
        return self._evaluate_local()

    async def reload(self) -> Optional[TableResult]:
        """
        Fetch the full dataset from the service and load it (local mode only).

        Follows continuation links. On failure the previous dataset is kept
        and an error emission is produced.
        """
        self._require_local("reload")
        if self._fetcher is None:
            raise RuntimeError("reload() requires a fetcher")

        applied, records, error = await self._track(self._fetcher.fetch_all)
        if not applied:
            return None
        if error is not None:
            return self._fail(error)

        self._records = list(records)
        self._state = replace(self._state, page=1)
        return self._evaluate_local()

    async def dispatch(self, request: TableRequest) -> Optional[TableResult]:
        """
        Route an inbound request to the matching operation.

        Raises:
            TypeError: If the request is not one of the known request types
        """
        if isinstance(request, PageChange):
            return await self.set_page(request.page)
        if isinstance(request, FilterChange):
            return await self.set_filters(request.filters)
        if isinstance(request, SortChange):
            return await self.set_sorters(request.sorters)
        if isinstance(request, Refresh):
            return await self.refresh()
        if isinstance(request, LoadAll):
            return await self.load_all(request.records)
        if isinstance(request, Reload):
            return await self.reload()
        raise TypeError(f"Unsupported request type: {type(request).__name__}")

    # ------------------------------------------------------------------
    # Evaluation

    async def _evaluate(self) -> Optional[TableResult]:
        if self._mode == Mode.LOCAL:
            return self._evaluate_local()
        return await self._evaluate_server()

    def _evaluate_local(self) -> TableResult:
        state = self._state
        result = process_records(
            self._records,
            state.filters,
            state.sorters,
            page=state.page,
            page_size=state.page_size,
        )
        if result.page is not None and result.page != state.page:
            # Keep the stored page inside the valid range
            self._state = replace(state, page=result.page)
        return self._apply(result)

    async def _evaluate_server(self) -> Optional[TableResult]:
        state = self._state
        query = translate(state, self._column_types)
        count_query = translate_count(state, self._column_types)

        applied, result, error = await self._track(
            lambda: self._fetcher.fetch_page(query, count_query)
        )
        if not applied:
            return None
        if error is not None:
            return self._fail(error)
        return self._apply(result)

    async def _track(
        self, start: Callable[[], Awaitable[Any]]
    ) -> Tuple[bool, Any, Optional[TableEngineError]]:
        """
        Run one asynchronous evaluation under the generation counter.

        Returns:
            Tuple of (applied, value, error). applied is False when a newer
            request was made while this one was in flight; its outcome must
            then be dropped.
        """
        self._generation += 1
        generation = self._generation
        self._is_loading = True
        self._emit(self._loading_result())

        value: Any = None
        error: Optional[TableEngineError] = None
        try:
            value = await start()
        except TableEngineError as exc:
            error = exc
        finally:
            # Only the latest evaluation owns the loading flag
            if generation == self._generation:
                self._is_loading = False

        if generation != self._generation:
            logger.debug(
                "Dropping stale result of generation %d (current %d)",
                generation,
                self._generation,
            )
            return False, None, None
        return True, value, error

    # ------------------------------------------------------------------
    # Emission

    def _make_result(
        self,
        rows: Sequence[Record],
        total_count: int,
        error: Optional[str] = None,
    ) -> TableResult:
        state = self._state
        return TableResult(
            rows=list(rows),
            total_count=total_count,
            is_loading=self._is_loading,
            page=state.page,
            page_size=state.page_size,
            total_pages=total_pages(total_count, state.page_size),
            error=error,
        )

    def _loading_result(self) -> TableResult:
        # Keep showing the previous page while the new one loads
        previous = self._last_result
        if previous is None or previous.error is not None:
            return self._make_result([], 0)
        return self._make_result(previous.rows, previous.total_count)

    def _apply(self, result: ResultSet) -> TableResult:
        return self._emit(self._make_result(result.rows, result.total_count))

    def _fail(self, error: TableEngineError) -> TableResult:
        logger.error("Table evaluation failed: %s", error)
        return self._emit(
            self._make_result([], 0, error=self._settings.error_message)
        )

    def _emit(self, result: TableResult) -> TableResult:
        self._last_result = result
        for listener in list(self._listeners):
            listener(result)
        return result

    # ------------------------------------------------------------------
    # Validation

    def _require_local(self, operation: str) -> None:
        if self._mode != Mode.LOCAL:
            raise RuntimeError(f"{operation}() is only available in local mode")

    def _require_column(self, column_id: str) -> ColumnDescriptor:
        column = self._column_map.get(column_id)
        if column is None:
            raise ValueError(
                f"Unknown column '{column_id}'. "
                f"Available columns: {list(self._column_map)}"
            )
        return column

    def _normalize_filters(
        self, filters: Sequence[FilterLike]
    ) -> Tuple[FilterClause, ...]:
        """
        Convert loose filter input into validated clauses.

        Clauses without a column or value are dropped (an empty editor row).
        """
        result = []
        for item in filters:
            clause = item if isinstance(item, FilterClause) else FilterClause.from_dict(item)
            if not clause.column or clause.value == "":
                continue
            if not self._require_column(clause.column).filterable:
                raise ValueError(f"Column '{clause.column}' is not filterable")
            result.append(clause)
        return tuple(result)

    def _normalize_sorters(self, sorters: Sequence[SortLike]) -> Tuple[SortClause, ...]:
        """Convert loose sort input into validated clauses, dropping empty rows."""
        result = []
        for item in sorters:
            clause = item if isinstance(item, SortClause) else SortClause.from_dict(item)
            if not clause.column:
                continue
            if not self._require_column(clause.column).sortable:
                raise ValueError(f"Column '{clause.column}' is not sortable")
            result.append(clause)
        return tuple(result)

    def __repr__(self) -> str:
        return (
            f"TableController(mode='{self._mode.value}', "
            f"page={self._state.page}, "
            f"page_size={self._state.page_size}, "
            f"filters={[f.to_dict() for f in self._state.filters]}, "
            f"sorters={[s.to_dict() for s in self._state.sorters]}, "
            f"generation={self._generation})"
        )
