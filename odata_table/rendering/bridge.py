"""Bridge between the table controller and Streamlit."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

import pandas as pd
import streamlit as st

from ..core.config import get_settings
from ..core.pagination import page_window
from ..core.requests import (
    FilterChange,
    PageChange,
    Refresh,
    Reload,
    SortChange,
    TableRequest,
)
from ..core.state import TableController
from ..core.types import (
    ColumnDescriptor,
    DataType,
    Record,
    Relation,
    SortOrder,
    TableResult,
    row_key,
)

logger = logging.getLogger(__name__)

# Session state key holding one controller per table key
# Controllers live per Streamlit session, never at module level
_CONTROLLERS_KEY = "_odata_table_controllers"

# Number of numbered page buttons shown around the current page
MAX_PAGE_BUTTONS = 5


class PageButton(NamedTuple):
    label: str
    page: int
    disabled: bool
    active: bool


def get_controller(key: str, factory: Callable[[], TableController]) -> TableController:
    """
    Get or create the controller for a table in this Streamlit session.

    Args:
        key: Unique key of the table on the page
        factory: Called once per session to build the controller

    Returns:
        The session's TableController for this key
    """
    if _CONTROLLERS_KEY not in st.session_state:
        st.session_state[_CONTROLLERS_KEY] = {}
    controllers: Dict[str, TableController] = st.session_state[_CONTROLLERS_KEY]
    if key not in controllers:
        controllers[key] = factory()
    return controllers[key]


def clear_controllers() -> None:
    """Drop all controllers of this session (e.g. when switching data source)."""
    if _CONTROLLERS_KEY in st.session_state:
        st.session_state[_CONTROLLERS_KEY].clear()


def build_display_frame(
    rows: Sequence[Record],
    columns: Sequence[ColumnDescriptor],
    id_field: str = "id",
) -> pd.DataFrame:
    """
    Build the DataFrame shown for one page of rows.

    Hidden columns are left out, captions become headers and the record
    identity key becomes the index.

    Args:
        rows: Records on the current page
        columns: Column descriptors in display order
        id_field: Column holding the record identity key

    Returns:
        pandas DataFrame ready for st.dataframe
    """
    visible = [col for col in columns if not col.hide]
    return pd.DataFrame(
        [[row.get(col.id) for col in visible] for row in rows],
        columns=[col.caption for col in visible],
        index=pd.Index([row_key(row, id_field) for row in rows], name=id_field),
    )


def pagination_buttons(
    current: int, n_pages: int, max_buttons: int = MAX_PAGE_BUTTONS
) -> List[PageButton]:
    """
    Describe the First/Previous/numbered/Next/Last pagination buttons.

    Returns an empty list when everything fits on one page.
    """
    if n_pages <= 1:
        return []
    buttons = [
        PageButton("First", 1, current == 1, False),
        PageButton("Previous", max(1, current - 1), current == 1, False),
    ]
    for number in page_window(current, n_pages, max_buttons):
        buttons.append(PageButton(str(number), number, False, number == current))
    buttons.extend(
        [
            PageButton("Next", min(n_pages, current + 1), current == n_pages, False),
            PageButton("Last", n_pages, current == n_pages, False),
        ]
    )
    return buttons


# Session state suffixes for the filter/sort editor drafts
_FILTER_DRAFT_SUFFIX = "_filter_draft"
_SORT_DRAFT_SUFFIX = "_sort_draft"
_DRAFT_SEQ_SUFFIX = "_draft_seq"


def filter_column_options(columns: Sequence[ColumnDescriptor]) -> List[ColumnDescriptor]:
    """Columns offered in the filter editor: filterable and visible."""
    return [col for col in columns if col.filterable and not col.hide]


def sort_column_options(columns: Sequence[ColumnDescriptor]) -> List[ColumnDescriptor]:
    """Columns offered in the sort editor: sortable and visible."""
    return [col for col in columns if col.sortable and not col.hide]


def relation_options(data_type: DataType) -> List[Relation]:
    """
    Relations offered for a column, default first.

    Numeric columns only support equality; text columns default to
    'contains'.
    """
    if data_type == DataType.NUMBER:
        return [Relation.EQUALS]
    return [Relation.CONTAINS, Relation.EQUALS, Relation.STARTS_WITH]


def _new_draft_row(key: str, **values: Any) -> Dict[str, Any]:
    """Editor row with a session-unique id so widget keys survive removals."""
    seq_key = f"{key}{_DRAFT_SEQ_SUFFIX}"
    st.session_state[seq_key] = st.session_state.get(seq_key, 0) + 1
    return {"uid": st.session_state[seq_key], **values}


def _filter_draft(controller: TableController, key: str) -> List[Dict[str, Any]]:
    draft_key = f"{key}{_FILTER_DRAFT_SUFFIX}"
    if draft_key not in st.session_state:
        st.session_state[draft_key] = [
            _new_draft_row(key, **clause.to_dict()) for clause in controller.state.filters
        ]
    return st.session_state[draft_key]


def _sort_draft(controller: TableController, key: str) -> List[Dict[str, Any]]:
    draft_key = f"{key}{_SORT_DRAFT_SUFFIX}"
    if draft_key not in st.session_state:
        st.session_state[draft_key] = [
            _new_draft_row(key, **clause.to_dict()) for clause in controller.state.sorters
        ]
    return st.session_state[draft_key]


def _render_filter_editor(
    controller: TableController, key: str
) -> Optional[TableRequest]:
    """
    Filter editor: one row per clause with column, relation and value.

    Returns a FilterChange on Apply or Reset, None otherwise.
    """
    options = filter_column_options(controller.columns)
    if not options:
        return None
    by_id = {col.id: col for col in options}
    draft = _filter_draft(controller, key)

    with st.popover("Filter"):
        for row in list(draft):
            uid = row["uid"]
            cells = st.columns([3, 2, 3, 1])
            ids = list(by_id)
            row["column"] = cells[0].selectbox(
                "Column",
                ids,
                index=ids.index(row["column"]) if row.get("column") in by_id else 0,
                format_func=lambda column_id: by_id[column_id].caption,
                key=f"{key}_filter_{uid}_column",
            )
            relations = [
                r.value for r in relation_options(by_id[row["column"]].data_type)
            ]
            row["relation"] = cells[1].selectbox(
                "Relation",
                relations,
                index=relations.index(row["relation"])
                if row.get("relation") in relations
                else 0,
                key=f"{key}_filter_{uid}_relation",
            )
            row["value"] = cells[2].text_input(
                "Value", value=row.get("value", ""), key=f"{key}_filter_{uid}_value"
            )
            if cells[3].button("✕", key=f"{key}_filter_{uid}_remove"):
                draft.remove(row)
                st.rerun()

        actions = st.columns(3)
        if actions[0].button("Add filter", key=f"{key}_filter_add"):
            draft.append(_new_draft_row(key, column=options[0].id))
            st.rerun()
        if actions[1].button("Reset", key=f"{key}_filter_reset"):
            draft.clear()
            return FilterChange(())
        if actions[2].button("Apply", key=f"{key}_filter_apply", type="primary"):
            return FilterChange([dict(row) for row in draft])
    return None


def _render_sort_editor(controller: TableController, key: str) -> Optional[TableRequest]:
    """Sort editor: one row per clause with column and order, earlier rows first."""
    options = sort_column_options(controller.columns)
    if not options:
        return None
    by_id = {col.id: col for col in options}
    orders = [order.value for order in SortOrder]
    draft = _sort_draft(controller, key)

    with st.popover("Sort"):
        for row in list(draft):
            uid = row["uid"]
            cells = st.columns([4, 2, 1])
            ids = list(by_id)
            row["column"] = cells[0].selectbox(
                "Column",
                ids,
                index=ids.index(row["column"]) if row.get("column") in by_id else 0,
                format_func=lambda column_id: by_id[column_id].caption,
                key=f"{key}_sort_{uid}_column",
            )
            row["order"] = cells[1].selectbox(
                "Order",
                orders,
                index=orders.index(row["order"]) if row.get("order") in orders else 0,
                key=f"{key}_sort_{uid}_order",
            )
            if cells[2].button("✕", key=f"{key}_sort_{uid}_remove"):
                draft.remove(row)
                st.rerun()

        actions = st.columns(3)
        if actions[0].button("Add sort", key=f"{key}_sort_add"):
            draft.append(_new_draft_row(key, column=options[0].id))
            st.rerun()
        if actions[1].button("Reset", key=f"{key}_sort_reset"):
            draft.clear()
            return SortChange(())
        if actions[2].button("Apply", key=f"{key}_sort_apply", type="primary"):
            return SortChange([dict(row) for row in draft])
    return None


def _drop_stale_draft(key: str, request: TableRequest) -> None:
    """Forget an editor draft so it is rebuilt from the applied state."""
    if isinstance(request, FilterChange):
        st.session_state.pop(f"{key}{_FILTER_DRAFT_SUFFIX}", None)
    elif isinstance(request, SortChange):
        st.session_state.pop(f"{key}{_SORT_DRAFT_SUFFIX}", None)


def _dispatch(controller: TableController, request: TableRequest) -> Optional[TableResult]:
    """Run a request to completion from Streamlit's synchronous script run."""
    return asyncio.run(controller.dispatch(request))


def _initial_request(controller: TableController) -> TableRequest:
    if controller.can_reload:
        return Reload()
    return Refresh()


def _render_badge(
    container: Any, label: str, count: int, clear_request: TableRequest, key: str
) -> Optional[TableRequest]:
    """Show an active filter/sort count with a clear button."""
    if count == 0:
        container.caption(f"{label}: none")
        return None
    if container.button(f"{label}: {count} ✕", key=key, help=f"Clear {label.lower()}"):
        return clear_request
    return None


def _render_pagination(result: TableResult, key: str) -> Optional[TableRequest]:
    buttons = pagination_buttons(result.page, result.total_pages)
    if not buttons:
        return None
    requested: Optional[TableRequest] = None
    for slot, button in zip(st.columns(len(buttons)), buttons):
        clicked = slot.button(
            button.label,
            key=f"{key}_page_{button.label}",
            disabled=button.disabled or button.active,
            type="primary" if button.active else "secondary",
        )
        if clicked:
            requested = PageChange(button.page)
    return requested


def render_table(
    controller: TableController,
    key: str,
    title: Optional[str] = None,
    empty_message: Optional[str] = None,
) -> Optional[TableResult]:
    """
    Render a table controller in Streamlit.

    This function:
    1. Runs the initial evaluation the first time the table is shown
    2. Draws the toolbar (refresh, filter/sort editors, and filter/sort
       badges with clear buttons)
    3. Draws the current page, or the empty/error message
    4. Draws the pagination buttons
    5. Dispatches any clicked request and triggers st.rerun()

    Args:
        controller: The table's controller (see get_controller)
        key: Unique key for the table's widgets
        title: Optional title shown above the table
        empty_message: Message for an empty result, defaults to settings

    Returns:
        The TableResult that was rendered
    """
    settings = get_settings()
    empty_message = empty_message or settings.empty_message

    result = controller.last_result
    if result is None:
        result = _dispatch(controller, _initial_request(controller))
    if result is None:
        result = controller.last_result

    if title:
        st.subheader(title)

    state = controller.state
    toolbar = st.columns([1, 1, 1, 1, 1, 3])
    requests: List[Optional[TableRequest]] = []
    if toolbar[0].button("Refresh", key=f"{key}_refresh"):
        requests.append(Reload() if controller.can_reload else Refresh())
    with toolbar[1]:
        requests.append(_render_filter_editor(controller, key))
    with toolbar[2]:
        requests.append(_render_sort_editor(controller, key))
    requests.append(
        _render_badge(
            toolbar[3], "Filters", len(state.filters), FilterChange(()), f"{key}_clear_filters"
        )
    )
    requests.append(
        _render_badge(
            toolbar[4], "Sorters", len(state.sorters), SortChange(()), f"{key}_clear_sorters"
        )
    )

    if result is None:
        st.info(empty_message)
    elif result.error:
        st.error(result.error)
    elif not result.rows:
        st.info(empty_message)
    else:
        if result.is_loading:
            st.caption("Loading...")
        st.dataframe(
            build_display_frame(result.rows, controller.columns, controller.id_field)
        )
        st.caption(
            f"Page {result.page} of {max(result.total_pages, 1)} "
            f"({result.total_count} rows)"
        )
        requests.append(_render_pagination(result, key))

    pending = [request for request in requests if request is not None]
    if pending:
        # One click per script run; the first request wins
        logger.debug("Dispatching %s for table %s", pending[0], key)
        _dispatch(controller, pending[0])
        _drop_stale_draft(key, pending[0])
        st.rerun()

    return result
