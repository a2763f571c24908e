"""Rendering utilities for Streamlit integration."""

from .bridge import (
    build_display_frame,
    clear_controllers,
    filter_column_options,
    get_controller,
    pagination_buttons,
    relation_options,
    render_table,
    sort_column_options,
)

__all__ = [
    "render_table",
    "get_controller",
    "clear_controllers",
    "build_display_frame",
    "pagination_buttons",
    "filter_column_options",
    "sort_column_options",
    "relation_options",
]
