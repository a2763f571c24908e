"""Preprocessing utilities for client-side filtering, sorting and paging."""

from .filtering import (
    filter_records,
    process_records,
    sort_records,
    stringify_value,
)

__all__ = [
    "process_records",
    "filter_records",
    "sort_records",
    "stringify_value",
]
