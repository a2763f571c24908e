"""Inbound requests from the UI collaborator.

A closed set of request types. TableController.dispatch() routes each one
to the matching state operation.
"""

from dataclasses import dataclass
from typing import Sequence, Union

from .types import FilterLike, Record, SortLike


@dataclass(frozen=True)
class PageChange:
    page: int


@dataclass(frozen=True)
class FilterChange:
    filters: Sequence[FilterLike] = ()


@dataclass(frozen=True)
class SortChange:
    sorters: Sequence[SortLike] = ()


@dataclass(frozen=True)
class Refresh:
    """Re-evaluate the current state without changing it."""


@dataclass(frozen=True)
class LoadAll:
    """Replace the local dataset (local mode only)."""

    records: Sequence[Record] = ()


@dataclass(frozen=True)
class Reload:
    """Re-fetch the full dataset from the service (local mode only)."""


TableRequest = Union[PageChange, FilterChange, SortChange, Refresh, LoadAll, Reload]
