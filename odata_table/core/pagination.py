"""Page arithmetic shared by the processor, controller and rendering bridge."""

import math
from typing import List


def total_pages(total_count: int, page_size: int) -> int:
    """
    Number of pages needed for total_count rows.

    Args:
        total_count: Size of the filtered set
        page_size: Rows per page (positive)

    Returns:
        ceil(total_count / page_size), 0 when there are no rows
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return math.ceil(max(total_count, 0) / page_size)


def clamp_page(page: int, total_count: int, page_size: int) -> int:
    """Clamp page into [1, last page]. Never below 1, even for empty sets."""
    last = max(1, total_pages(total_count, page_size))
    return max(1, min(page, last))


def page_window(current: int, n_pages: int, max_buttons: int = 5) -> List[int]:
    """
    Page numbers to show as pagination buttons.

    The window is centred on the current page and shifted so it stays
    inside [1, n_pages] while showing up to max_buttons pages.

    Example:
        page_window(1, 10) -> [1, 2, 3, 4, 5]
        page_window(6, 10) -> [4, 5, 6, 7, 8]
        page_window(10, 10) -> [6, 7, 8, 9, 10]
    """
    if n_pages < 1:
        return []
    start = max(1, current - max_buttons // 2)
    end = min(n_pages, start + max_buttons - 1)
    if end - start + 1 < max_buttons:
        start = max(1, end - max_buttons + 1)
    return list(range(start, end + 1))
