"""Page tracking for the rule list."""

from __future__ import annotations

from typing import Optional

from realmctl.core.exceptions import ValidationError
from realmctl.services.rules import PaginatedRuleView, RuleRepository


class PaginationController:
    """Owns the current page, page size and the last fetched view.

    Moving past either end is a no-op rather than an error; the move methods
    return whether a fetch actually happened.
    """

    def __init__(
        self,
        repository: RuleRepository,
        page: int = 1,
        page_size: int = 10,
    ) -> None:
        if page_size < 1:
            raise ValidationError(f"Invalid page size: {page_size}")
        self.repository = repository
        self.page = max(1, page)
        self.page_size = page_size
        self.view: Optional[PaginatedRuleView] = None

    @property
    def total(self) -> int:
        return self.view.total if self.view else 0

    @property
    def total_pages(self) -> int:
        if self.view is None:
            return 1
        return PaginatedRuleView(total=self.view.total, page_size=self.page_size).total_pages

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    async def refresh(self) -> PaginatedRuleView:
        """Re-fetch the current page and replace the view.

        Raises:
            FetchError: If the fetch fails (the old view is kept)
            FormatError: If the payload is malformed (the old view is kept)
        """
        self.view = await self.repository.fetch_page(self.page, self.page_size)
        return self.view

    async def next_page(self) -> bool:
        if not self.has_next:
            return False
        self.page += 1
        await self.refresh()
        return True

    async def prev_page(self) -> bool:
        if not self.has_prev:
            return False
        self.page -= 1
        await self.refresh()
        return True

    async def go_to(self, page: int) -> PaginatedRuleView:
        """Jump to ``page``, clamped to [1, total_pages].

        Before the first fetch the upper bound is unknown, so an
        out-of-range page costs a second fetch of the last page.
        """
        page = max(1, page)
        if self.view is not None:
            page = min(page, self.total_pages)
        self.page = page

        view = await self.refresh()
        if self.page > view.total_pages:
            self.page = view.total_pages
            view = await self.refresh()
        return view

    async def set_page_size(self, page_size: int) -> PaginatedRuleView:
        """Change the page size; always goes back to page 1.

        Raises:
            ValidationError: If page_size is not positive
        """
        if page_size < 1:
            raise ValidationError(
                f"Invalid page size: {page_size}",
                hint="Page size must be at least 1",
            )
        self.page_size = page_size
        self.page = 1
        return await self.refresh()
