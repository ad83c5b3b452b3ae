"""Page arithmetic for the listing views."""

from __future__ import annotations

from dataclasses import dataclass


class PageOutOfRange(ValueError):
    def __init__(self, page_no: int, pages: int) -> None:
        super().__init__(f"page {page_no} more than total pages {pages}")
        self.page_no = page_no
        self.pages = pages


@dataclass(frozen=True)
class Pagination:
    """Current page position. ``next`` and ``previous`` are 0 when there is no such page."""

    page_length: int
    page_no: int
    pages: int
    next: int
    previous: int

    @property
    def offset(self) -> int:
        return (self.page_no - 1) * self.page_length

    @classmethod
    def build(cls, page_length: int, total_records: int, page_no: int | str | None = None) -> Pagination:
        if page_length < 1:
            raise ValueError("Page length cannot be below 1.")

        try:
            current = int(page_no) if page_no is not None else 1
        except ValueError:
            current = 1
        if current < 1:
            current = 1

        pages = max(1, -(-total_records // page_length))
        if current > pages:
            raise PageOutOfRange(current, pages)

        return cls(
            page_length=page_length,
            page_no=current,
            pages=pages,
            next=current + 1 if current < pages else 0,
            previous=current - 1 if current > 1 else 0,
        )
