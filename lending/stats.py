"""Read-only statistics derived from in-memory snapshots.

Nothing here touches the database: callers pass the rows they already
fetched (model instances or any object exposing the same attributes) and
get plain values back.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

APPROVED = 'approved'


def can_approve_return(is_paid: bool, penalty_amount) -> bool:
    """A return may be approved once the fine is paid or when there is none."""
    return is_paid is True or (penalty_amount or 0) <= 0


@dataclass(frozen=True)
class UserBorrowStats:
    total_borrows: int = 0
    approved_borrows: int = 0
    active_books: int = 0
    overdue_books: int = 0


@dataclass(frozen=True)
class CatalogStats:
    total_types: int = 0
    total_copies: int = 0
    available_types: int = 0
    out_of_stock_types: int = 0


def user_borrow_stats(user_id, requests: Iterable) -> UserBorrowStats:
    """Summarise the lending requests belonging to ``user_id``.

    ``active_books`` counts approved loans without a pending return request
    and ``overdue_books`` counts approved, unreturned loans carrying a
    penalty.
    """
    mine = [r for r in requests if r.UserID_id == user_id]
    approved = [r for r in mine if r.Status == APPROVED]
    return UserBorrowStats(
        total_borrows=len(mine),
        approved_borrows=len(approved),
        active_books=sum(1 for r in approved if not r.IsReturnRequest),
        overdue_books=sum(1 for r in approved if not r.IsReturned and (r.PenaltyAmount or 0) > 0),
    )


def catalog_stats(books: Iterable) -> CatalogStats:
    books = list(books)
    return CatalogStats(
        total_types=len(books),
        total_copies=sum(b.Count or 0 for b in books),
        available_types=sum(1 for b in books if b.IsAvailable),
        out_of_stock_types=sum(1 for b in books if not b.IsAvailable or (b.Count or 0) == 0),
    )


def outstanding_penalty_total(requests: Iterable) -> Decimal:
    """Sum of the penalties that are still unpaid."""
    return sum(
        (Decimal(r.PenaltyAmount or 0) for r in requests if not r.IsPaid and (r.PenaltyAmount or 0) > 0),
        Decimal('0'),
    )
