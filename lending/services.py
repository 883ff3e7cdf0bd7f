"""Lending workflows and the queries behind the panel pages.

Each state transition runs in a single ``transaction.atomic()`` block.  The
rows it depends on are read with ``select_for_update()`` in a fixed order
(book, request, user) before anything is written, so two staff members
acting on the same request serialise instead of interleaving.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import (
    BookNotFound,
    InvalidTransitionError,
    MemberNotFound,
    PenaltyUnpaidError,
    RequestNotFound,
)
from .models import Alert, Book, LendingRequest, ProcessedRequest, User
from .stats import user_borrow_stats

logger = logging.getLogger(__name__)

BOOK_FIELDS = ('BookCode', 'Title', 'Author', 'Genre', 'ImageUrl', 'Count')


def _lock(model, pk, not_found):
    try:
        return model.objects.select_for_update().get(pk=pk)
    except model.DoesNotExist:
        raise not_found(f"{model.__name__} {pk} not found.") from None


def _lock_optional(model, pk):
    if pk is None:
        return None
    return model.objects.select_for_update().filter(pk=pk).first()


def _notify(user_id, book, message, alert_type, sent_by=None, now=None):
    return Alert.objects.create(
        UserID_id=user_id,
        BookID=book,
        Message=message,
        Type=alert_type,
        SentBy=sent_by,
        Timestamp=now or timezone.now(),
    )


def _record_history(lending, kind, status, staff, requested_at, now):
    return ProcessedRequest.objects.create(
        Type=kind,
        LendingRequestID=lending,
        UserID_id=lending.UserID_id,
        BookID_id=lending.BookID_id,
        RequestedAt=requested_at,
        ProcessedAt=now,
        ProcessedBy=staff,
        Status=status,
    )


def _title(book):
    return book.Title if book is not None else 'Unknown Book'


def _check_book_matches(lending, book_id):
    # None only matches a loan whose book has left the catalog
    expected = int(book_id) if book_id is not None else None
    if lending.BookID_id != expected:
        raise InvalidTransitionError(f"Request {lending.pk} does not refer to book {book_id}.")


# --- Borrow requests ---

def approve_borrow_request(request_id, book_id, staff=None):
    """Approve a pending borrow request.

    Returns ``True`` when the loan started and ``False`` when the book had
    no copy left, in which case the request has been deleted.
    """
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound)
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        if lending.Status != LendingRequest.PENDING:
            raise InvalidTransitionError(f"Request {request_id} is already {lending.Status}.")
        _check_book_matches(lending, book_id)

        if book.Count <= 0:
            lending.delete()
            logger.warning("Book %s unavailable, deleted borrow request %s", book.BookCode, request_id)
            return False
        member = _lock_optional(User, lending.UserID_id)

        now = timezone.now()
        book.Count -= 1
        book.save(update_fields=['Count'])
        if member is not None:
            member.Nob += 1
            member.save(update_fields=['Nob'])

        lending.Status = LendingRequest.APPROVED
        lending.ApprovedAt = now
        lending.DueDate = now + timedelta(days=settings.LENDING_LOAN_DAYS)
        lending.PenaltyAmount = Decimal('0')
        lending.IsPaid = False
        lending.IsReturnRequest = False
        lending.ProcessedAt = now
        lending.ProcessedBy = staff
        lending.save(update_fields=[
            'Status', 'ApprovedAt', 'DueDate', 'PenaltyAmount', 'IsPaid',
            'IsReturnRequest', 'ProcessedAt', 'ProcessedBy',
        ])

        _record_history(lending, ProcessedRequest.BORROW, LendingRequest.APPROVED, staff, lending.TimeStamp, now)
        _notify(lending.UserID_id, book, f'Your request for "{book.Title}" has been approved!',
                Alert.APPROVAL, staff, now)

    logger.info("Approved borrow request %s (book %s, %d left)", request_id, book.BookCode, book.Count)
    return True


def reject_borrow_request(request_id, book_id, staff=None):
    with transaction.atomic():
        book = _lock_optional(Book, book_id)
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        if lending.Status != LendingRequest.PENDING:
            raise InvalidTransitionError(f"Request {request_id} is already {lending.Status}.")
        _check_book_matches(lending, book_id)

        # Nob counts approved loans only, so a rejection leaves it alone
        now = timezone.now()
        lending.Status = LendingRequest.REJECTED
        lending.ProcessedAt = now
        lending.ProcessedBy = staff
        lending.save(update_fields=['Status', 'ProcessedAt', 'ProcessedBy'])

        _record_history(lending, ProcessedRequest.BORROW, LendingRequest.REJECTED, staff, lending.TimeStamp, now)
        _notify(lending.UserID_id, book, f'Your request for "{_title(book)}" was rejected.',
                Alert.REJECTION, staff, now)

    logger.info("Rejected borrow request %s", request_id)


# --- Return requests ---

def _check_pending_return(lending):
    if not lending.is_pending_return:
        raise InvalidTransitionError(f"Request {lending.pk} has no pending return.")


def approve_return_request(request_id, book_id, staff=None):
    """Close a loan and put the copy back on the shelf.

    A loan whose book was removed from the catalog (``book_id`` is None)
    is closed without touching inventory.
    """
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound) if book_id is not None else None
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        _check_pending_return(lending)
        _check_book_matches(lending, book_id)
        if not lending.can_approve:
            logger.warning("Return of request %s refused: penalty %s unpaid", request_id, lending.PenaltyAmount)
            raise PenaltyUnpaidError(
                f"Penalty of {lending.PenaltyAmount} must be paid before the return is approved.")
        member = _lock_optional(User, lending.UserID_id)

        now = timezone.now()
        if book is not None:
            book.Count += 1
            book.save(update_fields=['Count'])

        lending.IsReturned = True
        lending.IsReturnRequest = False
        lending.ReturnRequestStatus = LendingRequest.APPROVED
        lending.IsPaid = True
        lending.ReturnedAt = now
        lending.ProcessedAt = now
        lending.ProcessedBy = staff
        lending.save(update_fields=[
            'IsReturned', 'IsReturnRequest', 'ReturnRequestStatus', 'IsPaid',
            'ReturnedAt', 'ProcessedAt', 'ProcessedBy',
        ])

        if member is not None and member.Nob > 0:
            member.Nob -= 1
            member.save(update_fields=['Nob'])

        _record_history(lending, ProcessedRequest.RETURN, LendingRequest.APPROVED, staff,
                        lending.ReturnRequestedAt or lending.TimeStamp, now)
        _notify(lending.UserID_id, book, f'Your return request for "{_title(book)}" has been approved!',
                Alert.APPROVAL, staff, now)

    if book is None:
        logger.info("Approved return of request %s (book no longer in catalog)", request_id)
    else:
        logger.info("Approved return of request %s (book %s, %d on shelf)", request_id, book.BookCode, book.Count)


def reject_return_request(request_id, book_id, staff=None):
    with transaction.atomic():
        book = _lock_optional(Book, book_id)
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        _check_pending_return(lending)

        now = timezone.now()
        lending.IsReturnRequest = False
        lending.ReturnRequestStatus = LendingRequest.REJECTED
        lending.ProcessedAt = now
        lending.ProcessedBy = staff
        lending.save(update_fields=['IsReturnRequest', 'ReturnRequestStatus', 'ProcessedAt', 'ProcessedBy'])

        _record_history(lending, ProcessedRequest.RETURN, LendingRequest.REJECTED, staff,
                        lending.ReturnRequestedAt or lending.TimeStamp, now)
        _notify(lending.UserID_id, book, f'Your return request for "{_title(book)}" was rejected.',
                Alert.REJECTION, staff, now)

    logger.info("Rejected return of request %s", request_id)


def process_return_request(request_id, book_id, approve, staff=None):
    if approve:
        approve_return_request(request_id, book_id, staff)
    else:
        reject_return_request(request_id, book_id, staff)


# --- Penalties ---

def mark_penalty_paid(request_id, staff=None):
    with transaction.atomic():
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        lending.IsPaid = True
        lending.PaidAt = timezone.now()
        lending.PaidBy = staff
        lending.save(update_fields=['IsPaid', 'PaidAt', 'PaidBy'])
    logger.info("Penalty of %s on request %s marked paid", lending.PenaltyAmount, request_id)
    return lending


def assess_overdue_penalties(now=None):
    """Charge the daily fine on every overdue, unpaid loan.

    Returns the number of loans whose penalty changed.
    """
    now = now or timezone.now()
    rate = Decimal(settings.LENDING_FINE_PER_DAY)
    updated = 0
    with transaction.atomic():
        overdue = (LendingRequest.objects.select_for_update()
                   .filter(Status=LendingRequest.APPROVED, IsReturned=False, IsPaid=False, DueDate__lt=now))
        for lending in overdue:
            days_late = (now - lending.DueDate).days
            amount = rate * days_late
            if days_late <= 0 or amount == lending.PenaltyAmount:
                continue
            lending.PenaltyAmount = amount
            lending.save(update_fields=['PenaltyAmount'])
            _notify(lending.UserID_id, lending.BookID,
                    f'"{lending.book_title}" is {days_late} day(s) overdue. Penalty: {amount}',
                    Alert.OVERDUE, now=now)
            updated += 1
    logger.info("Assessed penalties on %d overdue loan(s)", updated)
    return updated


# --- Borrower-side transitions ---

def submit_borrow_request(user_id, book_id):
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound)
        if not User.objects.filter(pk=user_id).exists():
            raise MemberNotFound(f"User {user_id} not found.")
        already_requested = LendingRequest.objects.filter(
            UserID_id=user_id, BookID=book, IsReturned=False,
            Status__in=[LendingRequest.PENDING, LendingRequest.APPROVED],
        ).exists()
        if already_requested:
            raise InvalidTransitionError(f'A request for "{book.Title}" is already open.')
        return LendingRequest.objects.create(UserID_id=user_id, BookID=book)


def request_return(request_id):
    with transaction.atomic():
        lending = _lock(LendingRequest, request_id, RequestNotFound)
        if not lending.is_active_loan or lending.IsReturnRequest:
            raise InvalidTransitionError(f"Request {request_id} cannot be returned now.")
        lending.IsReturnRequest = True
        lending.ReturnRequestStatus = LendingRequest.PENDING
        lending.ReturnRequestedAt = timezone.now()
        lending.save(update_fields=['IsReturnRequest', 'ReturnRequestStatus', 'ReturnRequestedAt'])
    return lending


# --- Catalog ---

def search_books(query=''):
    books = Book.objects.all()
    if query:
        books = books.filter(Q(Title__icontains=query) | Q(Author__icontains=query) | Q(BookCode__icontains=query))
    return books


def get_book(book_id):
    try:
        return Book.objects.get(pk=book_id)
    except Book.DoesNotExist:
        raise BookNotFound(f"Book {book_id} not found.") from None


def store_book_cover(book, cover):
    path = default_storage.save(f'book_covers/{book.BookCode}_{cover.name}', cover)
    book.ImageUrl = default_storage.url(path)
    book.save(update_fields=['ImageUrl'])
    return book.ImageUrl


def create_book(data, cover=None):
    book = Book.objects.create(**{field: data[field] for field in BOOK_FIELDS if field in data})
    if cover:
        store_book_cover(book, cover)
    logger.info("Added book %s (%d copies)", book.BookCode, book.Count)
    return book


def update_book(book_id, data, cover=None):
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound)
        for field in BOOK_FIELDS:
            if field in data:
                setattr(book, field, data[field])
        book.save()
        if cover:
            store_book_cover(book, cover)
    logger.info("Updated book %s", book.BookCode)
    return book


def delete_book(book_id):
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound)
        open_loans = LendingRequest.objects.filter(
            Q(Status=LendingRequest.PENDING) | Q(Status=LendingRequest.APPROVED, IsReturned=False),
            BookID=book,
        )
        if open_loans.exists():
            raise InvalidTransitionError(
                f'"{book.Title}" still has open requests or loans and cannot be deleted.')
        book.delete()
    logger.info("Deleted book %s", book.BookCode)
    return book


def restock_book(book_id, amount):
    if amount <= 0:
        raise ValueError("Restock amount must be positive.")
    with transaction.atomic():
        book = _lock(Book, book_id, BookNotFound)
        book.Count += amount
        book.save(update_fields=['Count'])
    logger.info("Restocked %s by %d (now %d)", book.BookCode, amount, book.Count)
    return book


# --- Queries ---

def _joined():
    return LendingRequest.objects.select_related('UserID', 'BookID')


def pending_borrow_requests():
    return _joined().filter(Status=LendingRequest.PENDING).order_by('TimeStamp')


def pending_return_requests():
    return _joined().filter(Status=LendingRequest.APPROVED, IsReturned=False, IsReturnRequest=True)


def penalty_requests():
    return _joined().filter(PenaltyAmount__gt=0, IsPaid=False).order_by('-PenaltyAmount')


def processed_history(search=''):
    history = ProcessedRequest.objects.select_related('UserID', 'BookID', 'ProcessedBy')
    if search:
        history = history.filter(
            Q(BookID__Title__icontains=search)
            | Q(UserID__FullName__icontains=search)
            | Q(UserID__email__icontains=search)
            | Q(Status__icontains=search)
        )
    return history


def user_lending_history(user_id):
    return _joined().filter(UserID_id=user_id)


def get_member(user_id):
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise MemberNotFound(f"User {user_id} not found.") from None


def search_members(query=''):
    members = User.objects.filter(Role='Member')
    if query:
        members = members.filter(Q(FullName__icontains=query) | Q(email__icontains=query))
    return members.order_by('FullName', 'email')


def members_with_stats(query=''):
    members = list(search_members(query))
    requests = list(LendingRequest.objects.filter(UserID__in=members))
    return [(member, user_borrow_stats(member.pk, requests)) for member in members]


def send_alert(user_id, message, alert_type=Alert.CUSTOM, book_id=None, staff=None):
    member = get_member(user_id)
    book = Book.objects.filter(pk=book_id).first() if book_id else None
    alert = _notify(member.pk, book, message, alert_type, staff)
    logger.info("Sent %s alert to %s", alert_type, member.email)
    return alert
