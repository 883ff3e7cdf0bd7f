import logging
from functools import wraps

from django.contrib import messages
from django.contrib.auth import logout
from django.contrib.auth.decorators import login_required
from django.db import DatabaseError
from django.shortcuts import render, get_object_or_404, redirect
from django.views.decorators.http import require_POST

from . import services
from .backends import is_panel_staff
from .exceptions import LendingError
from .forms import AlertForm, BookForm, RestockForm
from .models import Book, LendingRequest
from .stats import catalog_stats, outstanding_penalty_total, user_borrow_stats

logger = logging.getLogger(__name__)


def librarian_required(view):
    @login_required
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not is_panel_staff(request.user):
            logout(request)
            messages.error(request, 'Access denied. Unauthorized email address.')
            return redirect('login')
        return view(request, *args, **kwargs)
    return wrapper


def _run(request, action, *args, **kwargs):
    """Call a service; report failures as messages and return (ok, result)."""
    try:
        return True, action(*args, **kwargs)
    except LendingError as e:
        messages.error(request, str(e))
    except DatabaseError:
        logger.exception("Database error in %s", action.__name__)
        messages.error(request, 'The change could not be saved. Please try again.')
    return False, None


# --- Dashboard: catalog overview & restock ---
@librarian_required
def dashboard(request):
    query = request.GET.get('q', '')
    books = services.search_books(query)
    context = {
        'books': books,
        'query': query,
        'stats': catalog_stats(Book.objects.all()),
        'pending_borrow_count': services.pending_borrow_requests().count(),
        'pending_return_count': services.pending_return_requests().count(),
        'restock_form': RestockForm(),
    }
    return render(request, 'lending/dashboard.html', context)


@librarian_required
@require_POST
def restock_book(request, book_id):
    form = RestockForm(request.POST)
    if not form.is_valid():
        messages.error(request, 'Restock amount must be a positive number.')
        return redirect('dashboard')
    ok, book = _run(request, services.restock_book, book_id, form.cleaned_data['amount'])
    if ok:
        messages.success(request, f'"{book.Title}" restocked, {book.Count} copies on shelf.')
    return redirect('dashboard')


# --- Manage books ---
@librarian_required
def manage_books(request):
    query = request.GET.get('q', '')
    context = {
        'books': services.search_books(query),
        'query': query,
        'stats': catalog_stats(Book.objects.all()),
    }
    return render(request, 'lending/manage_books.html', context)


@librarian_required
def add_book(request):
    form = BookForm(request.POST or None, request.FILES or None)
    if request.method == 'POST' and form.is_valid():
        ok, book = _run(request, services.create_book, form.cleaned_data, form.cleaned_data.get('cover'))
        if ok:
            messages.success(request, f'"{book.Title}" has been added.')
            return redirect('manage_books')
    return render(request, 'lending/book_form.html', {'form': form, 'book': None})


@librarian_required
def edit_book(request, book_id):
    book = get_object_or_404(Book, id=book_id)
    form = BookForm(request.POST or None, request.FILES or None, instance=book)
    if request.method == 'POST' and form.is_valid():
        ok, book = _run(request, services.update_book, book_id, form.cleaned_data, form.cleaned_data.get('cover'))
        if ok:
            messages.success(request, f'"{book.Title}" has been updated.')
            return redirect('manage_books')
    return render(request, 'lending/book_form.html', {'form': form, 'book': book})


@librarian_required
@require_POST
def delete_book(request, book_id):
    ok, book = _run(request, services.delete_book, book_id)
    if ok:
        messages.success(request, f'"{book.Title}" has been deleted.')
    return redirect('manage_books')


# --- Borrow requests ---
@librarian_required
def pending_borrow_requests(request):
    records = services.pending_borrow_requests()
    return render(request, 'lending/pending_borrow_requests.html', {'records': records})


@librarian_required
@require_POST
def approve_borrow(request, request_id):
    record = get_object_or_404(LendingRequest, id=request_id)
    ok, approved = _run(request, services.approve_borrow_request, record.pk, record.BookID_id, request.user)
    if ok and approved:
        messages.success(request, f'Request for "{record.book_title}" approved.')
    elif ok:
        messages.warning(request, f'"{record.book_title}" is unavailable. The request was deleted.')
    return redirect('pending_borrow_requests')


@librarian_required
@require_POST
def reject_borrow(request, request_id):
    record = get_object_or_404(LendingRequest, id=request_id)
    ok, _ = _run(request, services.reject_borrow_request, record.pk, record.BookID_id, request.user)
    if ok:
        messages.warning(request, f'Request of {record.user_name} for "{record.book_title}" rejected.')
    return redirect('pending_borrow_requests')


# --- Return requests ---
@librarian_required
def pending_return_requests(request):
    records = services.pending_return_requests()
    return render(request, 'lending/pending_return_requests.html', {'records': records})


def _process_return(request, request_id, approve):
    record = get_object_or_404(LendingRequest, id=request_id)
    ok, _ = _run(request, services.process_return_request, record.pk, record.BookID_id, approve, request.user)
    if ok:
        verb = 'approved' if approve else 'rejected'
        messages.success(request, f'Return request for "{record.book_title}" has been {verb}.')
    return redirect('pending_return_requests')


@librarian_required
@require_POST
def approve_return(request, request_id):
    return _process_return(request, request_id, approve=True)


@librarian_required
@require_POST
def reject_return(request, request_id):
    return _process_return(request, request_id, approve=False)


# --- Penalties ---
@librarian_required
def penalty_management(request):
    query = request.GET.get('q', '')
    needle = query.lower()
    records = list(services.penalty_requests())
    if needle:
        records = [r for r in records
                   if needle in r.book_title.lower() or needle in r.user_name.lower() or needle in r.user_email.lower()]
    context = {
        'records': records,
        'query': query,
        'total_pending_amount': outstanding_penalty_total(records),
    }
    return render(request, 'lending/penalties.html', context)


@librarian_required
@require_POST
def mark_penalty_paid(request, request_id):
    ok, record = _run(request, services.mark_penalty_paid, request_id, request.user)
    if ok:
        messages.success(request, f'Penalty of {record.PenaltyAmount} for "{record.book_title}" marked as paid.')
    return redirect('penalty_management')


# --- History ---
@librarian_required
def processed_history(request):
    query = request.GET.get('q', '')
    return render(request, 'lending/processed_history.html', {
        'records': services.processed_history(query),
        'query': query,
    })


# --- Users ---
@librarian_required
def users_list(request):
    query = request.GET.get('q', '')
    return render(request, 'lending/users_list.html', {
        'members': services.members_with_stats(query),
        'query': query,
    })


@librarian_required
def user_detail(request, user_id):
    ok, member = _run(request, services.get_member, user_id)
    if not ok:
        return redirect('users_list')
    records = list(services.user_lending_history(member.pk))
    context = {
        'member': member,
        'records': records,
        'stats': user_borrow_stats(member.pk, records),
        'alert_form': AlertForm(),
    }
    return render(request, 'lending/user_detail.html', context)


@librarian_required
@require_POST
def send_alert(request, user_id):
    form = AlertForm(request.POST)
    if not form.is_valid():
        messages.error(request, 'Please write a message before sending.')
        return redirect('user_detail', user_id=user_id)
    ok, _ = _run(request, services.send_alert, user_id, form.cleaned_data['Message'],
                 form.cleaned_data['Type'], staff=request.user)
    if ok:
        messages.success(request, 'Alert sent.')
    return redirect('user_detail', user_id=user_id)
