import tempfile
from datetime import timedelta
from decimal import Decimal

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.utils import timezone

from lending import services
from lending.exceptions import (
    BookNotFound,
    InvalidTransitionError,
    PenaltyUnpaidError,
    RequestNotFound,
)
from lending.models import Alert, Book, LendingRequest, ProcessedRequest, User


class LendingServiceBaseTest(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.sarah = User.objects.create_user(
            username='sarah_lib', email='sarah@lib.com', password='password123',
            Role='Librarian', FullName='Sarah Connor',
        )
        cls.alex = User.objects.create_user(
            username='alex_mem', email='alex@mem.com', password='password123',
            FullName='Alex Murphy', Nob=1,
        )

    def make_book(self, count, code='BK-100', title='Python for Beginners'):
        return Book.objects.create(BookCode=code, Title=title, Author='John Doe', Genre='Technology', Count=count)

    def make_request(self, book, **fields):
        return LendingRequest.objects.create(UserID=self.alex, BookID=book, **fields)

    def make_return_request(self, book, **fields):
        fields.setdefault('PenaltyAmount', Decimal('0'))
        return self.make_request(
            book,
            Status=LendingRequest.APPROVED,
            ApprovedAt=timezone.now(),
            IsReturnRequest=True,
            ReturnRequestStatus=LendingRequest.PENDING,
            ReturnRequestedAt=timezone.now(),
            **fields,
        )


class BorrowApprovalTest(LendingServiceBaseTest):

    def test_approve_with_last_copy_empties_the_shelf(self):
        """Book{count=1} + pending request -> approved, Book{count=0, unavailable}."""
        book = self.make_book(count=1)
        record = self.make_request(book)

        approved = services.approve_borrow_request(record.pk, book.pk, staff=self.sarah)

        self.assertTrue(approved)
        book.refresh_from_db()
        record.refresh_from_db()
        self.assertEqual(book.Count, 0)
        self.assertFalse(book.IsAvailable)
        self.assertEqual(record.Status, LendingRequest.APPROVED)
        self.assertIsNotNone(record.ApprovedAt)
        self.assertIsNotNone(record.DueDate)
        self.assertEqual(record.PenaltyAmount, 0)
        self.assertFalse(record.IsPaid)
        self.assertFalse(record.IsReturnRequest)
        self.assertEqual(record.ProcessedBy, self.sarah)

    def test_approve_decrements_by_exactly_one(self):
        book = self.make_book(count=5)
        record = self.make_request(book)
        services.approve_borrow_request(record.pk, book.pk)
        book.refresh_from_db()
        self.assertEqual(book.Count, 4)
        self.assertTrue(book.IsAvailable)

    def test_approve_writes_history_and_alert(self):
        book = self.make_book(count=2)
        record = self.make_request(book)
        services.approve_borrow_request(record.pk, book.pk, staff=self.sarah)

        entry = ProcessedRequest.objects.get(LendingRequestID=record)
        self.assertEqual(entry.Type, ProcessedRequest.BORROW)
        self.assertEqual(entry.Status, LendingRequest.APPROVED)
        self.assertEqual(entry.ProcessedBy, self.sarah)
        self.assertEqual(entry.RequestedAt, record.TimeStamp)

        alert = Alert.objects.get(UserID=self.alex)
        self.assertEqual(alert.Type, Alert.APPROVAL)
        self.assertIn('Python for Beginners', alert.Message)
        self.assertFalse(alert.IsRead)

    @override_settings(LENDING_LOAN_DAYS=7)
    def test_due_date_uses_configured_loan_period(self):
        book = self.make_book(count=1)
        record = self.make_request(book)
        services.approve_borrow_request(record.pk, book.pk)
        record.refresh_from_db()
        self.assertEqual(record.DueDate - record.ApprovedAt, timedelta(days=7))

    def test_approve_without_copies_deletes_request(self):
        """Book{count=0} + pending request -> request deleted, book unchanged."""
        book = self.make_book(count=0)
        record = self.make_request(book)

        approved = services.approve_borrow_request(record.pk, book.pk, staff=self.sarah)

        self.assertFalse(approved)
        self.assertFalse(LendingRequest.objects.filter(pk=record.pk).exists())
        book.refresh_from_db()
        self.assertEqual(book.Count, 0)
        self.assertFalse(book.IsAvailable)
        self.assertFalse(ProcessedRequest.objects.exists())
        self.assertFalse(Alert.objects.exists())

    def test_approve_twice_is_refused(self):
        book = self.make_book(count=3)
        record = self.make_request(book)
        services.approve_borrow_request(record.pk, book.pk)
        with self.assertRaises(InvalidTransitionError):
            services.approve_borrow_request(record.pk, book.pk)
        book.refresh_from_db()
        self.assertEqual(book.Count, 2)

    def test_approve_rejected_request_is_refused(self):
        book = self.make_book(count=3)
        record = self.make_request(book, Status=LendingRequest.REJECTED)
        with self.assertRaises(InvalidTransitionError):
            services.approve_borrow_request(record.pk, book.pk)

    def test_approve_missing_documents(self):
        book = self.make_book(count=3)
        record = self.make_request(book)
        with self.assertRaises(RequestNotFound):
            services.approve_borrow_request(record.pk + 100, book.pk)
        with self.assertRaises(BookNotFound):
            services.approve_borrow_request(record.pk, book.pk + 100)
        record.refresh_from_db()
        self.assertEqual(record.Status, LendingRequest.PENDING)

    def test_approve_with_mismatched_book_is_refused(self):
        book = self.make_book(count=3)
        other = self.make_book(count=3, code='BK-200', title='Clean Code')
        record = self.make_request(book)
        with self.assertRaises(InvalidTransitionError):
            services.approve_borrow_request(record.pk, other.pk)
        other.refresh_from_db()
        self.assertEqual(other.Count, 3)


class BorrowRejectionTest(LendingServiceBaseTest):

    def test_reject_marks_request_rejected(self):
        book = self.make_book(count=2)
        record = self.make_request(book)

        services.reject_borrow_request(record.pk, book.pk, staff=self.sarah)

        record.refresh_from_db()
        book.refresh_from_db()
        self.assertEqual(record.Status, LendingRequest.REJECTED)
        self.assertEqual(record.ProcessedBy, self.sarah)
        self.assertEqual(book.Count, 2)
        self.assertEqual(Alert.objects.get(UserID=self.alex).Type, Alert.REJECTION)
        self.assertEqual(ProcessedRequest.objects.get(LendingRequestID=record).Status, LendingRequest.REJECTED)

    def test_reject_leaves_books_held_counter_alone(self):
        book = self.make_book(count=2)
        record = self.make_request(book)
        services.reject_borrow_request(record.pk, book.pk)
        self.alex.refresh_from_db()
        self.assertEqual(self.alex.Nob, 1)

    def test_reject_with_mismatched_book_is_refused(self):
        book = self.make_book(count=2)
        other = self.make_book(count=2, code='BK-200', title='Clean Code')
        record = self.make_request(book)
        with self.assertRaises(InvalidTransitionError):
            services.reject_borrow_request(record.pk, other.pk)
        record.refresh_from_db()
        self.assertEqual(record.Status, LendingRequest.PENDING)
        self.assertFalse(Alert.objects.exists())
        self.assertFalse(ProcessedRequest.objects.exists())

    def test_rejected_is_terminal(self):
        book = self.make_book(count=2)
        record = self.make_request(book)
        services.reject_borrow_request(record.pk, book.pk)
        with self.assertRaises(InvalidTransitionError):
            services.reject_borrow_request(record.pk, book.pk)
        self.assertEqual(ProcessedRequest.objects.count(), 1)

    def test_reject_with_deleted_book_uses_placeholder(self):
        book = self.make_book(count=2)
        record = self.make_request(book)
        book.delete()
        services.reject_borrow_request(record.pk, None)
        self.assertIn('Unknown Book', Alert.objects.get(UserID=self.alex).Message)


class ReturnWorkflowTest(LendingServiceBaseTest):

    def test_approve_return_restocks_and_closes_loan(self):
        book = self.make_book(count=0)
        record = self.make_return_request(book)

        services.process_return_request(record.pk, book.pk, approve=True, staff=self.sarah)

        book.refresh_from_db()
        record.refresh_from_db()
        self.alex.refresh_from_db()
        self.assertEqual(book.Count, 1)
        self.assertTrue(book.IsAvailable)
        self.assertTrue(record.IsReturned)
        self.assertFalse(record.IsReturnRequest)
        self.assertEqual(record.ReturnRequestStatus, LendingRequest.APPROVED)
        self.assertTrue(record.IsPaid)
        self.assertIsNotNone(record.ProcessedAt)
        self.assertEqual(self.alex.Nob, 0)

        entry = ProcessedRequest.objects.get(LendingRequestID=record)
        self.assertEqual(entry.Type, ProcessedRequest.RETURN)
        self.assertEqual(entry.Status, LendingRequest.APPROVED)

    def test_books_held_counter_never_goes_negative(self):
        self.alex.Nob = 0
        self.alex.save()
        book = self.make_book(count=0)
        record = self.make_return_request(book)
        services.approve_return_request(record.pk, book.pk)
        self.alex.refresh_from_db()
        self.assertEqual(self.alex.Nob, 0)

    def test_return_of_a_book_removed_from_catalog_closes_the_loan(self):
        """Admin deletion nulls BookID; the loan can still be closed."""
        book = self.make_book(count=0)
        record = self.make_return_request(book)
        book.delete()

        services.approve_return_request(record.pk, None, staff=self.sarah)

        record.refresh_from_db()
        self.alex.refresh_from_db()
        self.assertTrue(record.IsReturned)
        self.assertEqual(self.alex.Nob, 0)
        self.assertIn('Unknown Book', Alert.objects.get(UserID=self.alex).Message)
        self.assertIsNone(ProcessedRequest.objects.get(LendingRequestID=record).BookID)

    def test_return_without_book_id_is_refused_while_book_exists(self):
        book = self.make_book(count=0)
        record = self.make_return_request(book)
        with self.assertRaises(InvalidTransitionError):
            services.approve_return_request(record.pk, None)
        book.refresh_from_db()
        self.assertEqual(book.Count, 0)

    def test_reject_return_leaves_count_unchanged(self):
        book = self.make_book(count=3)
        record = self.make_return_request(book)

        services.process_return_request(record.pk, book.pk, approve=False, staff=self.sarah)

        book.refresh_from_db()
        record.refresh_from_db()
        self.assertEqual(book.Count, 3)
        self.assertFalse(record.IsReturned)
        self.assertFalse(record.IsReturnRequest)
        self.assertEqual(record.ReturnRequestStatus, LendingRequest.REJECTED)
        self.assertEqual(record.Status, LendingRequest.APPROVED)
        self.assertEqual(Alert.objects.get(UserID=self.alex).Type, Alert.REJECTION)

    def test_rejected_return_can_be_requested_again(self):
        book = self.make_book(count=3)
        record = self.make_return_request(book)
        services.reject_return_request(record.pk, book.pk)

        services.request_return(record.pk)
        record.refresh_from_db()
        self.assertTrue(record.IsReturnRequest)
        self.assertEqual(record.ReturnRequestStatus, LendingRequest.PENDING)

        services.approve_return_request(record.pk, book.pk)
        record.refresh_from_db()
        self.assertTrue(record.IsReturned)

    def test_unpaid_penalty_blocks_return(self):
        """penaltyAmount=50, isPaid=false -> refused; after payment -> succeeds."""
        book = self.make_book(count=2)
        record = self.make_return_request(book, PenaltyAmount=Decimal('50'))

        with self.assertRaises(PenaltyUnpaidError):
            services.approve_return_request(record.pk, book.pk, staff=self.sarah)
        book.refresh_from_db()
        record.refresh_from_db()
        self.assertEqual(book.Count, 2)
        self.assertFalse(record.IsReturned)
        self.assertFalse(ProcessedRequest.objects.exists())

        services.mark_penalty_paid(record.pk, staff=self.sarah)
        services.approve_return_request(record.pk, book.pk, staff=self.sarah)
        book.refresh_from_db()
        record.refresh_from_db()
        self.assertEqual(book.Count, 3)
        self.assertTrue(record.IsReturned)

    def test_unpaid_penalty_does_not_block_rejection(self):
        book = self.make_book(count=2)
        record = self.make_return_request(book, PenaltyAmount=Decimal('50'))
        services.reject_return_request(record.pk, book.pk)
        record.refresh_from_db()
        self.assertEqual(record.ReturnRequestStatus, LendingRequest.REJECTED)

    def test_return_without_request_is_refused(self):
        book = self.make_book(count=2)
        active = self.make_request(book, Status=LendingRequest.APPROVED)
        pending = self.make_request(book)
        for record in (active, pending):
            with self.assertRaises(InvalidTransitionError):
                services.approve_return_request(record.pk, book.pk)
            with self.assertRaises(InvalidTransitionError):
                services.reject_return_request(record.pk, book.pk)
        book.refresh_from_db()
        self.assertEqual(book.Count, 2)

    def test_returned_loan_cannot_be_returned_twice(self):
        book = self.make_book(count=0)
        record = self.make_return_request(book)
        services.approve_return_request(record.pk, book.pk)
        with self.assertRaises(InvalidTransitionError):
            services.approve_return_request(record.pk, book.pk)
        with self.assertRaises(InvalidTransitionError):
            services.request_return(record.pk)
        book.refresh_from_db()
        self.assertEqual(book.Count, 1)


class PenaltyTest(LendingServiceBaseTest):

    def test_mark_paid_changes_only_payment_fields(self):
        book = self.make_book(count=2)
        record = self.make_request(book, Status=LendingRequest.APPROVED, PenaltyAmount=Decimal('30'))

        services.mark_penalty_paid(record.pk, staff=self.sarah)

        record.refresh_from_db()
        book.refresh_from_db()
        self.assertTrue(record.IsPaid)
        self.assertEqual(record.PaidBy, self.sarah)
        self.assertIsNotNone(record.PaidAt)
        self.assertEqual(record.Status, LendingRequest.APPROVED)
        self.assertEqual(book.Count, 2)

    def test_penalty_requests_lists_unpaid_highest_first(self):
        book = self.make_book(count=2)
        small = self.make_request(book, Status=LendingRequest.APPROVED, PenaltyAmount=Decimal('10'))
        large = self.make_request(book, Status=LendingRequest.APPROVED, PenaltyAmount=Decimal('80'))
        self.make_request(book, Status=LendingRequest.APPROVED, PenaltyAmount=Decimal('20'), IsPaid=True)
        self.make_request(book, Status=LendingRequest.APPROVED)
        self.assertEqual(list(services.penalty_requests()), [large, small])

    @override_settings(LENDING_FINE_PER_DAY=5)
    def test_assess_overdue_penalties(self):
        book = self.make_book(count=2)
        now = timezone.now()
        overdue = self.make_request(book, Status=LendingRequest.APPROVED, DueDate=now - timedelta(days=3, hours=1))
        on_time = self.make_request(book, Status=LendingRequest.APPROVED, DueDate=now + timedelta(days=3))
        returned = self.make_request(book, Status=LendingRequest.APPROVED, IsReturned=True,
                                     DueDate=now - timedelta(days=3))

        self.assertEqual(services.assess_overdue_penalties(now=now), 1)

        overdue.refresh_from_db()
        on_time.refresh_from_db()
        returned.refresh_from_db()
        self.assertEqual(overdue.PenaltyAmount, Decimal('15'))
        self.assertEqual(on_time.PenaltyAmount, 0)
        self.assertEqual(returned.PenaltyAmount, 0)
        self.assertEqual(Alert.objects.get(UserID=self.alex).Type, Alert.OVERDUE)

        # Same day again: nothing changes, no duplicate alert
        self.assertEqual(services.assess_overdue_penalties(now=now), 0)
        self.assertEqual(Alert.objects.count(), 1)


class BorrowerTransitionTest(LendingServiceBaseTest):

    def test_submit_creates_pending_request(self):
        book = self.make_book(count=1)
        record = services.submit_borrow_request(self.alex.pk, book.pk)
        self.assertEqual(record.Status, LendingRequest.PENDING)
        book.refresh_from_db()
        self.assertEqual(book.Count, 1)

    def test_submit_refuses_duplicate_open_request(self):
        book = self.make_book(count=1)
        services.submit_borrow_request(self.alex.pk, book.pk)
        with self.assertRaises(InvalidTransitionError):
            services.submit_borrow_request(self.alex.pk, book.pk)

    def test_request_return_only_for_active_loans(self):
        book = self.make_book(count=1)
        record = self.make_request(book)
        with self.assertRaises(InvalidTransitionError):
            services.request_return(record.pk)


class BooksHeldCounterTest(LendingServiceBaseTest):
    """Nob goes up when a loan starts and down when it ends."""

    def setUp(self):
        self.jamie = User.objects.create_user(username='jamie_mem', email='jamie@mem.com', password='password123')

    def test_full_loan_cycle_from_zero(self):
        book = self.make_book(count=2)

        record = services.submit_borrow_request(self.jamie.pk, book.pk)
        self.jamie.refresh_from_db()
        self.assertEqual(self.jamie.Nob, 0)

        services.approve_borrow_request(record.pk, book.pk, staff=self.sarah)
        self.jamie.refresh_from_db()
        self.assertEqual(self.jamie.Nob, 1)

        services.request_return(record.pk)
        services.approve_return_request(record.pk, book.pk, staff=self.sarah)
        self.jamie.refresh_from_db()
        book.refresh_from_db()
        self.assertEqual(self.jamie.Nob, 0)
        self.assertEqual(book.Count, 2)

    def test_rejected_and_unavailable_requests_hold_nothing(self):
        book = self.make_book(count=0)
        other = self.make_book(count=1, code='BK-200', title='Clean Code')
        unavailable = services.submit_borrow_request(self.jamie.pk, book.pk)
        rejected = services.submit_borrow_request(self.jamie.pk, other.pk)

        self.assertFalse(services.approve_borrow_request(unavailable.pk, book.pk))
        services.reject_borrow_request(rejected.pk, other.pk)

        self.jamie.refresh_from_db()
        self.assertEqual(self.jamie.Nob, 0)


class CatalogServiceTest(LendingServiceBaseTest):

    def test_restock_adds_copies_and_restores_availability(self):
        book = self.make_book(count=0)
        services.restock_book(book.pk, 3)
        book.refresh_from_db()
        self.assertEqual(book.Count, 3)
        self.assertTrue(book.IsAvailable)

    def test_restock_refuses_non_positive_amount(self):
        book = self.make_book(count=1)
        with self.assertRaises(ValueError):
            services.restock_book(book.pk, 0)

    def test_update_book_recomputes_availability(self):
        book = self.make_book(count=2)
        services.update_book(book.pk, {'Title': 'Python Again', 'Count': 0})
        book.refresh_from_db()
        self.assertEqual(book.Title, 'Python Again')
        self.assertFalse(book.IsAvailable)

    def test_delete_book(self):
        book = self.make_book(count=2)
        services.delete_book(book.pk)
        self.assertFalse(Book.objects.filter(pk=book.pk).exists())
        with self.assertRaises(BookNotFound):
            services.delete_book(book.pk)
        with self.assertRaises(BookNotFound):
            services.get_book(book.pk)

    def test_delete_book_with_open_loans_is_refused(self):
        book = self.make_book(count=2)
        pending = self.make_request(book)
        with self.assertRaises(InvalidTransitionError):
            services.delete_book(book.pk)

        pending.delete()
        loan = self.make_request(book, Status=LendingRequest.APPROVED)
        with self.assertRaises(InvalidTransitionError):
            services.delete_book(book.pk)
        self.assertEqual(services.get_book(book.pk), book)

        LendingRequest.objects.filter(pk=loan.pk).update(IsReturned=True)
        services.delete_book(book.pk)
        loan.refresh_from_db()
        self.assertIsNone(loan.BookID)

    def test_search_books_matches_title_author_and_code(self):
        self.make_book(count=1)
        self.make_book(count=1, code='BK-200', title='Clean Code')
        self.assertEqual([b.Title for b in services.search_books('clean')], ['Clean Code'])
        self.assertEqual(services.search_books('john').count(), 2)
        self.assertEqual(services.search_books('BK-200').count(), 1)

    def test_create_book_stores_cover(self):
        with tempfile.TemporaryDirectory() as media_root, override_settings(MEDIA_ROOT=media_root):
            cover = SimpleUploadedFile('cover.png', b'png-bytes', content_type='image/png')
            book = services.create_book(
                {'BookCode': 'BK-300', 'Title': 'Covered', 'Author': 'A', 'Genre': 'G', 'Count': 1},
                cover=cover,
            )
            book.refresh_from_db()
            self.assertIn('book_covers/BK-300_cover', book.ImageUrl)


class QueryServiceTest(LendingServiceBaseTest):

    def test_pending_queues(self):
        book = self.make_book(count=2)
        pending = self.make_request(book)
        returning = self.make_return_request(book)
        self.make_request(book, Status=LendingRequest.APPROVED)
        self.assertEqual(list(services.pending_borrow_requests()), [pending])
        self.assertEqual(list(services.pending_return_requests()), [returning])

    def test_processed_history_search(self):
        book = self.make_book(count=2)
        first = self.make_request(book)
        second = self.make_request(book)
        services.approve_borrow_request(first.pk, book.pk)
        services.reject_borrow_request(second.pk, book.pk)
        self.assertEqual(services.processed_history().count(), 2)
        self.assertEqual(services.processed_history('rejected').count(), 1)
        self.assertEqual(services.processed_history('alex@mem').count(), 2)

    def test_members_with_stats(self):
        book = self.make_book(count=2)
        self.make_request(book, Status=LendingRequest.APPROVED)
        self.make_request(book)
        results = services.members_with_stats()
        self.assertEqual([member for member, _ in results], [self.alex])
        stats = results[0][1]
        self.assertEqual(stats.total_borrows, 2)
        self.assertEqual(stats.active_books, 1)

    def test_send_alert(self):
        alert = services.send_alert(self.alex.pk, 'Please return your book', Alert.REMINDER, staff=self.sarah)
        self.assertEqual(alert.UserID, self.alex)
        self.assertEqual(alert.SentBy, self.sarah)
        self.assertEqual(alert.Type, Alert.REMINDER)
