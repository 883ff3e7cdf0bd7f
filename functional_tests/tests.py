from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone

from lending import services
from lending.models import Alert, Book, LendingRequest, ProcessedRequest

User = get_user_model()


@override_settings(LENDING_LOAN_DAYS=14, LENDING_FINE_PER_DAY=10)
class TypicalDayPanelTest(TestCase):
    def setUp(self):
        # 1. Catalog
        self.book = Book.objects.create(
            BookCode='BK-1001',
            Title='Python for Beginners',
            Author='John Doe',
            Genre='Technology',
            Count=1,
        )

        # 2. Accounts: Sarah runs the panel, Alex borrows
        self.sarah = User.objects.create_user(
            username='sarah_lib',
            email='sarah@lib.com',
            password='password123',
            Role='Librarian',
            FullName='Sarah Connor',
        )
        self.alex = User.objects.create_user(
            username='alex_mem',
            email='alex@mem.com',
            password='password123',
            FullName='Alex Murphy',
        )

        self.sarah_client = Client()

    def test_a_typical_day_at_the_lending_desk(self):
        """
        Sarah signs in, lends the last copy, charges a late fine and takes
        the book back once Alex has paid.
        """
        # SCENE 1: Sarah signs in with her email
        response = self.sarah_client.post(reverse('login'), {
            'username': 'sarah@lib.com',
            'password': 'password123',
        })
        self.assertRedirects(response, reverse('dashboard'))

        # SCENE 2: Alex asks for the book, it shows up in the queue
        borrow_request = services.submit_borrow_request(self.alex.pk, self.book.pk)
        response = self.sarah_client.get(reverse('pending_borrow_requests'))
        self.assertContains(response, 'Alex Murphy')
        self.assertContains(response, 'Python for Beginners')

        # SCENE 3: Sarah approves, the shelf is now empty
        self.sarah_client.post(reverse('approve_borrow', args=[borrow_request.id]))
        borrow_request.refresh_from_db()
        self.book.refresh_from_db()
        self.assertEqual(borrow_request.Status, LendingRequest.APPROVED)
        self.assertEqual(self.book.Count, 0)
        self.assertFalse(self.book.IsAvailable)
        self.assertTrue(Alert.objects.filter(UserID=self.alex, Type=Alert.APPROVAL).exists())
        self.alex.refresh_from_db()
        self.assertEqual(self.alex.Nob, 1)

        # A second request for the same title now gets deleted on approval
        jamie = User.objects.create_user(username='jamie_mem', email='jamie@mem.com', password='password123')
        late_request = services.submit_borrow_request(jamie.pk, self.book.pk)
        self.sarah_client.post(reverse('approve_borrow', args=[late_request.id]))
        self.assertFalse(LendingRequest.objects.filter(pk=late_request.pk).exists())

        # SCENE 4: Alex keeps the book five days too long
        LendingRequest.objects.filter(pk=borrow_request.pk).update(
            DueDate=timezone.now() - timedelta(days=5, hours=1),
        )
        self.assertEqual(services.assess_overdue_penalties(), 1)
        services.request_return(borrow_request.pk)

        response = self.sarah_client.get(reverse('pending_return_requests'))
        self.assertContains(response, 'Penalty unpaid')

        # SCENE 5: the return is refused until the fine is paid
        self.sarah_client.post(reverse('approve_return', args=[borrow_request.id]))
        borrow_request.refresh_from_db()
        self.assertFalse(borrow_request.IsReturned)
        self.assertEqual(borrow_request.PenaltyAmount, Decimal('50'))

        response = self.sarah_client.get(reverse('penalty_management'))
        self.assertEqual(response.context['total_pending_amount'], Decimal('50'))
        self.sarah_client.post(reverse('mark_penalty_paid', args=[borrow_request.id]))

        # SCENE 6: Sarah takes the book back
        self.sarah_client.post(reverse('approve_return', args=[borrow_request.id]))
        borrow_request.refresh_from_db()
        self.book.refresh_from_db()
        self.alex.refresh_from_db()
        self.assertTrue(borrow_request.IsReturned)
        self.assertEqual(self.book.Count, 1)
        self.assertTrue(self.book.IsAvailable)
        self.assertEqual(self.alex.Nob, 0)

        # SCENE 7: both decisions on Alex's loan are in the history
        response = self.sarah_client.get(reverse('processed_history'), {'q': 'Alex'})
        kinds = sorted(entry.Type for entry in response.context['records'])
        self.assertEqual(kinds, [ProcessedRequest.BORROW, ProcessedRequest.RETURN])
