from django.core.management.base import BaseCommand
from django.db import transaction

from lending import services
from lending.models import Book, LendingRequest, User

BOOKS = [
    # (book id, title, genre, author, copies)
    ('BK-1001', 'Python for Beginners', 'Technology', 'John Doe', 3),
    ('BK-1002', 'Clean Code', 'Technology', 'Robert C. Martin', 2),
    ('BK-1003', 'Introduction to Physics', 'Science', 'Halliday', 2),
    ('BK-1004', 'The Great Gatsby', 'Fiction', 'F. Scott Fitzgerald', 1),
]

MEMBERS = [
    ('alex_mem', 'alex@mem.com', 'Alex Murphy'),
    ('jamie_mem', 'jamie@mem.com', 'Jamie Lee'),
]


class Command(BaseCommand):
    help = 'Replace the catalog with demo books, members and requests'

    def add_arguments(self, parser):
        parser.add_argument('--admin-email', default='sarah@lib.com')
        parser.add_argument('--admin-password', default='password123')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Cleaning old data...')
        LendingRequest.objects.all().delete()
        Book.objects.all().delete()
        User.objects.filter(username__in=[m[0] for m in MEMBERS] + ['sarah_lib']).delete()

        self.stdout.write('Creating books...')
        books = [
            Book.objects.create(BookCode=code, Title=title, Genre=genre, Author=author, Count=copies)
            for code, title, genre, author, copies in BOOKS
        ]

        self.stdout.write('Creating users...')
        librarian = User.objects.create_user(
            username='sarah_lib',
            email=options['admin_email'],
            password=options['admin_password'],
            Role='Librarian',
            FullName='Sarah Connor (Librarian)',
        )
        members = [
            User.objects.create_user(username=username, email=email, password='password123', FullName=name)
            for username, email, name in MEMBERS
        ]

        self.stdout.write('Creating requests...')
        services.submit_borrow_request(members[0].pk, books[0].pk)
        loan = services.submit_borrow_request(members[1].pk, books[1].pk)
        services.approve_borrow_request(loan.pk, books[1].pk, staff=librarian)
        services.request_return(loan.pk)

        self.stdout.write(self.style.SUCCESS(
            f'Seeded {Book.objects.count()} books, {len(members)} members, '
            f'{LendingRequest.objects.count()} requests.'
        ))
