from django.core.management.base import BaseCommand
from django.db import connection

from lending import services
from lending.models import Book
from lending.stats import catalog_stats


class Command(BaseCommand):
    help = 'Show the database connection and the current lending workload'

    def handle(self, *args, **kwargs):
        db_engine = connection.settings_dict['ENGINE']
        db_name = connection.settings_dict['NAME']
        stats = catalog_stats(Book.objects.all())
        self.stdout.write(self.style.SUCCESS('--- Database Connection Info ---'))
        self.stdout.write(f'Current Engine: {db_engine}')
        self.stdout.write(f'Current DB Name: {db_name}')
        self.stdout.write(self.style.SUCCESS('--- Catalog ---'))
        self.stdout.write(f'Titles: {stats.total_types}  Copies: {stats.total_copies}')
        self.stdout.write(f'Available: {stats.available_types}  Out of stock: {stats.out_of_stock_types}')
        self.stdout.write(self.style.SUCCESS('--- Requests ---'))
        self.stdout.write(f'Pending borrow requests: {services.pending_borrow_requests().count()}')
        self.stdout.write(f'Pending return requests: {services.pending_return_requests().count()}')
        self.stdout.write(f'Unpaid penalties: {services.penalty_requests().count()}')
