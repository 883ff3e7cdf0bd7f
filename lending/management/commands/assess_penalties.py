from django.core.management.base import BaseCommand

from lending import services


class Command(BaseCommand):
    help = 'Charge the daily fine on overdue, unpaid loans'

    def handle(self, *args, **kwargs):
        updated = services.assess_overdue_penalties()
        self.stdout.write(self.style.SUCCESS(f'Updated penalties on {updated} loan(s).'))
