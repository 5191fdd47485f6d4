from datetime import date

from django.core.management.base import BaseCommand, CommandError

from circulation import services


class Command(BaseCommand):
    help = "Mark past-due loans overdue and expire reservations whose hold has lapsed."

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help="Reconcile as of this day (YYYY-MM-DD) instead of today",
        )

    def handle(self, *args, **options):
        today = None
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date '{options['date']}', expected YYYY-MM-DD.")

        counts = services.reconcile(today)
        self.stdout.write(self.style.SUCCESS(
            f"Marked {counts['overdue_loans']} loan(s) overdue, "
            f"expired {counts['expired_reservations']} reservation(s)."
        ))
