import logging

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from backoffice.models import Rental

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Marks open rentals whose return date has passed as overdue'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='Treat this day (YYYY-MM-DD) as today. Defaults to the local date.',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the rentals that would be flipped without saving anything.',
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        if options.get('date'):
            today = parse_date(options['date'])
            if today is None:
                raise CommandError(f"Invalid --date {options['date']!r}, expected YYYY-MM-DD")

        # Partial returns are due on the agreed next return date when one was given
        past_due = (
            Q(status=Rental.Status.ACTIVE, expected_return_date__lt=today)
            | Q(status=Rental.Status.PARTIAL_RETURN, next_return_date__lt=today)
            | Q(status=Rental.Status.PARTIAL_RETURN, next_return_date__isnull=True,
                expected_return_date__lt=today)
        )
        qs = Rental.objects.filter(past_due).select_related('customer').order_by('expected_return_date', 'id')

        rentals = list(qs)
        if not rentals:
            self.stdout.write("No overdue rentals.")
            return

        for r in rentals:
            self.stdout.write(f" - {r.rental_number} ({r.customer.name}) due {r.next_return_date or r.expected_return_date}")

        if options['dry_run']:
            self.stdout.write(f"Dry run: {len(rentals)} rental(s) would be marked overdue.")
            return

        updated = Rental.objects.filter(past_due, pk__in=[r.pk for r in rentals]).update(
            status=Rental.Status.OVERDUE,
            updated_at=timezone.now(),
        )
        logger.info("Marked %s rental(s) overdue as of %s", updated, today)
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} rental(s) as overdue."))
