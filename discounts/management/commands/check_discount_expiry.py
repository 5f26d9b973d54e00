from django.conf import settings
from django.core.management.base import BaseCommand

from discounts.expiry import (
    EXPIRY_WARNING_DAYS,
    deactivate_expired_discounts,
    notify_soon_expiring_discounts,
)


class Command(BaseCommand):
    help = 'Deactivate expired discounts and record warnings for discounts about to expire'

    def add_arguments(self, parser):
        parser.add_argument(
            '--warning-days',
            type=int,
            default=EXPIRY_WARNING_DAYS,
            help='Warn about discounts ending within this many days',
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Run even when DISCOUNT_EXPIRY_CHECK_ENABLED is off',
        )

    def handle(self, *args, **options):
        """Run the expiry sweep once; schedule it with cron."""
        if not options['force'] and not getattr(settings, 'DISCOUNT_EXPIRY_CHECK_ENABLED', True):
            self.stdout.write(self.style.WARNING('Discount expiry check is disabled'))
            return

        expired = deactivate_expired_discounts()
        for discount in expired:
            self.stdout.write(f'Deactivated expired discount: {discount.name}')

        expiring = notify_soon_expiring_discounts(warning_days=options['warning_days'])
        for discount in expiring:
            self.stdout.write(f'Discount ending soon: {discount.name} ({discount.end_date:%Y-%m-%d})')

        self.stdout.write(
            self.style.SUCCESS(
                f'Expiry check complete: {len(expired)} deactivated, {len(expiring)} ending soon'
            )
        )
