from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from events.catalog import EventNotFound, get_event
from payments.exceptions import GatewayError, RegistrationError
from payments.gateway import StripeGateway
from payments.store import OrmRegistrationStore
from payments.submission import record_paid_checkout


class Command(BaseCommand):
    help = 'Record card registrations for paid Stripe checkout sessions that never came back (e.g. closed browser, missed webhook)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=3,
            help='How far back to look for checkout sessions (default: 3)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be recorded without making actual changes',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        since = timezone.now() - timedelta(days=options['days'])

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be made'))
            self.stdout.write('')

        gateway = StripeGateway()
        store = OrmRegistrationStore()
        try:
            sessions = gateway.recent_checkout_sessions(since)
        except GatewayError as exc:
            self.stdout.write(self.style.ERROR(f'Could not list checkout sessions: {exc}'))
            return

        total = len(sessions)
        if total == 0:
            self.stdout.write(self.style.WARNING('No checkout sessions found'))
            return

        self.stdout.write(f'Processing {total} checkout session(s) since {since:%Y-%m-%d %H:%M}...\n')

        recorded_count = 0
        skipped_count = 0
        error_count = 0

        for idx, session in enumerate(sessions, 1):
            try:
                paid = gateway.paid_checkout(session)
            except GatewayError:
                # Unpaid, expired or not ours
                skipped_count += 1
                continue

            if store.find_by_checkout_session(paid.session_id) is not None:
                skipped_count += 1
                continue

            if dry_run:
                self.stdout.write(
                    f'[{idx}/{total}] {paid.session_id}\n'
                    f'  event={paid.event_id} name={paid.name} tickets={paid.tickets}'
                )
                recorded_count += 1
                continue

            try:
                event = get_event(paid.event_id)
                record = record_paid_checkout(paid, event, store=store)
            except (EventNotFound, RegistrationError) as e:
                error_count += 1
                self.stdout.write(
                    self.style.ERROR(f'[{idx}/{total}] ✗ Error recording {paid.session_id}: {e}')
                )
                continue

            self.stdout.write(f'[{idx}/{total}] ✓ {paid.session_id} → registration {record.id}')
            recorded_count += 1

        # Summary
        self.stdout.write('\n' + '=' * 70)
        self.stdout.write('SUMMARY')
        self.stdout.write('=' * 70)
        self.stdout.write(f'Total sessions: {total}')
        self.stdout.write(self.style.SUCCESS(f'Recorded: {recorded_count}'))
        self.stdout.write(f'Skipped (unpaid or already recorded): {skipped_count}')

        if error_count > 0:
            self.stdout.write(self.style.ERROR(f'Errors: {error_count}'))

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    '\nDRY RUN - No changes were made. '
                    'Run without --dry-run to record these sessions.'
                )
            )
