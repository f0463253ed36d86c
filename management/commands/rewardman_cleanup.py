"""Management command to bound idempotency retention (run from cron)."""

from django.core.management.base import BaseCommand, CommandError

from rewardman.conf import rewardman_settings
from rewardman.models import AppliedEvent


class Command(BaseCommand):
    help = (
        "Remove applied event ids past the retention horizon and trim accounts "
        "holding more than APPLIED_EVENT_LIMIT ids"
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Override EVENT_RETENTION_DAYS setting",
        )
        parser.add_argument(
            "--keep",
            type=int,
            default=None,
            help="Override APPLIED_EVENT_LIMIT for the per-account trim (0 disables it)",
        )

    def handle(self, *args, **options):
        days = options["days"]
        if days is None:
            days = rewardman_settings.EVENT_RETENTION_DAYS
        if days < 0:
            raise CommandError("--days must not be negative")
        keep = options["keep"]
        if keep is None:
            keep = rewardman_settings.APPLIED_EVENT_LIMIT

        expired, _ = AppliedEvent.cleanup_old_events(days=days)
        self.stdout.write(
            self.style.SUCCESS(f"Deleted {expired} applied events older than {days} days.")
        )

        if keep > 0:
            accounts, trimmed = AppliedEvent.trim_all(keep=keep)
            self.stdout.write(
                self.style.SUCCESS(
                    f"Trimmed {trimmed} applied events from {accounts} accounts "
                    f"over the {keep} per-account limit."
                )
            )

        # Redeliveries older than what is kept are applied again
        self.stdout.write(
            f"Duplicate detection now covers the last {days} days "
            f"(at most {keep or 'unbounded'} ids per account)."
        )
