"""Management command to retry pending reward issuances and free product orders (run from cron)."""

from django.core.management.base import BaseCommand

from rewardman.services import FulfillmentDispatcher, NotificationDispatcher, RewardDispatcher


class Command(BaseCommand):
    help = "Retry due pending issuance records and free product orders, optionally unsent notifications"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum records to process",
        )
        parser.add_argument(
            "--notifications",
            action="store_true",
            help="Also resend notices for issued rewards never acknowledged",
        )

    def handle(self, *args, **options):
        summary = RewardDispatcher.sweep(limit=options["limit"])
        self.stdout.write(
            self.style.SUCCESS(
                f"Attempted {summary['attempted']} issuances: "
                f"{summary['issued']} issued, {summary['pending']} pending, {summary['failed']} failed."
            )
        )

        orders = FulfillmentDispatcher.sweep(limit=options["limit"])
        self.stdout.write(
            self.style.SUCCESS(
                f"Attempted {orders['attempted']} free product orders: "
                f"{orders['fulfilled']} placed, {orders['pending']} pending, {orders['failed']} failed."
            )
        )

        if options["notifications"]:
            sent = NotificationDispatcher.sweep(limit=options["limit"])
            self.stdout.write(self.style.SUCCESS(f"Sent {sent} notifications."))

        failed = RewardDispatcher.failed()
        if failed:
            self.stdout.write(
                self.style.WARNING(f"{len(failed)} issuance records need manual intervention.")
            )
        failed_orders = FulfillmentDispatcher.failed()
        if failed_orders:
            self.stdout.write(
                self.style.WARNING(f"{len(failed_orders)} free product orders need manual intervention.")
            )
