from django.core.management.base import BaseCommand
from rides.services.offer_timeout import process_expired_offers


class Command(BaseCommand):
    help = "Expire ride offers whose response window has passed and target the next driver."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=200,
            help="Maximum number of overdue offers to process (default: 200).",
        )

    def handle(self, *args, **options):
        expired_count, reassigned_count = process_expired_offers(limit=options["limit"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {expired_count} offer(s); targeted the next driver for {reassigned_count} ride(s)."
            )
        )
