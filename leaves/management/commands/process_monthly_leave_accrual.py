from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from leaves.services import LeaveService
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Process monthly VL and SL accrual for all active employees"

    def add_arguments(self, parser):
        parser.add_argument(
            "--month",
            type=str,
            help="Month to process (YYYY-MM, default: previous month)",
        )

    def handle(self, *args, **options):
        month = self.get_target_month(options.get("month"))

        self.stdout.write(f"Processing monthly leave accrual for {month.strftime('%B %Y')}...")

        if not LeaveService.active_employees().exists():
            self.stdout.write(self.style.WARNING("No active employees found."))
            return

        result = LeaveService.process_monthly_accrual_for_all(month)

        self.stdout.write(self.style.SUCCESS(f"Processed: {result['processed']} employees"))
        if result["errors"]:
            self.stdout.write(self.style.WARNING(f"Errors: {result['errors']} employees"))

    def get_target_month(self, month_input):
        if month_input:
            try:
                return datetime.strptime(month_input, "%Y-%m").date()
            except ValueError:
                raise CommandError("Invalid month format. Use YYYY-MM (e.g., 2026-01)")

        first_of_month = timezone.localdate().replace(day=1)
        return (first_of_month - timedelta(days=1)).replace(day=1)
