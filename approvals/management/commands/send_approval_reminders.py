from django.core.management.base import BaseCommand
from approvals.services import ApprovalReminderService
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Send reminders for approvals nearing their deadline and escalate overdue ones"

    def add_arguments(self, parser):
        parser.add_argument(
            "--escalate",
            action="store_true",
            help="Escalate overdue approvals to the next higher authority",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be sent without making changes",
        )

    def handle(self, *args, **options):
        escalate = options["escalate"]
        dry_run = options["dry_run"]

        if dry_run:
            self.stdout.write(self.style.WARNING("Running in dry-run mode. No changes will be made."))

        result = ApprovalReminderService.process(
            escalate=escalate, dry_run=dry_run, write=self.stdout.write
        )

        self.stdout.write(self.style.SUCCESS(f"Reminders sent: {result['reminders_sent']}"))
        if escalate:
            self.stdout.write(
                self.style.SUCCESS(f"Escalations processed: {result['escalations']}")
            )
