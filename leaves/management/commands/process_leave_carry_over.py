from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model
from django.utils import timezone
from leaves.services import LeaveService

User = get_user_model()


class Command(BaseCommand):
    help = "Process leave balance carry-over from the previous year (capped per leave type)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--employee",
            type=str,
            help="Employee code to process",
        )

        parser.add_argument(
            "--year",
            type=int,
            help="Year to carry over to (default: current year)",
        )

        parser.add_argument(
            "--all",
            action="store_true",
            help="Process all active employees",
        )

    def handle(self, *args, **options):
        year = options.get("year") or timezone.localdate().year
        employee_code = options.get("employee")

        if not employee_code and not options.get("all"):
            raise CommandError("Please specify --employee=CODE or --all to process all employees")

        if options.get("all"):
            self.process_all(year)
        else:
            self.process_employee(employee_code, year)

    def process_all(self, year):
        self.stdout.write(f"Processing carry-over for year {year}...")

        if not LeaveService.active_employees().exists():
            self.stdout.write(self.style.WARNING("No active employees found."))
            return

        result = LeaveService.process_carry_over_for_all(year)

        self.stdout.write(
            self.style.SUCCESS(f"Processed: {result['processed']} employees with carry-over")
        )
        if result["errors"]:
            self.stdout.write(self.style.WARNING(f"Errors: {result['errors']} employees"))

    def process_employee(self, employee_code, year):
        try:
            employee = User.objects.get(employee_code=employee_code)
        except User.DoesNotExist:
            raise CommandError(f"Employee with code {employee_code} not found")

        self.stdout.write(f"Processing carry-over for employee {employee_code} for year {year}...")
        results = LeaveService.process_carry_over(employee, year)

        if not results:
            self.stdout.write(self.style.WARNING("No carry-over processed. Check if:"))
            self.stdout.write(self.style.WARNING("  - Previous year has unused balance"))
            self.stdout.write(self.style.WARNING("  - Leave type allows carry-over"))
            self.stdout.write(self.style.WARNING("  - Balance hasn't already been carried over"))
            return

        for result in results:
            line = (
                f"{result['leave_type']}: {result['status']} "
                f"(previous balance: {result.get('previous_balance', '-')}, "
                f"carried over: {result.get('carried_over', result.get('error', result.get('reason', '-')))})"
            )
            style = {
                "success": self.style.SUCCESS,
                "skipped": self.style.WARNING,
            }.get(result["status"], self.style.ERROR)
            self.stdout.write(style(line))
