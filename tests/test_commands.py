import pytest
from datetime import date
from decimal import Decimal
from io import StringIO
from django.core.management import call_command
from django.core.management.base import CommandError
from leaves.models import LeaveBalance
from leaves.tasks import process_carry_over_task, process_monthly_accrual_task
from tests.conftest import UserFactory, set_balance

pytestmark = pytest.mark.django_db


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.fixture
def employee(db):
    return UserFactory(employee_code="EMP-CMD", hire_date=date(2020, 1, 6))


class TestMonthlyAccrualCommand:
    def test_invalid_month(self, employee):
        with pytest.raises(CommandError, match="Invalid month format"):
            run("process_monthly_leave_accrual", "--month=2025-13")

    def test_processes_active_employees(self, employee, leave_types):
        output = run("process_monthly_leave_accrual", "--month=2025-03")

        assert "Processing monthly leave accrual for March 2025..." in output
        assert "Processed: 1 employees" in output
        balance = LeaveBalance.objects.get(employee=employee, leave_type=leave_types["VL"], year=2025)
        assert balance.accrued == Decimal("1.25")

    def test_no_active_employees(self, db):
        output = run("process_monthly_leave_accrual", "--month=2025-03")
        assert "No active employees found." in output


class TestCarryOverCommand:
    def test_requires_target(self, db):
        with pytest.raises(CommandError, match="--employee=CODE or --all"):
            run("process_leave_carry_over")

    def test_unknown_employee(self, db):
        with pytest.raises(CommandError, match="Employee with code NOPE not found"):
            run("process_leave_carry_over", "--employee=NOPE")

    def test_single_employee(self, employee, leave_types):
        LeaveBalance.get_or_create_balance(employee, leave_types["VL"], 2026)
        set_balance(employee, leave_types["VL"], Decimal("12"), year=2025)

        output = run("process_leave_carry_over", "--employee=EMP-CMD", "--year=2026")

        assert "VL: success" in output
        current = LeaveBalance.objects.get(employee=employee, leave_type=leave_types["VL"], year=2026)
        assert current.carried_over == Decimal("12")

    def test_nothing_to_carry(self, employee, leave_types):
        output = run("process_leave_carry_over", "--employee=EMP-CMD", "--year=2026")
        assert "No carry-over processed." in output

    def test_all_employees(self, employee, leave_types):
        LeaveBalance.get_or_create_balance(employee, leave_types["SL"], 2026)
        set_balance(employee, leave_types["SL"], Decimal("4"), year=2025)

        output = run("process_leave_carry_over", "--all", "--year=2026")

        assert "Processed: 1 employees with carry-over" in output


class TestLeaveTasks:
    def test_monthly_accrual_task(self, employee, leave_types):
        result = process_monthly_accrual_task.apply(kwargs={"month": "2025-03"}).get()
        assert result == {"success": True, "month": "2025-03", "processed": 1, "errors": 0}

    def test_carry_over_task(self, employee, leave_types):
        result = process_carry_over_task.apply(kwargs={"year": 2026}).get()
        assert result == {"success": True, "year": 2026, "processed": 0, "errors": 0}
