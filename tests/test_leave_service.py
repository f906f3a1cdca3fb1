import pytest
from datetime import date, timedelta
from decimal import Decimal
from django.core.exceptions import ValidationError
from django.utils import timezone
from leaves.models import Holiday, LeaveAccrual, LeaveBalance, LeaveCreditsHistory, LeaveRequest
from leaves.services import LeaveService
from tests.conftest import LeaveTypeFactory, UserFactory, next_weekday, set_balance

pytestmark = pytest.mark.django_db

THIS_YEAR = timezone.localdate().year


@pytest.fixture
def employee(db):
    return UserFactory(employee_code="EMP-LEAVE", gender="F", hire_date=date(2020, 1, 6))


class TestWorkingDays:
    def test_weekdays_only(self):
        # Monday 2026-03-02 to Sunday 2026-03-08
        assert LeaveService.calculate_working_days("2026-03-02", "2026-03-08") == Decimal(5)

    def test_active_holidays_excluded(self):
        Holiday.objects.create(name="Founding Day", date=date(2026, 3, 4))
        Holiday.objects.create(name="Old Holiday", date=date(2026, 3, 5), is_active=False)

        assert LeaveService.calculate_working_days(date(2026, 3, 2), date(2026, 3, 6)) == Decimal(4)

    def test_single_day(self):
        assert LeaveService.calculate_working_days("2026-03-03", "2026-03-03") == Decimal(1)


class TestBalanceMovements:
    def test_reserve_moves_days_to_pending(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 10)

        assert LeaveService.reserve_balance(employee, leave_types["VL"], 3) is True

        balance = LeaveBalance.get_current_year_balance(employee, leave_types["VL"])
        assert balance.pending == Decimal("3.00")
        assert balance.balance == Decimal("7.00")

    def test_reserve_refuses_overdraft(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 2)

        assert LeaveService.reserve_balance(employee, leave_types["VL"], 3) is False

        balance = LeaveBalance.get_current_year_balance(employee, leave_types["VL"])
        assert balance.pending == Decimal("0.00")
        assert balance.balance == Decimal("2.00")

    def test_release_never_goes_negative(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 10)
        LeaveService.reserve_balance(employee, leave_types["VL"], 2)

        LeaveService.release_balance(employee, leave_types["VL"], 5)

        balance = LeaveBalance.get_current_year_balance(employee, leave_types["VL"])
        assert balance.pending == Decimal("0.00")
        assert balance.balance == Decimal("10.00")

    def test_deduct_moves_pending_to_used(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 10)
        LeaveService.reserve_balance(employee, leave_types["VL"], 3)

        balance = LeaveService.deduct_balance(employee, leave_types["VL"], 3)

        assert balance.pending == Decimal("0.00")
        assert balance.used == Decimal("3.00")
        assert balance.balance == Decimal("7.00")

    def test_balance_identity_holds(self, employee, leave_types):
        set_balance(employee, leave_types["SL"], 15)
        LeaveService.reserve_balance(employee, leave_types["SL"], 4)
        LeaveService.deduct_balance(employee, leave_types["SL"], 2)
        LeaveService.release_balance(employee, leave_types["SL"], 1)

        balance = LeaveBalance.get_current_year_balance(employee, leave_types["SL"])
        assert balance.balance == balance.entitled - balance.used - balance.pending

    def test_add_accrual_records_entry(self, employee, leave_types):
        balance = LeaveService.add_accrual(employee, leave_types["VL"], "1.25", notes="Bonus")

        assert balance.accrued == Decimal("1.25")
        assert balance.entitled == Decimal("1.25")
        assert LeaveAccrual.objects.get(employee=employee).accrual_type == "manual"

    def test_get_employee_balance_lists_active_types(self, employee, leave_types):
        codes = [entry["leave_type"].code for entry in LeaveService.get_employee_balance(employee)]
        assert codes == ["VL", "SL", "FL", "SPL"]


class TestMonthlyAccrual:
    def test_full_month(self, employee, leave_types):
        assert LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1)) is True

        for code in ("VL", "SL"):
            balance = LeaveBalance.objects.get(employee=employee, leave_type=leave_types[code], year=THIS_YEAR)
            assert balance.accrued == Decimal("1.25")
            assert balance.balance == Decimal("1.25")

        accrual = LeaveAccrual.objects.filter(employee=employee, accrual_type="monthly").first()
        assert accrual.notes == f"Monthly accrual for January {THIS_YEAR} (prorated)"

    def test_hire_month_before_cutoff_is_prorated(self, employee, leave_types):
        employee.hire_date = date(THIS_YEAR, 1, 10)
        employee.save()

        LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1))

        balance = LeaveBalance.objects.get(employee=employee, leave_type=leave_types["VL"], year=THIS_YEAR)
        # 22 of 31 days employed
        assert balance.accrued == Decimal("0.89")

    def test_hire_on_or_after_cutoff_accrues_nothing(self, employee, leave_types):
        employee.hire_date = date(THIS_YEAR, 1, 15)
        employee.save()

        LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1))

        assert not LeaveAccrual.objects.filter(employee=employee, accrual_type="monthly").exists()

    def test_hired_after_month_is_skipped(self, employee, leave_types):
        employee.hire_date = date(THIS_YEAR, 2, 1)
        employee.save()

        assert LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1)) is False

    def test_inactive_employee_is_skipped(self, employee, leave_types):
        employee.status = "TERMINATED"
        employee.save()

        assert LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1)) is False

    def test_balance_capped(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], Decimal("29.50"), THIS_YEAR)

        LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1))

        balance = LeaveBalance.objects.get(employee=employee, leave_type=leave_types["VL"], year=THIS_YEAR)
        assert balance.balance == Decimal("30.00")

    def test_credits_history_recorded(self, employee, leave_types):
        LeaveService.process_monthly_accrual(employee, date(THIS_YEAR, 1, 1))

        history = LeaveCreditsHistory.objects.filter(employee=employee)
        assert history.count() == 2
        assert set(history.values_list("period", flat=True)) == {f"January {THIS_YEAR}"}

    def test_for_all_counts_processed(self, employee, leave_types):
        UserFactory(employee_code="EMP-OTHER")
        result = LeaveService.process_monthly_accrual_for_all(date(THIS_YEAR, 1, 1))
        assert result == {"processed": 2, "errors": 0}


class TestCarryOver:
    def previous_balance(self, employee, leave_type, amount):
        return LeaveBalance.objects.create(
            employee=employee, leave_type=leave_type, year=THIS_YEAR - 1,
            entitled=amount, balance=amount,
        )

    def test_carry_over_capped_at_thirty(self, employee, leave_types):
        self.previous_balance(employee, leave_types["VL"], Decimal("42.00"))
        LeaveBalance.objects.create(employee=employee, leave_type=leave_types["VL"], year=THIS_YEAR)

        [result] = LeaveService.process_carry_over(employee, THIS_YEAR)

        assert result["status"] == "success"
        assert result["carried_over"] == Decimal("30")
        current = LeaveBalance.objects.get(employee=employee, leave_type=leave_types["VL"], year=THIS_YEAR)
        assert current.carried_over == Decimal("30.00")
        assert current.balance == Decimal("30.00")
        assert LeaveAccrual.objects.get(accrual_type="carry_over").reference_number.startswith("CO-")

    def test_type_cap_applies(self, employee, leave_types):
        vl = leave_types["VL"]
        vl.max_carry_over_days = 10
        vl.save()
        self.previous_balance(employee, vl, Decimal("25.00"))
        LeaveBalance.objects.create(employee=employee, leave_type=vl, year=THIS_YEAR)

        [result] = LeaveService.process_carry_over(employee, THIS_YEAR)
        assert result["carried_over"] == Decimal("10")

    def test_second_run_is_skipped(self, employee, leave_types):
        self.previous_balance(employee, leave_types["VL"], Decimal("5.00"))
        LeaveBalance.objects.create(employee=employee, leave_type=leave_types["VL"], year=THIS_YEAR)
        LeaveService.process_carry_over(employee, THIS_YEAR)

        [result] = LeaveService.process_carry_over(employee, THIS_YEAR)

        assert result["status"] == "skipped"
        assert result["reason"] == "Carry-over already processed"

    def test_new_year_balance_carries_over_on_creation(self, employee, leave_types):
        self.previous_balance(employee, leave_types["SL"], Decimal("12.00"))

        balance = LeaveBalance.get_or_create_balance(employee, leave_types["SL"], THIS_YEAR)

        assert balance.carried_over == Decimal("12.00")
        assert balance.entitled == Decimal("12.00")

    def test_nothing_to_carry(self, employee, leave_types):
        assert LeaveService.process_carry_over(employee, THIS_YEAR) == []


class TestValidateLeaveRequest:
    def test_valid_request(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 15)
        start = next_weekday(0)

        assert LeaveService.validate_leave_request(
            employee, leave_types["VL"], start, start + timedelta(days=2)
        ) == (True, None)

    def test_gender_restriction(self, employee, leave_types):
        leave_types["SPL"].gender_restriction = "male"
        leave_types["SPL"].save()
        start = next_weekday(0)

        ok, error = LeaveService.validate_leave_request(employee, leave_types["SPL"], start, start)
        assert not ok
        assert error == "Special Privilege Leave is not available for this employee"

    def test_minimum_notice(self, employee, leave_types):
        leave_types["VL"].min_notice_days = 30
        leave_types["VL"].save()
        start = next_weekday(0)

        ok, error = LeaveService.validate_leave_request(employee, leave_types["VL"], start, start)
        assert error == "Minimum notice of 30 days required for Vacation Leave"

    def test_end_before_start(self, employee, leave_types):
        start = next_weekday(2)

        ok, error = LeaveService.validate_leave_request(
            employee, leave_types["VL"], start, start - timedelta(days=1)
        )
        assert error == "End date must be after start date"

    def test_max_days_per_request(self, employee, leave_types):
        start = next_weekday(0)

        ok, error = LeaveService.validate_leave_request(
            employee, leave_types["SPL"], start, start + timedelta(days=3)
        )
        assert error == "Maximum 3 days allowed per request for Special Privilege Leave"

    def test_insufficient_balance(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 2)
        start = next_weekday(0)

        ok, error = LeaveService.validate_leave_request(
            employee, leave_types["VL"], start, start + timedelta(days=2)
        )
        assert error == "Insufficient Vacation Leave balance. Available: 2.00 days"

    def test_minimum_remaining_vacation_leave(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 7)
        start = next_weekday(0)

        ok, error = LeaveService.validate_leave_request(
            employee, leave_types["VL"], start, start + timedelta(days=2)
        )
        assert error == "At least 5 VL days must remain after this request."

    def test_forced_leave_exempt_from_minimum(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 7)
        start = next_weekday(0)

        assert LeaveService.validate_leave_request(
            employee, leave_types["FL"], start, start + timedelta(days=2)
        ) == (True, None)


class TestSubmissionGuard:
    def answers(self, code, days=3):
        start = next_weekday(0)
        return {
            "leave_type": code,
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=days - 1)).isoformat(),
        }

    def test_insufficient_balance_message(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], Decimal("1.50"))

        with pytest.raises(ValidationError) as exc_info:
            LeaveService.assert_sufficient_leave_balance(employee, self.answers("VL"))
        assert exc_info.value.messages == [
            "Insufficient Vacation Leave balance. Only 1.5 day(s) available."
        ]

    def test_credit_source_is_checked(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 1)

        with pytest.raises(ValidationError, match="Insufficient Vacation Leave balance"):
            LeaveService.assert_sufficient_leave_balance(employee, self.answers("FL"))

    def test_inactive_type_rejected(self, employee, leave_types):
        leave_types["VL"].is_active = False
        leave_types["VL"].save()

        with pytest.raises(ValidationError, match="invalid or inactive"):
            LeaveService.assert_sufficient_leave_balance(employee, self.answers("VL"))

    def test_special_leave_checks_max_days_only(self, employee, leave_types):
        LeaveService.assert_sufficient_leave_balance(employee, self.answers("SPL", days=3))

        with pytest.raises(ValidationError, match="Maximum 3 day"):
            LeaveService.assert_sufficient_leave_balance(employee, self.answers("SPL", days=4))

    def test_incomplete_answers_pass(self, employee, leave_types):
        LeaveService.assert_sufficient_leave_balance(employee, {"leave_type": "VL"})


class TestForcedLeaveAndCertificates:
    def test_forced_leave_only_in_december(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 28)
        expected = timezone.localdate().month == 12
        assert LeaveService.needs_forced_leave(employee) is expected

    def test_forced_leave_status_without_requirement(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], 3)
        status = LeaveService.get_forced_leave_status(employee)
        assert status["required"] is False
        assert status["days_remaining"] == 0

    def test_medical_certificate_threshold(self, leave_types):
        assert LeaveService.requires_medical_certificate(leave_types["SL"], 3) is True
        assert LeaveService.requires_medical_certificate(leave_types["SL"], 2) is False
        assert LeaveService.requires_medical_certificate(leave_types["VL"], 10) is False


class TestAdjustments:
    def test_initial_balance_migration(self, employee, leave_types):
        balance = LeaveService.set_initial_balance(
            employee, leave_types["VL"], 12, used_to_date=3, as_of_date="2026-01-31"
        )

        assert balance.entitled == Decimal("15.00")
        assert balance.used == Decimal("3.00")
        assert balance.balance == Decimal("12.00")
        assert balance.is_manually_set
        accrual = LeaveAccrual.objects.get(accrual_type="initial_migration")
        assert accrual.reference_number.startswith("MIG-")

    def test_adjust_balance(self, employee, leave_types):
        set_balance(employee, leave_types["SL"], 10)

        balance = LeaveService.adjust_balance(employee, leave_types["SL"], "-2", "Correction of double entry")

        assert balance.balance == Decimal("8.00")
        assert LeaveAccrual.objects.get(accrual_type="adjustment").reference_number.startswith("ADJ-")

    def test_special_grant_respects_yearly_cap(self, employee, leave_types):
        LeaveService.grant_special_leave(employee, leave_types["SPL"], 2, "Birthday")

        with pytest.raises(ValidationError, match="Maximum 3 days"):
            LeaveService.grant_special_leave(employee, leave_types["SPL"], 2, "Graduation")

        grants = LeaveService.get_special_leave_grants(employee)
        assert grants[0]["total_granted"] == Decimal("2.00")

    def test_bulk_initial_balances(self, employee, leave_types):
        other = UserFactory(employee_code="EMP-BULK")
        result = LeaveService.bulk_set_initial_balances(
            [
                {"employee": employee, "leave_type": leave_types["VL"], "balance": 5},
                {"employee": other, "leave_type": leave_types["SL"], "balance": 7},
            ]
        )
        assert result == {"success": [employee.pk, other.pk], "failed": []}

    def test_adjustment_history(self, employee, leave_types):
        LeaveService.adjust_balance(employee, leave_types["VL"], 1, "Restored")
        LeaveService.add_accrual(employee, leave_types["VL"], 1, accrual_type="monthly")

        history = LeaveService.get_adjustment_history(employee)
        assert [entry.accrual_type for entry in history] == ["adjustment"]


class TestReporting:
    def test_is_holiday_date(self, db):
        Holiday.objects.create(name="Independence Day", date=date(2026, 6, 12))

        assert Holiday.is_holiday_date(date(2026, 6, 12))
        assert not Holiday.is_holiday_date(date(2026, 6, 11))

    def test_available_leave_types_respect_gender(self, employee, leave_types):
        LeaveTypeFactory(code="ML", name="Maternity Leave", gender_restriction="female")
        LeaveTypeFactory(code="PL", name="Paternity Leave", gender_restriction="male")

        codes = set(LeaveService.get_available_leave_types(employee).values_list("code", flat=True))

        assert "ML" in codes
        assert "PL" not in codes
        assert "VL" in codes

    def test_leave_calendar(self, employee, leave_types):
        LeaveRequest.objects.create(
            employee=employee,
            leave_type=leave_types["VL"],
            start_date=date(2026, 3, 2),
            end_date=date(2026, 3, 4),
            days=Decimal("3"),
            status="approved",
        )
        LeaveRequest.objects.create(
            employee=employee,
            leave_type=leave_types["SL"],
            start_date=date(2026, 3, 9),
            end_date=date(2026, 3, 9),
            days=Decimal("1"),
            status="rejected",
        )

        [entry] = LeaveService.get_leave_calendar("2026-03-01", "2026-03-31")
        assert entry["leave_type_code"] == "VL"
        assert entry["start_date"] == "2026-03-02"
        assert entry["reference_code"] is None
        assert LeaveService.get_leave_calendar("2026-04-01", "2026-04-30") == []
        assert LeaveService.get_leave_calendar("2026-03-01", "2026-03-31", employee=UserFactory()) == []

    def test_monetization(self, employee, leave_types):
        set_balance(employee, leave_types["VL"], Decimal("10"))
        set_balance(employee, leave_types["SL"], Decimal("5.5"))

        result = LeaveService.calculate_monetization(employee, "1000")

        assert result["total_days"] == Decimal("15.5")
        assert result["total_value"] == Decimal("15500.00")
