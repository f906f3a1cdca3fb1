from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from django.core.exceptions import ValidationError
from django.contrib.auth import get_user_model
from accounts.models import SystemConfiguration
from .models import (
    Holiday,
    LeaveAccrual,
    LeaveBalance,
    LeaveCreditsHistory,
    LeaveRequest,
    LeaveType,
    ZERO,
    generate_reference,
    to_decimal,
)
from datetime import date, datetime, timedelta
from decimal import Decimal
import calendar
import logging

logger = logging.getLogger(__name__)

User = get_user_model()

ADJUSTMENT_ACCRUAL_TYPES = [
    "manual",
    "initial_migration",
    "special_grant",
    "correction",
    "carry_over",
    "forfeited",
    "restored",
    "adjustment",
]


def parse_date(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def month_end(value):
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


class LeaveService:
    """
    Balance bookkeeping for leave types.

    Every movement goes through ``LeaveBalance.get_or_create_balance`` so a
    new year's row picks up its carry-over before anything touches it.
    """

    @staticmethod
    def accrual_rate():
        return to_decimal(
            SystemConfiguration.get_float_setting("LEAVE_MONTHLY_ACCRUAL_RATE", 1.25)
        )

    @staticmethod
    def carry_over_cap_days():
        return Decimal(SystemConfiguration.get_int_setting("LEAVE_CARRY_OVER_CAP_DAYS", 30))

    @staticmethod
    def min_remaining_vl():
        return Decimal(SystemConfiguration.get_int_setting("LEAVE_MIN_REMAINING_VL", 5))

    @staticmethod
    def calculate_working_days(start_date, end_date):
        start_date = parse_date(start_date)
        end_date = parse_date(end_date)

        holidays = set(
            Holiday.active.filter(date__range=(start_date, end_date)).values_list(
                "date", flat=True
            )
        )

        days = 0
        current = start_date
        while current <= end_date:
            if current.weekday() < 5 and current not in holidays:
                days += 1
            current += timedelta(days=1)

        return Decimal(days)

    @staticmethod
    def get_employee_balance(employee, year=None):
        year = year or timezone.localdate().year
        balances = []

        for leave_type in LeaveType.active.all():
            balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
            balances.append(
                {
                    "leave_type": leave_type,
                    "balance": balance,
                    "available": balance.balance,
                    "entitled": balance.entitled,
                    "used": balance.used,
                    "pending": balance.pending,
                    "accrued": balance.accrued,
                }
            )

        return balances

    @staticmethod
    def has_sufficient_balance(employee, leave_type, days, year=None):
        balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
        return balance.balance >= to_decimal(days)

    @staticmethod
    def reserve_balance(employee, leave_type, days, year=None):
        days = to_decimal(days)
        try:
            with transaction.atomic():
                balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
                balance = LeaveBalance.objects.select_for_update().get(pk=balance.pk)

                if balance.balance < days:
                    return False

                balance.pending += days
                balance.recalculate_balance()
            return True

        except Exception as e:
            logger.error(
                f"Failed to reserve {days} {leave_type.code} days for employee "
                f"{getattr(employee, 'pk', employee)}: {e}"
            )
            return False

    @staticmethod
    def release_balance(employee, leave_type, days, year=None):
        days = to_decimal(days)
        try:
            with transaction.atomic():
                balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
                balance = LeaveBalance.objects.select_for_update().get(pk=balance.pk)
                balance.pending = max(ZERO, balance.pending - days)
                balance.recalculate_balance()

        except Exception as e:
            logger.error(
                f"Failed to release {days} {leave_type.code} days for employee "
                f"{getattr(employee, 'pk', employee)}: {e}"
            )

    @staticmethod
    def deduct_balance(employee, leave_type, days, year=None):
        days = to_decimal(days)
        try:
            with transaction.atomic():
                balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
                balance = LeaveBalance.objects.select_for_update().get(pk=balance.pk)
                balance.pending = max(ZERO, balance.pending - days)
                balance.used += days
                balance.recalculate_balance()
            return balance

        except Exception as e:
            logger.error(
                f"Failed to deduct {days} {leave_type.code} days for employee "
                f"{getattr(employee, 'pk', employee)}: {e}"
            )
            raise

    @staticmethod
    def add_accrual(employee, leave_type, amount, accrual_type="manual", notes=None,
                    year=None, created_by=None):
        amount = to_decimal(amount)
        try:
            with transaction.atomic():
                LeaveAccrual.objects.create(
                    employee=employee,
                    leave_type=leave_type,
                    amount=amount,
                    accrual_type=accrual_type,
                    notes=notes,
                    created_by=created_by,
                )

                balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
                balance.accrued += amount
                balance.entitled += amount
                balance.recalculate_balance()
            return balance

        except Exception as e:
            logger.error(
                f"Failed to add {amount} {leave_type.code} accrual for employee "
                f"{employee.pk}: {e}"
            )
            raise

    @staticmethod
    def get_leave_calendar(start_date, end_date, employee=None, unit=None):
        start_date = parse_date(start_date)
        end_date = parse_date(end_date)

        requests = LeaveRequest.objects.filter(
            status="approved", start_date__lte=end_date, end_date__gte=start_date
        ).select_related("employee", "leave_type", "request_submission")

        if employee is not None:
            requests = requests.filter(employee=employee)

        if unit is not None:
            requests = requests.filter(employee__primary_designation__unit=unit)

        entries = []
        for leave in requests.order_by("start_date"):
            entries.append(
                {
                    "id": str(leave.id),
                    "employee_id": leave.employee_id,
                    "employee_name": leave.employee.get_full_name() or "Unknown",
                    "leave_type": leave.leave_type.name,
                    "leave_type_id": leave.leave_type_id,
                    "leave_type_code": leave.leave_type.code,
                    "leave_type_color": leave.leave_type.color,
                    "start_date": leave.start_date.strftime("%Y-%m-%d"),
                    "end_date": leave.end_date.strftime("%Y-%m-%d"),
                    "days": leave.days,
                    "reference_code": (
                        leave.request_submission.reference_code
                        if leave.request_submission
                        else None
                    ),
                }
            )
        return entries

    @staticmethod
    def validate_leave_request(employee, leave_type, start_date, end_date):
        """Returns ``(ok, error)``; ``error`` is None when the request passes."""
        start_date = parse_date(start_date)
        end_date = parse_date(end_date)

        if not leave_type.is_available_for(employee):
            return False, f"{leave_type.name} is not available for this employee"

        notice_days = (start_date - timezone.localdate()).days
        if notice_days < leave_type.min_notice_days:
            return False, (
                f"Minimum notice of {leave_type.min_notice_days} days required for {leave_type.name}"
            )

        if end_date < start_date:
            return False, "End date must be after start date"

        days = LeaveService.calculate_working_days(start_date, end_date)

        if leave_type.max_days_per_request and days > leave_type.max_days_per_request:
            return False, (
                f"Maximum {leave_type.max_days_per_request} days allowed per request "
                f"for {leave_type.name}"
            )

        if leave_type.draws_on_credits():
            source = leave_type.get_credits_source() or leave_type

            if not LeaveService.has_sufficient_balance(employee, source, days):
                current = LeaveBalance.get_current_year_balance(employee, source)
                available = current.balance if current else ZERO
                return False, (
                    f"Insufficient {source.name} balance. Available: {available} days"
                )

            if source.is_vacation_leave() and leave_type.code != LeaveType.CODE_MANDATORY_FORCED:
                current = LeaveBalance.get_current_year_balance(employee, source)
                available = current.balance if current else ZERO
                minimum = LeaveService.min_remaining_vl()
                if available - days < minimum:
                    return False, (
                        f"At least {minimum} VL days must remain after this request."
                    )

        return True, None

    @staticmethod
    def assert_sufficient_leave_balance(employee, answers):
        if employee is None or not getattr(employee, "pk", None):
            raise ValidationError(
                "Your account is not linked to an employee record. Please contact HR."
            )

        answers = answers or {}
        code = answers.get("leave_type")
        start = answers.get("start_date")
        end = answers.get("end_date")
        if not code or not start or not end:
            return

        leave_type = LeaveType.active.filter(code=code).first()
        if leave_type is None:
            raise ValidationError(
                "Selected leave type is invalid or inactive. Please select a valid leave type."
            )

        start = parse_date(start)
        end = parse_date(end)
        if end < start:
            raise ValidationError("End date must be after the start date.")

        days = LeaveService.calculate_working_days(start, end)
        max_days = leave_type.max_days_per_request

        if leave_type.is_special_leave and not leave_type.uses_credits_from:
            if max_days is not None and days > max_days:
                raise ValidationError(
                    f"Maximum {max_days} day(s) allowed for {leave_type.name}."
                )
            return

        source = leave_type
        if leave_type.uses_credits_from:
            source = leave_type.get_credits_source()
            if source is None:
                raise ValidationError("Leave type configuration error. Please contact HR.")

        if not LeaveService.has_sufficient_balance(employee, source, days):
            current = LeaveBalance.get_current_year_balance(employee, source)
            available = current.balance if current else ZERO
            raise ValidationError(
                f"Insufficient {source.name} balance. Only {available.normalize():f} day(s) available."
            )

        if max_days is not None and days > max_days:
            raise ValidationError(
                f"Maximum {max_days} day(s) allowed per request for {leave_type.name}."
            )

    @staticmethod
    def get_leave_credits_as_of_date(employee, as_of_date=None):
        as_of_date = parse_date(as_of_date) or timezone.localdate()
        year = as_of_date.year

        credits = {}
        for key, code in (
            ("vacation_leave", LeaveType.CODE_VACATION),
            ("sick_leave", LeaveType.CODE_SICK),
        ):
            leave_type = LeaveType.objects.filter(code=code).first()
            balance = (
                LeaveBalance.get_or_create_balance(employee, leave_type, year)
                if leave_type
                else None
            )
            credits[key] = {
                "total_earned": balance.entitled if balance else ZERO,
                "less_used": balance.used if balance else ZERO,
                "balance": balance.balance if balance else ZERO,
            }

        credits["as_of_date"] = as_of_date.strftime("%Y-%m-%d")
        return credits

    @staticmethod
    def process_monthly_accrual(employee, month):
        """
        Accrue the monthly VL and SL credit for ``month`` (any date inside it).

        Employees hired during the month only accrue when hired before the
        cutoff day, and then pro rata for the days they were employed.
        """
        if not employee.is_active_employee:
            return False

        month = parse_date(month)
        accrual_date = month_end(month)
        year = accrual_date.year

        hire_date = employee.hire_date
        if hire_date and hire_date > accrual_date:
            return False

        days_in_month = accrual_date.day
        is_hire_month = bool(
            hire_date
            and hire_date.year == accrual_date.year
            and hire_date.month == accrual_date.month
        )
        cutoff_day = SystemConfiguration.get_int_setting("LEAVE_ACCRUAL_CUTOFF_DAY", 15)
        eligible = not is_hire_month or hire_date.day < cutoff_day
        days_employed = (
            (accrual_date - hire_date).days + 1 if is_hire_month else days_in_month
        )

        rate = ZERO
        if eligible:
            rate = to_decimal(
                Decimal(days_employed) / Decimal(days_in_month) * LeaveService.accrual_rate()
            )

        cap = LeaveService.carry_over_cap_days()
        period = month.strftime("%B %Y")

        for code in (LeaveType.CODE_VACATION, LeaveType.CODE_SICK):
            leave_type = LeaveType.objects.filter(code=code).first()
            if leave_type is None:
                continue

            if rate > 0:
                LeaveService.add_accrual(
                    employee,
                    leave_type,
                    rate,
                    accrual_type="monthly",
                    notes=f"Monthly accrual for {period} (prorated)",
                    year=year,
                )

            balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
            excess = balance.balance - cap
            if excess > 0:
                balance.entitled = max(ZERO, balance.entitled - excess)
                balance.recalculate_balance()
                logger.info(
                    f"Capped {code} balance for employee {employee.pk} at {cap} days "
                    f"(forfeited {excess})"
                )

            LeaveService.record_credits_history(employee, leave_type, month)

        return True

    @staticmethod
    def record_credits_history(employee, leave_type, period):
        period = parse_date(period)
        balance = LeaveBalance.get_or_create_balance(employee, leave_type, period.year)

        return LeaveCreditsHistory.objects.create(
            employee=employee,
            leave_type=leave_type,
            earned=balance.entitled,
            used=balance.used,
            balance=balance.balance,
            abs_undertime_deduction=Decimal("0.000"),
            period=period.strftime("%B %Y"),
            as_of_date=month_end(period),
        )

    @staticmethod
    def needs_forced_leave(employee, year=None):
        year = year or timezone.localdate().year

        vl_type = LeaveType.objects.filter(code=LeaveType.CODE_VACATION).first()
        if vl_type is None:
            return False

        balance = LeaveBalance.get_or_create_balance(employee, vl_type, year)

        if timezone.localdate().month != 12:
            return False

        threshold = SystemConfiguration.get_int_setting("LEAVE_MIN_VL_FOR_FORCED_LEAVE", 25)
        return balance.balance > threshold

    @staticmethod
    def get_forced_leave_status(employee, year=None):
        year = year or timezone.localdate().year

        fl_type = LeaveType.objects.filter(code=LeaveType.CODE_MANDATORY_FORCED).first()
        if fl_type is None:
            return {
                "required": False,
                "days_required": 0,
                "days_taken": 0,
                "days_remaining": 0,
            }

        required = LeaveService.needs_forced_leave(employee, year)
        forced_days = Decimal(SystemConfiguration.get_int_setting("LEAVE_FORCED_LEAVE_DAYS", 5))

        days_taken = (
            LeaveRequest.objects.filter(
                employee=employee,
                leave_type=fl_type,
                start_date__year=year,
                status="approved",
            ).aggregate(total=Sum("days"))["total"]
            or ZERO
        )

        return {
            "required": required,
            "days_required": forced_days if required else 0,
            "days_taken": days_taken,
            "days_remaining": max(ZERO, forced_days - days_taken) if required else 0,
        }

    @staticmethod
    def requires_medical_certificate(leave_type, days):
        threshold = SystemConfiguration.get_int_setting("LEAVE_MEDICAL_CERT_DAYS", 3)
        if leave_type.is_sick_leave() and to_decimal(days) >= threshold:
            return True
        return leave_type.requires_medical_certificate

    @staticmethod
    def get_available_leave_types(employee):
        restrictions = ["all"]
        gender = LeaveType.USER_GENDERS.get(employee.gender or "")
        if gender:
            restrictions.append(gender)
        return LeaveType.active.filter(gender_restriction__in=restrictions)

    @staticmethod
    def calculate_monetization(employee, daily_rate):
        year = timezone.localdate().year
        daily_rate = to_decimal(daily_rate)

        def current_balance(code):
            leave_type = LeaveType.objects.filter(code=code).first()
            if leave_type is None:
                return ZERO
            return LeaveBalance.get_or_create_balance(employee, leave_type, year).balance

        vl_days = current_balance(LeaveType.CODE_VACATION)
        sl_days = current_balance(LeaveType.CODE_SICK)
        total_days = vl_days + sl_days

        return {
            "vacation_leave_days": vl_days,
            "sick_leave_days": sl_days,
            "total_days": total_days,
            "daily_rate": daily_rate,
            "total_value": to_decimal(total_days * daily_rate),
        }

    @staticmethod
    def set_initial_balance(employee, leave_type, balance, used_to_date=0, notes=None,
                            as_of_date=None, year=None, created_by=None):
        year = year or timezone.localdate().year
        as_of_date = parse_date(as_of_date) or timezone.localdate()
        used_to_date = to_decimal(used_to_date)
        entitled = to_decimal(balance) + used_to_date

        try:
            with transaction.atomic():
                leave_balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)

                LeaveAccrual.objects.create(
                    employee=employee,
                    leave_type=leave_type,
                    amount=entitled,
                    accrual_type="initial_migration",
                    notes=notes
                    or f"Initial balance migration as of {as_of_date.strftime('%Y-%m-%d')}",
                    effective_date=as_of_date,
                    reference_number=generate_reference("MIG"),
                    created_by=created_by,
                )

                leave_balance.initial_balance = entitled
                leave_balance.entitled = entitled
                leave_balance.used = used_to_date
                leave_balance.accrued = ZERO
                leave_balance.balance_as_of_date = as_of_date
                leave_balance.migration_notes = notes
                leave_balance.is_manually_set = True
                leave_balance.recalculate_balance()

        except Exception as e:
            logger.error(
                f"Failed to set initial {leave_type.code} balance for employee {employee.pk}: {e}"
            )
            raise

        logger.info(
            f"Initial {leave_type.code} balance set for employee {employee.pk}: "
            f"entitled={entitled}, used={used_to_date}, as of {as_of_date}"
        )
        return leave_balance

    @staticmethod
    def adjust_balance(employee, leave_type, amount, reason, adjustment_type="adjustment",
                       year=None, created_by=None):
        amount = to_decimal(amount)

        try:
            with transaction.atomic():
                leave_balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)

                LeaveAccrual.objects.create(
                    employee=employee,
                    leave_type=leave_type,
                    amount=amount,
                    accrual_type=adjustment_type,
                    notes=reason,
                    reference_number=generate_reference("ADJ"),
                    created_by=created_by,
                )

                leave_balance.entitled += amount
                leave_balance.accrued += amount
                leave_balance.recalculate_balance()

        except Exception as e:
            logger.error(
                f"Failed to adjust {leave_type.code} balance for employee {employee.pk}: {e}"
            )
            raise

        logger.info(
            f"Adjusted {leave_type.code} balance for employee {employee.pk} by {amount} "
            f"({adjustment_type}): {reason}"
        )
        return leave_balance

    @staticmethod
    def grant_special_leave(employee, leave_type, days, reason, supporting_document=None,
                            year=None, created_by=None):
        days = to_decimal(days)

        if not leave_type.is_available_for(employee):
            raise ValidationError(f"Employee is not eligible for {leave_type.name}")

        if leave_type.max_days_per_year:
            existing = LeaveBalance.get_or_create_balance(employee, leave_type, year)
            if existing.entitled + days > leave_type.max_days_per_year:
                raise ValidationError(
                    f"Cannot grant {days} days. Maximum {leave_type.max_days_per_year} days "
                    f"allowed per year for {leave_type.name}. "
                    f"Current entitlement: {existing.entitled} days."
                )

        with transaction.atomic():
            leave_balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)

            LeaveAccrual.objects.create(
                employee=employee,
                leave_type=leave_type,
                amount=days,
                accrual_type="special_grant",
                notes=reason,
                supporting_document=supporting_document,
                reference_number=generate_reference("SPL"),
                created_by=created_by,
            )

            leave_balance.entitled += days
            leave_balance.accrued += days
            leave_balance.recalculate_balance()

        logger.info(
            f"Granted {days} days of {leave_type.code} to employee {employee.pk}: {reason}"
        )
        return leave_balance

    @staticmethod
    def get_adjustment_history(employee, leave_type=None, year=None):
        history = LeaveAccrual.objects.filter(
            employee=employee, accrual_type__in=ADJUSTMENT_ACCRUAL_TYPES
        ).select_related("leave_type", "created_by")

        if leave_type is not None:
            history = history.filter(leave_type=leave_type)

        if year:
            history = history.filter(accrual_date__year=year)

        return history.order_by("-created_at")

    @staticmethod
    def bulk_set_initial_balances(balances, as_of_date=None):
        results = {"success": [], "failed": []}

        for data in balances:
            employee = data["employee"]
            try:
                LeaveService.set_initial_balance(
                    employee,
                    data["leave_type"],
                    data["balance"],
                    data.get("used_to_date", 0),
                    data.get("notes"),
                    as_of_date,
                )
                results["success"].append(employee.pk)
            except Exception as e:
                results["failed"].append({"employee_id": employee.pk, "error": str(e)})

        return results

    @staticmethod
    def get_special_leave_grants(employee, year=None):
        year = year or timezone.localdate().year

        grants = (
            LeaveAccrual.objects.filter(
                employee=employee, accrual_type="special_grant", accrual_date__year=year
            )
            .select_related("leave_type")
            .order_by("leave_type__sort_order", "accrual_date")
        )

        summary = {}
        for grant in grants:
            entry = summary.setdefault(
                grant.leave_type_id,
                {
                    "leave_type": grant.leave_type.name,
                    "leave_type_code": grant.leave_type.code,
                    "total_granted": ZERO,
                    "grants": [],
                },
            )
            entry["total_granted"] += grant.amount
            entry["grants"].append(
                {
                    "amount": grant.amount,
                    "date": grant.accrual_date.strftime("%Y-%m-%d"),
                    "reason": grant.notes,
                    "document": grant.supporting_document,
                    "reference": grant.reference_number,
                }
            )

        return list(summary.values())

    @staticmethod
    def process_carry_over(employee, year, created_by=None):
        results = []
        previous_year = year - 1

        for leave_type in LeaveType.active.filter(can_carry_over=True):
            previous = LeaveBalance.objects.filter(
                employee=employee, leave_type=leave_type, year=previous_year
            ).first()
            if previous is None or previous.balance <= 0:
                continue

            already_processed = LeaveAccrual.objects.filter(
                employee=employee,
                leave_type=leave_type,
                accrual_type="carry_over",
                effective_date__year=year,
            ).exists()

            current = LeaveBalance.get_or_create_balance(employee, leave_type, year)

            if already_processed or current.carried_over > 0:
                results.append(
                    {
                        "leave_type": leave_type.code,
                        "status": "skipped",
                        "reason": (
                            "Carry-over already processed"
                            if already_processed
                            else "Already has carry-over"
                        ),
                    }
                )
                continue

            amount = min(previous.balance, leave_type.carry_over_cap())
            if amount <= 0:
                continue

            try:
                with transaction.atomic():
                    current.carried_over = amount
                    current.entitled += amount
                    current.recalculate_balance()

                    LeaveAccrual.objects.create(
                        employee=employee,
                        leave_type=leave_type,
                        amount=amount,
                        accrual_type="carry_over",
                        effective_date=date(year, 1, 1),
                        reference_number=generate_reference("CO"),
                        notes=(
                            f"Carried over from {previous_year} "
                            f"(balance: {previous.balance} days, capped at {amount} days)"
                        ),
                        created_by=created_by,
                    )

                results.append(
                    {
                        "leave_type": leave_type.code,
                        "status": "success",
                        "previous_balance": previous.balance,
                        "carried_over": amount,
                    }
                )
                logger.info(
                    f"Carried over {amount} {leave_type.code} days for employee "
                    f"{employee.pk} from {previous_year} to {year}"
                )

            except Exception as e:
                current.refresh_from_db()
                results.append(
                    {"leave_type": leave_type.code, "status": "error", "error": str(e)}
                )
                logger.error(
                    f"Failed to process {leave_type.code} carry-over for employee "
                    f"{employee.pk}: {e}"
                )

        return results

    @staticmethod
    def active_employees():
        return User.active.order_by("employee_code")

    @staticmethod
    def process_monthly_accrual_for_all(month):
        month = parse_date(month)
        processed = 0
        errors = 0

        for employee in LeaveService.active_employees():
            try:
                LeaveService.process_monthly_accrual(employee, month)
                processed += 1
            except Exception as e:
                errors += 1
                logger.error(
                    f"Failed to process monthly accrual for employee {employee.pk} "
                    f"({month.strftime('%Y-%m')}): {e}"
                )

        logger.info(
            f"Monthly leave accrual for {month.strftime('%Y-%m')}: "
            f"{processed} processed, {errors} errors"
        )
        return {"processed": processed, "errors": errors}

    @staticmethod
    def process_carry_over_for_all(year):
        processed = 0
        errors = 0

        for employee in LeaveService.active_employees():
            try:
                results = LeaveService.process_carry_over(employee, year)
                if any(result.get("status") == "success" for result in results):
                    processed += 1
            except Exception as e:
                errors += 1
                logger.error(f"Failed to process carry-over for employee {employee.pk} ({year}): {e}")

        logger.info(f"Leave carry-over for {year}: {processed} processed, {errors} errors")
        return {"processed": processed, "errors": errors}
