from django.db import models, transaction
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.conf import settings
from django.utils import timezone
from accounts.models import ActiveManager, SystemConfiguration
from decimal import Decimal, ROUND_HALF_UP
from datetime import date
import logging
import uuid

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")


def to_decimal(value, places=TWO_PLACES):
    return Decimal(str(value or 0)).quantize(places, rounding=ROUND_HALF_UP)


def generate_reference(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:13].upper()}"


class Holiday(models.Model):
    HOLIDAY_TYPES = [
        ("REGULAR", "Regular Holiday"),
        ("SPECIAL", "Special Non-Working Day"),
        ("INSTITUTIONAL", "Institutional Holiday"),
    ]

    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100)
    date = models.DateField()
    holiday_type = models.CharField(
        max_length=20, choices=HOLIDAY_TYPES, default="REGULAR"
    )
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "leave_holidays"
        ordering = ["date"]
        indexes = [
            models.Index(fields=["date"]),
            models.Index(fields=["is_active"]),
        ]
        unique_together = ["name", "date"]

    def __str__(self):
        return f"{self.name} - {self.date}"

    @classmethod
    def is_holiday_date(cls, check_date):
        return cls.active.filter(date=check_date).exists()


class LeaveType(models.Model):
    CODE_VACATION = "VL"
    CODE_SICK = "SL"
    CODE_MANDATORY_FORCED = "FL"
    CODE_SPECIAL_PRIVILEGE = "SPL"
    CODE_SOLO_PARENT = "SoloP"
    CODE_STUDY = "Study"
    CODE_VAWC = "VAWC"
    CODE_REHABILITATION = "Rehab"
    CODE_WOMEN_SPECIAL = "WSL"
    CODE_CALAMITY = "CL"
    CODE_ADOPTION = "Adopt"
    CODE_MATERNITY = "ML"
    CODE_PATERNITY = "PL"
    CODE_TERMINAL = "TL"

    CREDIT_BASED_CODES = [CODE_VACATION, CODE_SICK]

    GENDER_RESTRICTIONS = [
        ("all", "All"),
        ("male", "Male"),
        ("female", "Female"),
    ]

    USER_GENDERS = {"M": "male", "F": "female"}

    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=10, unique=True)
    description = models.TextField(blank=True, null=True)
    color = models.CharField(max_length=20, default="#3b82f6")
    requires_approval = models.BooleanField(default=True)
    requires_medical_certificate = models.BooleanField(default=False)
    max_days_per_request = models.PositiveIntegerField(null=True, blank=True)
    max_days_per_year = models.PositiveIntegerField(null=True, blank=True)
    min_notice_days = models.PositiveIntegerField(default=0)
    can_carry_over = models.BooleanField(default=False)
    max_carry_over_days = models.PositiveIntegerField(null=True, blank=True)
    is_paid = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)
    gender_restriction = models.CharField(
        max_length=10, choices=GENDER_RESTRICTIONS, default="all"
    )
    uses_credits_from = models.CharField(max_length=10, blank=True, null=True)
    is_monetizable = models.BooleanField(default=False)
    is_special_leave = models.BooleanField(default=False)
    required_document = models.CharField(max_length=255, blank=True, null=True)
    legal_basis = models.CharField(max_length=255, blank=True, null=True)
    commutation_applicable = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "leave_types"
        ordering = ["sort_order", "name"]
        indexes = [
            models.Index(fields=["code"]),
            models.Index(fields=["is_active"]),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    def clean(self):
        if self.uses_credits_from and self.uses_credits_from == self.code:
            raise ValidationError("A leave type cannot draw credits from itself")

        if self.max_carry_over_days and not self.can_carry_over:
            raise ValidationError(
                "Max carry-over days requires carry-over to be enabled"
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available_for(self, employee):
        if not self.is_active:
            return False

        if self.gender_restriction != "all":
            employee_gender = self.USER_GENDERS.get(employee.gender or "", "")
            if self.gender_restriction != employee_gender:
                return False

        return True

    def get_credits_source(self):
        if not self.uses_credits_from:
            return None
        return LeaveType.objects.filter(code=self.uses_credits_from).first()

    def is_vacation_leave(self):
        return self.code == self.CODE_VACATION

    def is_sick_leave(self):
        return self.code == self.CODE_SICK

    def is_credit_based(self):
        return self.code in self.CREDIT_BASED_CODES

    def draws_on_credits(self):
        return self.is_credit_based() or not self.is_special_leave

    def carry_over_cap(self):
        cap = SystemConfiguration.get_int_setting("LEAVE_CARRY_OVER_CAP_DAYS", 30)
        if self.max_carry_over_days:
            cap = min(self.max_carry_over_days, cap)
        return Decimal(cap)


class LeaveBalance(models.Model):
    id = models.AutoField(primary_key=True)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="leave_balances"
    )
    leave_type = models.ForeignKey(
        LeaveType, on_delete=models.CASCADE, related_name="employee_balances"
    )
    year = models.PositiveIntegerField()
    entitled = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    accrued = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    used = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    pending = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    balance = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    carried_over = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    initial_balance = models.DecimalField(max_digits=7, decimal_places=2, default=ZERO)
    balance_as_of_date = models.DateField(null=True, blank=True)
    migration_notes = models.TextField(blank=True, null=True)
    is_manually_set = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "leave_balances"
        ordering = ["-year", "leave_type__sort_order"]
        indexes = [
            models.Index(fields=["employee", "year"]),
            models.Index(fields=["leave_type", "year"]),
        ]
        unique_together = ["employee", "leave_type", "year"]

    def __str__(self):
        return f"{self.employee.get_full_name()} - {self.leave_type.code} - {self.year}: {self.balance}"

    def recalculate_balance(self):
        self.balance = to_decimal(self.entitled) - to_decimal(self.used) - to_decimal(self.pending)
        self.save()

    @classmethod
    def get_current_year_balance(cls, employee, leave_type):
        return cls.objects.filter(
            employee=employee, leave_type=leave_type, year=timezone.localdate().year
        ).first()

    @classmethod
    def get_or_create_balance(cls, employee, leave_type, year=None):
        year = year or timezone.localdate().year

        with transaction.atomic():
            balance, created = cls.objects.get_or_create(
                employee=employee, leave_type=leave_type, year=year
            )
            if created:
                balance.apply_previous_year_carry_over()
        return balance

    def apply_previous_year_carry_over(self, created_by=None):
        leave_type = self.leave_type
        if not leave_type.can_carry_over:
            return ZERO

        previous = LeaveBalance.objects.filter(
            employee_id=self.employee_id, leave_type=leave_type, year=self.year - 1
        ).first()
        if not previous or previous.balance <= 0:
            return ZERO

        amount = min(previous.balance, leave_type.carry_over_cap())
        if amount <= 0:
            return ZERO

        self.carried_over = amount
        self.entitled = amount
        self.recalculate_balance()

        LeaveAccrual.objects.create(
            employee_id=self.employee_id,
            leave_type=leave_type,
            amount=amount,
            accrual_type="carry_over",
            effective_date=date(self.year, 1, 1),
            reference_number=generate_reference("CO"),
            notes=(
                f"Carried over from {self.year - 1} "
                f"(balance: {previous.balance} days, capped at {amount} days)"
            ),
            created_by=created_by,
        )
        logger.info(
            f"Carried over {amount} {leave_type.code} days for employee "
            f"{self.employee_id} from {self.year - 1} to {self.year}"
        )
        return amount


class LeaveAccrual(models.Model):
    ACCRUAL_TYPES = [
        ("annual", "Annual"),
        ("monthly", "Monthly"),
        ("manual", "Manual"),
        ("initial_migration", "Initial Migration"),
        ("special_grant", "Special Grant"),
        ("correction", "Correction"),
        ("carry_over", "Carry Over"),
        ("forfeited", "Forfeited"),
        ("restored", "Restored"),
        ("adjustment", "Adjustment"),
    ]

    id = models.AutoField(primary_key=True)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="leave_accruals"
    )
    leave_type = models.ForeignKey(
        LeaveType, on_delete=models.CASCADE, related_name="accruals"
    )
    amount = models.DecimalField(max_digits=7, decimal_places=2)
    accrual_date = models.DateField(default=timezone.localdate)
    accrual_type = models.CharField(max_length=20, choices=ACCRUAL_TYPES)
    effective_date = models.DateField(null=True, blank=True)
    reference_number = models.CharField(max_length=40, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    supporting_document = models.CharField(max_length=255, blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_leave_accruals",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "leave_accruals"
        ordering = ["-accrual_date", "-created_at"]
        indexes = [
            models.Index(fields=["employee", "leave_type"]),
            models.Index(fields=["accrual_type"]),
            models.Index(fields=["accrual_date"]),
        ]

    def __str__(self):
        return f"{self.employee_id} {self.leave_type.code} {self.accrual_type} {self.amount}"


class LeaveCreditsHistory(models.Model):
    id = models.AutoField(primary_key=True)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="leave_credits_history"
    )
    leave_type = models.ForeignKey(
        LeaveType, on_delete=models.CASCADE, related_name="credits_history"
    )
    earned = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0.000"))
    used = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0.000"))
    balance = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0.000"))
    abs_undertime_deduction = models.DecimalField(
        max_digits=7, decimal_places=3, default=Decimal("0.000")
    )
    period = models.CharField(max_length=50)
    as_of_date = models.DateField()
    remarks = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "leave_credits_history"
        ordering = ["-as_of_date"]
        indexes = [
            models.Index(fields=["employee", "leave_type", "as_of_date"]),
        ]
        verbose_name_plural = "Leave credits history"

    def __str__(self):
        return f"{self.employee_id} {self.leave_type.code} {self.period}: {self.balance}"


class LeaveRequest(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
        ("cancelled", "Cancelled"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    request_submission = models.OneToOneField(
        "approvals.RequestSubmission",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="leave_request",
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="leave_requests"
    )
    leave_type = models.ForeignKey(
        LeaveType, on_delete=models.PROTECT, related_name="requests"
    )
    start_date = models.DateField()
    end_date = models.DateField()
    days = models.DecimalField(max_digits=6, decimal_places=2, validators=[MinValueValidator(0)])
    reason = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_leave_requests",
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="rejected_leave_requests",
    )
    rejection_reason = models.TextField(blank=True, null=True)

    location = models.CharField(max_length=50, blank=True, null=True)
    location_details = models.CharField(max_length=255, blank=True, null=True)
    sick_leave_type = models.CharField(max_length=50, blank=True, null=True)
    illness_description = models.TextField(blank=True, null=True)
    women_special_illness = models.TextField(blank=True, null=True)
    study_leave_type = models.CharField(max_length=50, blank=True, null=True)
    study_leave_details = models.TextField(blank=True, null=True)
    other_leave_type = models.CharField(max_length=50, blank=True, null=True)
    other_leave_details = models.TextField(blank=True, null=True)

    commutation_requested = models.BooleanField(default=False)
    vacation_leave_balance = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    sick_leave_balance = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    days_with_pay = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    days_without_pay = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "leave_requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["employee", "status"]),
            models.Index(fields=["leave_type", "status"]),
            models.Index(fields=["start_date", "end_date"]),
        ]

    def __str__(self):
        return f"{self.employee.get_full_name()} - {self.leave_type.code} - {self.start_date} to {self.end_date}"

    def clean(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError("End date cannot be before start date")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def is_pending(self):
        return self.status == "pending"
