from django.db import models
from django.db.models import Q
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.conf import settings
from django.utils import timezone
from accounts.models import ActiveManager


class Sector(models.Model):
    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=100, unique=True)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "sectors"
        ordering = ["name"]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Unit(models.Model):
    UNIT_TYPES = [
        ("faculty", "Faculty"),
        ("department", "Department"),
        ("office", "Office"),
        ("program", "Program"),
    ]

    id = models.AutoField(primary_key=True)
    sector = models.ForeignKey(
        Sector, on_delete=models.PROTECT, null=True, blank=True, related_name="units"
    )
    unit_type = models.CharField(max_length=20, choices=UNIT_TYPES)
    name = models.CharField(max_length=150)
    code = models.CharField(max_length=30, unique=True)
    parent_unit = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="child_units",
    )
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "units"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["unit_type"]),
            models.Index(fields=["sector"]),
            models.Index(fields=["parent_unit"]),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    def clean(self):
        if self.pk and self.parent_unit_id == self.pk:
            raise ValidationError("Unit cannot be its own parent")

        parent = self.parent_unit
        while parent:
            if self.pk and parent.pk == self.pk:
                raise ValidationError("Circular unit hierarchy detected")
            parent = parent.parent_unit

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def get_ancestors(self):
        ancestors = []
        parent = self.parent_unit
        while parent:
            ancestors.append(parent)
            parent = parent.parent_unit
        return ancestors


class Position(models.Model):
    POSITION_TYPES = [
        ("academic", "Academic"),
        ("administrative", "Administrative"),
        ("support", "Support"),
    ]

    id = models.AutoField(primary_key=True)
    pos_code = models.CharField(max_length=30, unique=True)
    pos_name = models.CharField(max_length=150)
    description = models.TextField(blank=True, null=True)
    position_type = models.CharField(
        max_length=20, choices=POSITION_TYPES, default="administrative"
    )
    sector = models.ForeignKey(
        Sector,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="positions",
        help_text="Leave empty for system-wide positions",
    )
    authority_level = models.PositiveIntegerField(
        default=1, validators=[MinValueValidator(1)]
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "positions"
        ordering = ["-authority_level", "pos_name"]
        indexes = [
            models.Index(fields=["authority_level"]),
            models.Index(fields=["sector"]),
        ]

    def __str__(self):
        return f"{self.pos_name} (L{self.authority_level})"

    @property
    def is_system_wide(self):
        return self.sector_id is None


class UnitPosition(models.Model):
    id = models.AutoField(primary_key=True)
    unit_type = models.CharField(max_length=20, choices=Unit.UNIT_TYPES)
    position = models.ForeignKey(
        Position, on_delete=models.CASCADE, related_name="unit_whitelist"
    )
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "unit_positions"
        unique_together = ["unit_type", "position"]

    def __str__(self):
        return f"{self.unit_type}: {self.position.pos_name}"

    @classmethod
    def is_allowed(cls, unit_type, position):
        return cls.active.filter(unit_type=unit_type, position=position).exists()

    @classmethod
    def has_whitelist_for(cls, unit_type):
        return cls.active.filter(unit_type=unit_type).exists()


class EmployeeDesignationQuerySet(models.QuerySet):
    def active(self, on_date=None):
        on_date = on_date or timezone.localdate()
        return self.filter(Q(end_date__isnull=True) | Q(end_date__gte=on_date))

    def primary(self):
        return self.filter(is_primary=True)


class EmployeeDesignation(models.Model):
    TRACKED_FIELDS = [
        "unit_id",
        "position_id",
        "academic_rank",
        "staff_grade",
        "is_primary",
        "start_date",
        "end_date",
    ]

    id = models.AutoField(primary_key=True)
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="designations",
    )
    unit = models.ForeignKey(
        Unit,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="designations",
    )
    position = models.ForeignKey(
        Position, on_delete=models.PROTECT, related_name="assignments"
    )
    academic_rank = models.CharField(max_length=100, blank=True, null=True)
    staff_grade = models.CharField(max_length=50, blank=True, null=True)
    is_primary = models.BooleanField(default=False)
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EmployeeDesignationQuerySet.as_manager()

    class Meta:
        db_table = "employee_designations"
        ordering = ["-is_primary", "-start_date"]
        indexes = [
            models.Index(fields=["employee", "is_primary"]),
            models.Index(fields=["unit"]),
            models.Index(fields=["position"]),
        ]

    def __str__(self):
        unit_name = self.unit.name if self.unit else "No unit"
        return f"{self.employee} - {self.position.pos_name} @ {unit_name}"

    def clean(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError("End date cannot be before start date")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.end_date is None or self.end_date >= timezone.localdate()

    @property
    def sector(self):
        if self.unit and self.unit.sector_id:
            return self.unit.sector
        return self.position.sector


class EmployeeDesignationHistory(models.Model):
    id = models.AutoField(primary_key=True)
    designation = models.ForeignKey(
        EmployeeDesignation, on_delete=models.CASCADE, related_name="history"
    )
    field_changed = models.CharField(max_length=50)
    old_value = models.TextField(blank=True, null=True)
    new_value = models.TextField(blank=True, null=True)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="designation_changes",
    )
    changed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "employee_designation_history"
        ordering = ["-changed_at"]
        indexes = [
            models.Index(fields=["designation", "changed_at"]),
        ]

    def __str__(self):
        return f"{self.designation_id}: {self.field_changed} {self.old_value} -> {self.new_value}"
