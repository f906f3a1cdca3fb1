from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.core.validators import RegexValidator, EmailValidator
from django.utils import timezone
from django.core.exceptions import ValidationError
import uuid


class ActiveManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True)


class ActiveUserManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True, status="ACTIVE")


class CustomUserManager(BaseUserManager):
    def create_user(self, username=None, email=None, password=None, **extra_fields):
        username = username or extra_fields.get("employee_code")
        if not username:
            raise ValueError("A username or employee code is required")

        user = self.model(
            username=username,
            email=self.normalize_email(email) if email else None,
            **extra_fields,
        )
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, username=None, email=None, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("status", "ACTIVE")

        return self.create_user(username, email, password, **extra_fields)


class Role(models.Model):
    ROLE_TYPES = [
        ("SUPER_ADMIN", "Super Admin"),
        ("HR_ADMIN", "HR Administrator"),
        ("DEAN", "Dean"),
        ("DEPARTMENT_HEAD", "Department Head"),
        ("OFFICE_HEAD", "Office Head"),
        ("FACULTY", "Faculty"),
        ("STAFF", "Staff"),
    ]

    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=50, choices=ROLE_TYPES, unique=True)
    display_name = models.CharField(max_length=100)
    description = models.TextField(blank=True, null=True)
    level = models.PositiveIntegerField(default=1)
    can_approve_leave = models.BooleanField(default=False)
    can_manage_employees = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "roles"
        ordering = ["display_name"]

    def __str__(self):
        return self.display_name


class CustomUser(AbstractUser):
    GENDER_CHOICES = [
        ("M", "Male"),
        ("F", "Female"),
        ("O", "Other"),
    ]

    STATUS_CHOICES = [
        ("ACTIVE", "Active"),
        ("INACTIVE", "Inactive"),
        ("SUSPENDED", "Suspended"),
        ("TERMINATED", "Terminated"),
    ]

    username = models.CharField(max_length=20, unique=True, null=True, blank=True)
    employee_code = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        validators=[
            RegexValidator(
                r"^[A-Z0-9-]{3,20}$",
                "Employee code must be 3-20 characters, uppercase letters, digits or dashes",
            )
        ],
    )

    first_name = models.CharField(max_length=50, blank=True)
    last_name = models.CharField(max_length=50, blank=True)
    middle_name = models.CharField(max_length=50, blank=True, null=True)
    email = models.EmailField(
        unique=True, null=True, blank=True, validators=[EmailValidator()]
    )
    gender = models.CharField(
        max_length=1, choices=GENDER_CHOICES, blank=True, null=True
    )

    role = models.ForeignKey(
        Role, on_delete=models.SET_NULL, null=True, blank=True, related_name="users"
    )
    primary_designation = models.ForeignKey(
        "organization.EmployeeDesignation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    hire_date = models.DateField(null=True, blank=True)
    termination_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")

    two_factor_enabled = models.BooleanField(default=False)
    two_factor_secret = models.CharField(max_length=64, blank=True, null=True)
    two_factor_confirmed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CustomUserManager()
    active = ActiveUserManager()

    USERNAME_FIELD = "username"
    REQUIRED_FIELDS = ["email", "first_name", "last_name"]

    class Meta:
        db_table = "users"
        ordering = ["employee_code"]
        indexes = [
            models.Index(fields=["employee_code"]),
            models.Index(fields=["email"]),
            models.Index(fields=["status"]),
            models.Index(fields=["is_active"]),
            models.Index(fields=["hire_date"]),
        ]

    def __str__(self):
        if self.employee_code:
            return f"{self.employee_code} - {self.get_full_name()}"
        return self.username or f"User {self.id}"

    def clean(self):
        if (
            self.hire_date
            and self.termination_date
            and self.termination_date <= self.hire_date
        ):
            raise ValidationError("Termination date must be after hire date")

    def save(self, *args, **kwargs):
        if self.employee_code and not self.username:
            self.username = self.employee_code
        super().save(*args, **kwargs)

    def get_full_name(self):
        if self.middle_name:
            return f"{self.first_name} {self.middle_name} {self.last_name}".strip()
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def name(self):
        return self.get_full_name() or self.username or self.email or f"User {self.id}"

    @property
    def is_active_employee(self):
        return self.is_active and self.status == "ACTIVE"

    @property
    def primary_position(self):
        designation = self.primary_designation
        return designation.position if designation else None


class SystemConfiguration(models.Model):
    SETTING_TYPES = [
        ("SYSTEM", "System Setting"),
        ("SECURITY", "Security Setting"),
        ("NOTIFICATION", "Notification Setting"),
        ("LEAVE", "Leave Setting"),
        ("APPROVAL", "Approval Setting"),
    ]

    id = models.AutoField(primary_key=True)
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    setting_type = models.CharField(max_length=20, choices=SETTING_TYPES, default="SYSTEM")
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        CustomUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="updated_configurations",
    )

    objects = models.Manager()
    active = ActiveManager()

    class Meta:
        db_table = "system_configurations"
        ordering = ["key"]
        indexes = [
            models.Index(fields=["key"]),
            models.Index(fields=["setting_type"]),
        ]

    def __str__(self):
        return f"{self.key}: {self.value[:50]}"

    def save(self, *args, **kwargs):
        self.key = self.key.upper()
        super().save(*args, **kwargs)

    @classmethod
    def get_setting(cls, key, default=None):
        try:
            setting = cls.objects.get(key=key.upper(), is_active=True)
            return setting.value
        except cls.DoesNotExist:
            return default

    @classmethod
    def set_setting(cls, key, value, setting_type="SYSTEM", description=None, user=None):
        key = key.upper()
        setting, created = cls.objects.update_or_create(
            key=key,
            defaults={
                "value": str(value),
                "setting_type": setting_type,
                "description": description or f"System setting for {key}",
                "updated_by": user,
                "is_active": True,
            },
        )
        return setting

    @classmethod
    def get_int_setting(cls, key, default=0):
        try:
            value = cls.get_setting(key, str(default))
            return int(value)
        except (ValueError, TypeError):
            return default

    @classmethod
    def get_float_setting(cls, key, default=0.0):
        try:
            value = cls.get_setting(key, str(default))
            return float(value)
        except (ValueError, TypeError):
            return default

    @classmethod
    def get_bool_setting(cls, key, default=False):
        value = cls.get_setting(key, str(default).lower())
        return value.lower() in ["true", "1", "yes", "on", "enabled"]

    @classmethod
    def initialize_default_settings(cls):
        default_settings = {
            "LEAVE_MONTHLY_ACCRUAL_RATE": ("1.25", "LEAVE", "VL/SL days earned per full month of service"),
            "LEAVE_CARRY_OVER_CAP_DAYS": ("30", "LEAVE", "Maximum balance kept after accrual and carry-over"),
            "LEAVE_ACCRUAL_CUTOFF_DAY": ("15", "LEAVE", "Hires on or after this day skip accrual for their first month"),
            "LEAVE_MIN_VL_FOR_FORCED_LEAVE": ("25", "LEAVE", "VL balance above which forced leave applies"),
            "LEAVE_FORCED_LEAVE_DAYS": ("5", "LEAVE", "Forced leave days required per year"),
            "LEAVE_MEDICAL_CERT_DAYS": ("3", "LEAVE", "Sick leave days that require a medical certificate"),
            "LEAVE_MIN_REMAINING_VL": ("5", "LEAVE", "VL days that must remain after a request"),
            "APPROVAL_REMINDER_HOURS": ("24", "APPROVAL", "Hours between approval reminders"),
            "APPROVAL_ROUTING_CACHE_SECONDS": ("300", "APPROVAL", "Lifetime of cached approver lookups"),
            "APPROVAL_EMAIL_NOTIFICATIONS": ("false", "NOTIFICATION", "Email approvers in addition to in-app notifications"),
        }

        created_count = 0
        for key, (value, setting_type, description) in default_settings.items():
            setting, created = cls.objects.get_or_create(
                key=key,
                defaults={
                    "value": value,
                    "setting_type": setting_type,
                    "description": description,
                    "is_active": True,
                },
            )
            if created:
                created_count += 1

        return created_count


class AuditLog(models.Model):
    ACTION_TYPES = [
        ("CREATE", "Create"),
        ("UPDATE", "Update"),
        ("DELETE", "Delete"),
        ("APPROVE", "Approve"),
        ("REJECT", "Reject"),
        ("WITHDRAW", "Withdraw"),
        ("ESCALATE", "Escalate"),
        ("SYSTEM_CHANGE", "System Change"),
    ]

    MODULE_PREFIXES = {
        "employees": "EMP",
        "users": "USR",
        "requests": "REQ",
        "leaves": "LV",
        "organizational": "ORG",
        "positions": "POS",
        "request_types": "RTYP",
        "settings": "SET",
        "auth": "AUTH",
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference_number = models.CharField(max_length=40, unique=True, editable=False)
    user = models.ForeignKey(
        CustomUser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    performed_by = models.CharField(max_length=200, default="System")
    action = models.CharField(max_length=50, choices=ACTION_TYPES)
    module = models.CharField(max_length=50)
    entity_type = models.CharField(max_length=100)
    entity_id = models.CharField(max_length=100, blank=True, null=True)
    description = models.TextField(blank=True)
    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)
    snapshot = models.JSONField(null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"]),
            models.Index(fields=["action", "timestamp"]),
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["module"]),
        ]

    def __str__(self):
        return f"{self.reference_number} - {self.performed_by} - {self.action}"

    def save(self, *args, **kwargs):
        if not self.reference_number:
            self.reference_number = self.generate_reference_number(self.module)
        if self.user and self.performed_by == "System":
            self.performed_by = self.user.name
        super().save(*args, **kwargs)

    @classmethod
    def generate_reference_number(cls, module):
        prefix = cls.MODULE_PREFIXES.get((module or "").lower().replace("-", "_"), "LOG")
        stamp = timezone.now().strftime("%Y%m%d")
        return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8].upper()}"

    @classmethod
    def log_action(
        cls,
        user,
        action,
        module,
        entity_type,
        entity_id=None,
        description="",
        old_values=None,
        new_values=None,
        snapshot=None,
        ip_address=None,
    ):
        return cls.objects.create(
            user=user,
            action=action,
            module=module,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            old_values=old_values,
            new_values=new_values,
            snapshot=snapshot,
            ip_address=ip_address,
        )


class Notification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    recipient = models.ForeignKey(
        CustomUser, on_delete=models.CASCADE, related_name="notifications"
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    notification_type = models.CharField(max_length=50)
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "notifications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read"]),
            models.Index(fields=["notification_type"]),
        ]

    def __str__(self):
        return f"{self.recipient} - {self.title}"
