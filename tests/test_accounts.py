import pyotp
import pytest
from datetime import date, datetime
from decimal import Decimal
from django.core.exceptions import ValidationError
from accounts.models import AuditLog, CustomUser, SystemConfiguration
from accounts.services import AuditLogService, TwoFactorVerificationService
from tests.conftest import UserFactory

pytestmark = pytest.mark.django_db


class TestAuditLogService:
    def test_sensitive_fields_redacted(self):
        sanitized = AuditLogService.sanitize(
            {"password": "hunter2", "Two_Factor_Secret": "ABC", "nested": {"token": "t", "name": "x"}}
        )
        assert sanitized == {
            "password": "[REDACTED]",
            "Two_Factor_Secret": "[REDACTED]",
            "nested": {"token": "[REDACTED]", "name": "x"},
        }

    def test_date_keys_formatted(self):
        sanitized = AuditLogService.sanitize(
            {
                "start_date": date(2026, 3, 2),
                "approved_at": datetime(2026, 3, 2, 14, 30),
                "effective": date(2026, 3, 2),
                "days": Decimal("2.50"),
            }
        )
        assert sanitized["start_date"] == "2026-03-02"
        assert sanitized["approved_at"] == "2026-03-02"
        assert sanitized["effective"] == "2026-03-02"
        assert sanitized["days"] == "2.50"

    def test_reference_prefix_per_module(self, db):
        user = UserFactory(first_name="Ana", last_name="Reyes")

        entry = AuditLogService.log_created("leaves", "LeaveBalance", 42, new_values={"x": 1}, user=user)

        assert entry.reference_number.startswith("LV-")
        assert entry.entity_id == "42"
        assert entry.performed_by == "Ana Reyes"
        assert entry.description == "Created LeaveBalance (ID: 42)"

    def test_unknown_module_prefix(self, db):
        entry = AuditLogService.log("UPDATE", "misc", "Thing")
        assert entry.reference_number.startswith("LOG-")
        assert entry.performed_by == "System"
        assert AuditLog.objects.count() == 1


class TestTwoFactorVerificationService:
    @pytest.fixture
    def user(self, db):
        user = UserFactory(two_factor_enabled=True)
        TwoFactorVerificationService.generate_secret(user)
        return user

    def test_required_by_default(self, settings):
        settings.HR_SETTINGS = {}
        assert TwoFactorVerificationService.is_required() is True

    def test_provisioning_uri(self, user, settings):
        settings.HR_SETTINGS = {**settings.HR_SETTINGS, "TWO_FACTOR_ISSUER": "State University"}
        uri = TwoFactorVerificationService.provisioning_uri(user)
        assert uri.startswith("otpauth://totp/")
        assert "issuer=State%20University" in uri

    def test_valid_code(self, user):
        code = pyotp.TOTP(user.two_factor_secret).now()
        assert TwoFactorVerificationService.validate_for_sensitive_action(user, code) is True

    def test_wrong_code(self, user):
        code = pyotp.TOTP(user.two_factor_secret).now()
        wrong = f"{(int(code) + 500000) % 1000000:06d}"

        with pytest.raises(ValidationError, match="invalid or has expired"):
            TwoFactorVerificationService.validate_for_sensitive_action(user, wrong)

    def test_missing_code(self, user):
        with pytest.raises(ValidationError, match="verification code is required"):
            TwoFactorVerificationService.validate_for_sensitive_action(user, None)

    def test_not_enabled(self, db):
        with pytest.raises(ValidationError, match="must enable two-factor"):
            TwoFactorVerificationService.validate_for_sensitive_action(UserFactory(), "123456")


class TestSystemConfiguration:
    def test_typed_getters(self, db):
        SystemConfiguration.set_setting("approval_email_notifications", "yes")
        SystemConfiguration.set_setting("LEAVE_MONTHLY_ACCRUAL_RATE", "1.5")

        assert SystemConfiguration.get_bool_setting("APPROVAL_EMAIL_NOTIFICATIONS") is True
        assert SystemConfiguration.get_float_setting("LEAVE_MONTHLY_ACCRUAL_RATE") == 1.5
        assert SystemConfiguration.get_int_setting("MISSING_KEY", 7) == 7


class TestCustomUserManager:
    def test_username_falls_back_to_employee_code(self, db):
        user = CustomUser.objects.create_user(
            email="Admin@UniHR.Test", password="s3cret-pass", employee_code="HR-0001"
        )

        assert user.username == "HR-0001"
        assert user.email == "Admin@unihr.test"
        assert user.check_password("s3cret-pass")

    def test_username_required(self, db):
        with pytest.raises(ValueError):
            CustomUser.objects.create_user(email="nobody@unihr.test")

    def test_superuser(self, db):
        admin = CustomUser.objects.create_superuser("root", "root@unihr.test", "s3cret-pass")

        assert admin.is_staff and admin.is_superuser
        assert admin.is_active_employee


def test_log_deleted_keeps_snapshot(db):
    entry = AuditLogService.log_deleted(
        "employees", "EmployeeDesignation", 7, snapshot={"unit": "Physics", "end_date": date(2026, 1, 31)}
    )

    assert entry.action == "DELETE"
    assert entry.reference_number.startswith("EMP-")
    assert entry.snapshot == {"unit": "Physics", "end_date": "2026-01-31"}
    assert entry.description == "Deleted EmployeeDesignation (ID: 7)"
