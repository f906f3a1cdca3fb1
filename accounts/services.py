from django.conf import settings
from django.core.exceptions import ValidationError
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import re

import pyotp

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditLogService:
    SENSITIVE_FIELDS = {
        "password",
        "password_confirmation",
        "token",
        "api_token",
        "remember_token",
        "secret",
        "private_key",
        "access_token",
        "refresh_token",
        "two_factor_secret",
    }

    ACTION_VERBS = {
        "CREATE": "Created",
        "UPDATE": "Updated",
        "DELETE": "Deleted",
        "APPROVE": "Approved",
        "REJECT": "Rejected",
        "WITHDRAW": "Withdrew",
        "ESCALATE": "Escalated",
    }

    @staticmethod
    def _is_date_key(key: str) -> bool:
        key = key.lower()
        return key.endswith("_date") or key.endswith("_at") or key in ("date", "as_of")

    @staticmethod
    def sanitize(values: Any) -> Any:
        if isinstance(values, dict):
            sanitized = {}
            for key, value in values.items():
                if str(key).lower() in AuditLogService.SENSITIVE_FIELDS:
                    sanitized[key] = "[REDACTED]"
                elif isinstance(value, (date, datetime)) and AuditLogService._is_date_key(str(key)):
                    sanitized[key] = value.strftime("%Y-%m-%d")
                else:
                    sanitized[key] = AuditLogService.sanitize(value)
            return sanitized
        if isinstance(values, (list, tuple)):
            return [AuditLogService.sanitize(item) for item in values]
        if isinstance(values, (date, datetime)):
            return values.isoformat()
        if isinstance(values, Decimal):
            return str(values)
        return values

    @staticmethod
    def log(
        action: str,
        module: str,
        entity_type: str,
        entity_id=None,
        description: Optional[str] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        snapshot: Optional[Dict] = None,
        user=None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        if not description:
            verb = AuditLogService.ACTION_VERBS.get(action, action.title())
            description = f"{verb} {entity_type} (ID: {entity_id})"

        return AuditLog.log_action(
            user=user,
            action=action,
            module=module,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            old_values=AuditLogService.sanitize(old_values) if old_values else None,
            new_values=AuditLogService.sanitize(new_values) if new_values else None,
            snapshot=AuditLogService.sanitize(snapshot) if snapshot else None,
            ip_address=ip_address,
        )

    @staticmethod
    def log_created(module, entity_type, entity_id, new_values=None, description=None, user=None):
        return AuditLogService.log(
            "CREATE", module, entity_type, entity_id,
            description=description, new_values=new_values, user=user,
        )

    @staticmethod
    def log_updated(module, entity_type, entity_id, old_values=None, new_values=None, description=None, user=None):
        return AuditLogService.log(
            "UPDATE", module, entity_type, entity_id,
            description=description, old_values=old_values, new_values=new_values, user=user,
        )

    @staticmethod
    def log_deleted(module, entity_type, entity_id, snapshot=None, description=None, user=None):
        return AuditLogService.log(
            "DELETE", module, entity_type, entity_id,
            description=description, snapshot=snapshot, user=user,
        )

    @staticmethod
    def log_approved(module, entity_type, entity_id, new_values=None, description=None, user=None):
        return AuditLogService.log(
            "APPROVE", module, entity_type, entity_id,
            description=description, new_values=new_values, user=user,
        )

    @staticmethod
    def log_rejected(module, entity_type, entity_id, new_values=None, description=None, user=None):
        return AuditLogService.log(
            "REJECT", module, entity_type, entity_id,
            description=description, new_values=new_values, user=user,
        )


class TwoFactorVerificationService:
    """TOTP checks guarding approve/reject and other sensitive actions."""

    CODE_PATTERN = re.compile(r"^\d{6}$")

    @staticmethod
    def is_required() -> bool:
        return settings.HR_SETTINGS.get("TWO_FACTOR_REQUIRED_FOR_APPROVALS", True)

    @staticmethod
    def generate_secret(user) -> str:
        secret = pyotp.random_base32()
        user.two_factor_secret = secret
        user.save(update_fields=["two_factor_secret"])
        return secret

    @staticmethod
    def provisioning_uri(user) -> str:
        issuer = settings.HR_SETTINGS.get("TWO_FACTOR_ISSUER", "UniHR")
        return pyotp.TOTP(user.two_factor_secret).provisioning_uri(
            name=user.email or user.username, issuer_name=issuer
        )

    @staticmethod
    def require_two_factor_enabled(user):
        if not user.two_factor_enabled or not user.two_factor_secret:
            raise ValidationError(
                "You must enable two-factor authentication to use this feature. "
                "Please set it up in Settings."
            )

    @staticmethod
    def verify_code(user, code: str) -> bool:
        if not user.two_factor_secret:
            return False
        return pyotp.TOTP(user.two_factor_secret).verify(code, valid_window=1)

    @staticmethod
    def validate_for_sensitive_action(user, code):
        TwoFactorVerificationService.require_two_factor_enabled(user)

        if not code or not isinstance(code, str):
            raise ValidationError("A verification code is required to perform this action.")

        code = code.strip()
        if not TwoFactorVerificationService.CODE_PATTERN.match(code):
            raise ValidationError("Please enter a valid 6-digit verification code.")

        if not TwoFactorVerificationService.verify_code(user, code):
            logger.warning(f"Invalid two-factor code submitted by user {user.id}")
            raise ValidationError("The verification code is invalid or has expired.")

        return True
