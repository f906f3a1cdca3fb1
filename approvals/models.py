from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone
from datetime import timedelta
import uuid


APPROVER_TYPES = [
    ("user", "Specific User"),
    ("role", "Role"),
    ("position", "Position"),
    ("hierarchical", "Next In Hierarchy"),
]

APPROVER_TARGET_FIELDS = {
    "user": "approver_id",
    "role": "approver_role_id",
    "position": "approver_position_id",
}


class RequestType(models.Model):
    APPROVAL_MODE_ANY = "any"
    APPROVAL_MODE_ALL = "all"
    APPROVAL_MODE_MAJORITY = "majority"

    APPROVAL_MODES = [
        (APPROVAL_MODE_ANY, "Any (One approver is sufficient)"),
        (APPROVAL_MODE_ALL, "All (All approvers must approve)"),
        (APPROVAL_MODE_MAJORITY, "Majority (More than half must approve)"),
    ]

    id = models.AutoField(primary_key=True)
    name = models.CharField(max_length=150, unique=True)
    description = models.TextField(blank=True, null=True)
    has_fulfillment = models.BooleanField(default=False)
    approval_steps = models.JSONField(default=list, blank=True)
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_request_types",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "request_types"
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if self.is_published and not self.published_at:
            self.published_at = timezone.now()
        super().save(*args, **kwargs)

    @property
    def is_leave_request(self):
        return self.name == settings.HR_SETTINGS.get("LEAVE_REQUEST_TYPE_NAME", "Leave Request")

    def requires_fulfillment(self):
        return self.has_fulfillment

    @staticmethod
    def normalize_approver(approver):
        approver_type = approver.get("approver_type")
        normalized = {
            "id": approver.get("id") or uuid.uuid4().hex,
            "approver_type": approver_type,
        }
        for type_name, field in APPROVER_TARGET_FIELDS.items():
            normalized[field] = approver.get(field) if approver_type == type_name else None

        if approver_type == "hierarchical":
            normalized["min_authority_level"] = approver.get("min_authority_level")
        return normalized

    @staticmethod
    def has_target(approver):
        if not approver["approver_type"]:
            return False
        if approver["approver_type"] == "hierarchical":
            return True
        return any(approver.get(field) for field in APPROVER_TARGET_FIELDS.values())

    def get_approval_steps(self):
        """
        Ordered, normalised approval steps.

        Steps written before multi-approver support carry a single
        approver directly on the step; those are lifted into ``approvers``.
        """
        raw_steps = sorted(
            self.approval_steps or [], key=lambda step: step.get("sort_order") or 0
        )

        steps = []
        for raw in raw_steps:
            step = dict(raw)
            approvers = list(step.get("approvers") or [])

            if not approvers and step.get("approver_type"):
                approvers = [
                    {
                        "approver_type": step.get("approver_type"),
                        "approver_id": step.get("approver_id"),
                        "approver_role_id": step.get("approver_role_id"),
                        "approver_position_id": step.get("approver_position_id"),
                        "min_authority_level": step.get("min_authority_level"),
                    }
                ]

            normalized = [self.normalize_approver(approver) for approver in approvers]
            step["approvers"] = [approver for approver in normalized if self.has_target(approver)]
            step["approval_mode"] = step.get("approval_mode") or self.APPROVAL_MODE_ANY
            step["sla_hours"] = step.get("sla_hours")
            steps.append(step)

        return steps


class RequestField(models.Model):
    FIELD_TYPES = [
        ("text", "Text"),
        ("textarea", "Text Area"),
        ("number", "Number"),
        ("date", "Date"),
        ("select", "Select"),
        ("radio", "Radio"),
        ("checkbox", "Checkbox"),
        ("file", "File"),
    ]

    id = models.AutoField(primary_key=True)
    request_type = models.ForeignKey(
        RequestType, on_delete=models.CASCADE, related_name="fields"
    )
    field_key = models.CharField(max_length=100)
    label = models.CharField(max_length=200)
    field_type = models.CharField(max_length=20, choices=FIELD_TYPES, default="text")
    description = models.TextField(blank=True, null=True)
    options = models.JSONField(default=list, blank=True)
    is_required = models.BooleanField(default=False)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "request_fields"
        ordering = ["sort_order", "id"]
        unique_together = ["request_type", "field_key"]

    def __str__(self):
        return f"{self.request_type.name}: {self.label}"


def generate_reference_code():
    return f"REQ-{timezone.localdate().strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


class RequestSubmission(models.Model):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_FULFILLMENT = "fulfillment"
    STATUS_COMPLETED = "completed"
    STATUS_WITHDRAWN = "withdrawn"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_FULFILLMENT, "Awaiting Fulfillment"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_WITHDRAWN, "Withdrawn"),
    ]

    id = models.AutoField(primary_key=True)
    request_type = models.ForeignKey(
        RequestType, on_delete=models.PROTECT, related_name="submissions"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="request_submissions",
    )
    reference_code = models.CharField(
        max_length=30, unique=True, default=generate_reference_code, editable=False
    )
    answers = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    current_step_index = models.PositiveIntegerField(null=True, blank=True)
    approval_state = models.JSONField(default=dict, blank=True)
    submitted_at = models.DateTimeField(default=timezone.now)
    withdrawn_at = models.DateTimeField(null=True, blank=True)
    withdrawal_reason = models.TextField(blank=True, null=True)
    fulfilled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "request_submissions"
        ordering = ["-submitted_at"]
        indexes = [
            models.Index(fields=["user", "status"]),
            models.Index(fields=["request_type", "status"]),
            models.Index(fields=["reference_code"]),
        ]

    def __str__(self):
        return f"{self.reference_code} - {self.request_type.name}"

    def requires_fulfillment(self):
        return self.request_type.requires_fulfillment()

    def can_be_withdrawn(self):
        return self.status == self.STATUS_PENDING


class RequestApprovalAction(models.Model):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CLOSED = "closed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_CLOSED, "Closed"),
    ]

    id = models.AutoField(primary_key=True)
    submission = models.ForeignKey(
        RequestSubmission, on_delete=models.CASCADE, related_name="approval_actions"
    )
    step_index = models.PositiveIntegerField(default=0)
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approval_actions",
    )
    approver_role = models.ForeignKey(
        "accounts.Role",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approval_actions",
    )
    approver_position = models.ForeignKey(
        "organization.Position",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approval_actions",
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True, null=True)
    acted_at = models.DateTimeField(null=True, blank=True)
    meta = models.JSONField(default=dict, blank=True)

    due_at = models.DateTimeField(null=True, blank=True)
    reminded_at = models.DateTimeField(null=True, blank=True)
    reminder_count = models.PositiveIntegerField(default=0)

    is_escalated = models.BooleanField(default=False)
    escalated_at = models.DateTimeField(null=True, blank=True)
    escalated_from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escalated_approval_actions",
    )
    delegated_from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="delegated_approval_actions",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "request_approval_actions"
        ordering = ["step_index", "id"]
        indexes = [
            models.Index(fields=["submission", "step_index", "status"]),
            models.Index(fields=["approver", "status"]),
            models.Index(fields=["status", "due_at"]),
        ]

    def __str__(self):
        return f"{self.submission.reference_code} step {self.step_index}: {self.status}"

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    def is_overdue(self):
        return bool(self.is_pending and self.due_at and self.due_at < timezone.now())

    def is_due_soon(self, hours=24):
        now = timezone.now()
        return bool(
            self.is_pending
            and self.due_at
            and self.due_at > now
            and self.due_at <= now + timedelta(hours=hours)
        )


class ApprovalDelegationQuerySet(models.QuerySet):
    def effective(self, at=None):
        at = at or timezone.now()
        return self.filter(is_active=True, starts_at__lte=at).filter(
            Q(ends_at__isnull=True) | Q(ends_at__gte=at)
        )


class ApprovalDelegation(models.Model):
    id = models.AutoField(primary_key=True)
    delegator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="delegations_given",
    )
    delegate = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="delegations_received",
    )
    starts_at = models.DateTimeField(default=timezone.now)
    ends_at = models.DateTimeField(null=True, blank=True)
    reason = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_delegations",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ApprovalDelegationQuerySet.as_manager()

    class Meta:
        db_table = "approval_delegations"
        ordering = ["-starts_at"]
        indexes = [
            models.Index(fields=["delegator", "is_active"]),
            models.Index(fields=["delegate", "is_active"]),
        ]

    def __str__(self):
        return f"{self.delegator} -> {self.delegate}"

    @property
    def is_effective(self):
        if not self.is_active:
            return False

        now = timezone.now()
        if self.starts_at > now:
            return False
        if self.ends_at and self.ends_at < now:
            return False
        return True

    @classmethod
    def get_active_delegate_for(cls, user_id):
        delegation = (
            cls.objects.effective()
            .filter(delegator_id=user_id)
            .select_related("delegate")
            .first()
        )
        return delegation.delegate if delegation else None

    @classmethod
    def get_delegators_for(cls, user_id):
        return list(
            cls.objects.effective().filter(delegate_id=user_id).values_list(
                "delegator_id", flat=True
            )
        )

    @classmethod
    def can_act_on_behalf_of(cls, acting_user_id, original_user_id):
        if acting_user_id == original_user_id:
            return True
        return cls.objects.effective().filter(
            delegator_id=original_user_id, delegate_id=acting_user_id
        ).exists()


class ApprovalComment(models.Model):
    TYPE_COMMENT = "comment"
    TYPE_APPROVAL_NOTE = "approval_note"
    TYPE_REJECTION_NOTE = "rejection_note"
    TYPE_SYSTEM = "system"
    TYPE_WITHDRAWAL = "withdrawal"
    TYPE_ESCALATION = "escalation"

    COMMENT_TYPES = [
        (TYPE_COMMENT, "Comment"),
        (TYPE_APPROVAL_NOTE, "Approval Note"),
        (TYPE_REJECTION_NOTE, "Rejection Note"),
        (TYPE_SYSTEM, "System"),
        (TYPE_WITHDRAWAL, "Withdrawal"),
        (TYPE_ESCALATION, "Escalation"),
    ]

    id = models.AutoField(primary_key=True)
    submission = models.ForeignKey(
        RequestSubmission, on_delete=models.CASCADE, related_name="comments"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approval_comments",
    )
    approval_action = models.ForeignKey(
        RequestApprovalAction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="comments",
    )
    comment = models.TextField()
    comment_type = models.CharField(max_length=20, choices=COMMENT_TYPES, default=TYPE_COMMENT)
    is_internal = models.BooleanField(default=False)
    attachments = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "approval_comments"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["submission", "comment_type"]),
        ]

    def __str__(self):
        return f"{self.submission.reference_code} [{self.comment_type}]"

    @classmethod
    def create_system_comment(cls, submission, comment, user=None, approval_action=None):
        return cls.objects.create(
            submission=submission,
            user=user,
            approval_action=approval_action,
            comment=comment,
            comment_type=cls.TYPE_SYSTEM,
            is_internal=True,
        )

    @classmethod
    def create_approval_note(cls, submission, user, comment, approval_action, is_rejection=False):
        return cls.objects.create(
            submission=submission,
            user=user,
            approval_action=approval_action,
            comment=comment,
            comment_type=cls.TYPE_REJECTION_NOTE if is_rejection else cls.TYPE_APPROVAL_NOTE,
            is_internal=False,
        )
