from rest_framework import serializers
from django.contrib.auth import get_user_model
from .models import RequestSubmission, RequestApprovalAction, ApprovalComment

User = get_user_model()


class UserBasicSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "employee_code", "full_name", "email"]
        read_only_fields = fields


class RequestApprovalActionSerializer(serializers.ModelSerializer):
    approver_name = serializers.CharField(source="approver.name", read_only=True, default=None)
    approver_role_name = serializers.CharField(
        source="approver_role.display_name", read_only=True, default=None
    )
    approver_position_name = serializers.CharField(
        source="approver_position.pos_name", read_only=True, default=None
    )
    delegated_from_name = serializers.CharField(
        source="delegated_from_user.name", read_only=True, default=None
    )
    escalated_from_name = serializers.CharField(
        source="escalated_from_user.name", read_only=True, default=None
    )

    class Meta:
        model = RequestApprovalAction
        fields = [
            "id",
            "step_index",
            "approver",
            "approver_name",
            "approver_role",
            "approver_role_name",
            "approver_position",
            "approver_position_name",
            "status",
            "notes",
            "acted_at",
            "due_at",
            "reminder_count",
            "is_escalated",
            "escalated_at",
            "escalated_from_name",
            "delegated_from_name",
        ]
        read_only_fields = fields


class ApprovalCommentSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source="user.name", read_only=True, default="System")

    class Meta:
        model = ApprovalComment
        fields = [
            "id",
            "user",
            "user_name",
            "approval_action",
            "comment",
            "comment_type",
            "is_internal",
            "attachments",
            "created_at",
        ]
        read_only_fields = ["id", "user_name", "created_at"]


class RequestSubmissionSerializer(serializers.ModelSerializer):
    request_type_name = serializers.CharField(source="request_type.name", read_only=True)
    requester = UserBasicSerializer(source="user", read_only=True)
    requester_name = serializers.CharField(source="user.name", read_only=True)
    approval_actions = RequestApprovalActionSerializer(many=True, read_only=True)

    class Meta:
        model = RequestSubmission
        fields = [
            "id",
            "reference_code",
            "request_type",
            "request_type_name",
            "requester",
            "requester_name",
            "status",
            "current_step_index",
            "answers",
            "approval_state",
            "approval_actions",
            "submitted_at",
            "withdrawn_at",
            "fulfilled_at",
        ]
        read_only_fields = fields


class NotificationPayloadSerializer(serializers.ModelSerializer):
    """Flat submission summary stored in ``Notification.data``."""

    submission_id = serializers.IntegerField(source="id", read_only=True)
    request_type = serializers.CharField(source="request_type.name", read_only=True)
    requester_name = serializers.CharField(source="user.name", read_only=True)

    class Meta:
        model = RequestSubmission
        fields = ["submission_id", "reference_code", "request_type", "requester_name", "status"]
        read_only_fields = fields
