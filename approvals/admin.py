from django.contrib import admin
from .models import (
    RequestType,
    RequestField,
    RequestSubmission,
    RequestApprovalAction,
    ApprovalDelegation,
    ApprovalComment,
)


class RequestFieldInline(admin.TabularInline):
    model = RequestField
    extra = 0
    fields = ["field_key", "label", "field_type", "is_required", "sort_order"]


@admin.register(RequestType)
class RequestTypeAdmin(admin.ModelAdmin):
    list_display = ["name", "has_fulfillment", "is_published", "published_at", "created_at"]
    list_filter = ["has_fulfillment", "is_published"]
    search_fields = ["name", "description"]
    readonly_fields = ["published_at", "created_at", "updated_at"]
    inlines = [RequestFieldInline]


class RequestApprovalActionInline(admin.TabularInline):
    model = RequestApprovalAction
    extra = 0
    fields = [
        "step_index",
        "approver",
        "approver_role",
        "approver_position",
        "status",
        "due_at",
        "acted_at",
        "is_escalated",
    ]
    readonly_fields = ["acted_at"]


@admin.register(RequestSubmission)
class RequestSubmissionAdmin(admin.ModelAdmin):
    list_display = [
        "reference_code",
        "request_type",
        "user",
        "status",
        "current_step_index",
        "submitted_at",
    ]
    list_filter = ["status", "request_type"]
    search_fields = ["reference_code", "user__employee_code", "user__first_name", "user__last_name"]
    readonly_fields = ["reference_code", "submitted_at", "updated_at"]
    date_hierarchy = "submitted_at"
    inlines = [RequestApprovalActionInline]


@admin.register(RequestApprovalAction)
class RequestApprovalActionAdmin(admin.ModelAdmin):
    list_display = [
        "submission",
        "step_index",
        "approver",
        "status",
        "due_at",
        "reminder_count",
        "is_escalated",
    ]
    list_filter = ["status", "is_escalated"]
    search_fields = ["submission__reference_code", "approver__employee_code"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(ApprovalDelegation)
class ApprovalDelegationAdmin(admin.ModelAdmin):
    list_display = ["delegator", "delegate", "starts_at", "ends_at", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["delegator__employee_code", "delegate__employee_code"]


@admin.register(ApprovalComment)
class ApprovalCommentAdmin(admin.ModelAdmin):
    list_display = ["submission", "user", "comment_type", "is_internal", "created_at"]
    list_filter = ["comment_type", "is_internal"]
    search_fields = ["submission__reference_code", "comment"]
