from django.contrib import admin
from .models import (
    Holiday,
    LeaveType,
    LeaveBalance,
    LeaveAccrual,
    LeaveCreditsHistory,
    LeaveRequest,
)


@admin.register(Holiday)
class HolidayAdmin(admin.ModelAdmin):
    list_display = ["name", "date", "holiday_type", "is_active"]
    list_filter = ["holiday_type", "is_active"]
    search_fields = ["name"]
    date_hierarchy = "date"


@admin.register(LeaveType)
class LeaveTypeAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "code",
        "gender_restriction",
        "uses_credits_from",
        "is_special_leave",
        "can_carry_over",
        "is_active",
    ]
    list_filter = ["is_special_leave", "can_carry_over", "gender_restriction", "is_active"]
    search_fields = ["name", "code", "legal_basis"]
    ordering = ["sort_order", "name"]

    fieldsets = (
        (
            "Leave Type Information",
            {"fields": ("name", "code", "description", "color", "sort_order", "is_active")},
        ),
        (
            "Limits",
            {
                "fields": (
                    ("max_days_per_request", "max_days_per_year"),
                    ("min_notice_days",),
                    ("can_carry_over", "max_carry_over_days"),
                )
            },
        ),
        (
            "Eligibility & Credits",
            {
                "fields": (
                    "gender_restriction",
                    "uses_credits_from",
                    "is_special_leave",
                    "is_paid",
                    "is_monetizable",
                    "commutation_applicable",
                )
            },
        ),
        (
            "Documents",
            {
                "fields": (
                    "requires_approval",
                    "requires_medical_certificate",
                    "required_document",
                    "legal_basis",
                )
            },
        ),
    )


@admin.register(LeaveBalance)
class LeaveBalanceAdmin(admin.ModelAdmin):
    list_display = [
        "employee",
        "leave_type",
        "year",
        "entitled",
        "used",
        "pending",
        "balance",
        "carried_over",
        "is_manually_set",
    ]
    list_filter = ["year", "leave_type", "is_manually_set"]
    search_fields = ["employee__employee_code", "employee__first_name", "employee__last_name"]
    raw_id_fields = ["employee"]
    readonly_fields = ["balance", "updated_at"]


@admin.register(LeaveAccrual)
class LeaveAccrualAdmin(admin.ModelAdmin):
    list_display = [
        "reference_number",
        "employee",
        "leave_type",
        "accrual_type",
        "amount",
        "accrual_date",
        "created_by",
    ]
    list_filter = ["accrual_type", "leave_type"]
    search_fields = ["reference_number", "employee__employee_code", "notes"]
    raw_id_fields = ["employee", "created_by"]
    date_hierarchy = "accrual_date"


@admin.register(LeaveCreditsHistory)
class LeaveCreditsHistoryAdmin(admin.ModelAdmin):
    list_display = ["employee", "leave_type", "period", "earned", "used", "balance", "as_of_date"]
    list_filter = ["leave_type"]
    search_fields = ["employee__employee_code", "period"]
    raw_id_fields = ["employee"]


@admin.register(LeaveRequest)
class LeaveRequestAdmin(admin.ModelAdmin):
    list_display = ["employee", "leave_type", "start_date", "end_date", "days", "status"]
    list_filter = ["status", "leave_type"]
    search_fields = ["employee__employee_code", "employee__first_name", "employee__last_name"]
    raw_id_fields = ["employee", "approved_by", "rejected_by", "request_submission"]
    readonly_fields = ["approved_at", "rejected_at", "created_at", "updated_at"]
    date_hierarchy = "start_date"
