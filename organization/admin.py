from django.contrib import admin
from .models import (
    Sector,
    Unit,
    Position,
    UnitPosition,
    EmployeeDesignation,
    EmployeeDesignationHistory,
)


@admin.register(Sector)
class SectorAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    search_fields = ("code", "name")


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "unit_type", "sector", "parent_unit", "is_active")
    list_filter = ("unit_type", "sector", "is_active")
    search_fields = ("code", "name")
    raw_id_fields = ("parent_unit",)


@admin.register(Position)
class PositionAdmin(admin.ModelAdmin):
    list_display = ("pos_code", "pos_name", "position_type", "sector", "authority_level")
    list_filter = ("position_type", "sector")
    search_fields = ("pos_code", "pos_name")


@admin.register(UnitPosition)
class UnitPositionAdmin(admin.ModelAdmin):
    list_display = ("unit_type", "position", "is_active")
    list_filter = ("unit_type", "is_active")


class EmployeeDesignationHistoryInline(admin.TabularInline):
    model = EmployeeDesignationHistory
    extra = 0
    readonly_fields = ("field_changed", "old_value", "new_value", "changed_by", "changed_at")
    can_delete = False


@admin.register(EmployeeDesignation)
class EmployeeDesignationAdmin(admin.ModelAdmin):
    list_display = ("employee", "position", "unit", "is_primary", "start_date", "end_date")
    list_filter = ("is_primary", "unit__unit_type", "position__sector")
    search_fields = ("employee__employee_code", "employee__last_name", "position__pos_name")
    raw_id_fields = ("employee", "unit", "position")
    inlines = [EmployeeDesignationHistoryInline]

    def save_model(self, request, obj, form, change):
        obj._changed_by = request.user
        super().save_model(request, obj, form, change)
