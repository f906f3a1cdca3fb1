from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.utils.translation import gettext_lazy as _
from .models import CustomUser, Role, SystemConfiguration, AuditLog, Notification

@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    list_display = ('employee_code', 'username', 'email', 'first_name', 'last_name',
                   'role', 'primary_designation', 'status', 'is_active')
    list_filter = ('is_active', 'status', 'role', 'gender', 'two_factor_enabled')
    search_fields = ('username', 'employee_code', 'email', 'first_name', 'last_name')
    ordering = ('employee_code',)
    raw_id_fields = ('primary_designation',)

    fieldsets = (
        (None, {'fields': ('username', 'employee_code', 'password')}),
        (_('Personal info'), {'fields': ('first_name', 'last_name', 'middle_name', 'email', 'gender')}),
        (_('Employment details'), {'fields': ('role', 'primary_designation', 'hire_date',
                                            'termination_date', 'status')}),
        (_('Two-factor'), {'fields': ('two_factor_enabled', 'two_factor_confirmed_at')}),
        (_('Permissions'), {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
        }),
        (_('Important dates'), {'fields': ('last_login', 'date_joined')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('employee_code', 'email', 'password1', 'password2'),
        }),
        (_('Employment details'), {'fields': ('first_name', 'last_name', 'gender', 'role',
                                            'hire_date', 'status')}),
    )

    readonly_fields = ('date_joined', 'last_login', 'two_factor_confirmed_at')


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('name', 'display_name', 'level', 'can_approve_leave', 'is_active')
    list_filter = ('is_active', 'can_approve_leave')
    search_fields = ('name', 'display_name')


@admin.register(SystemConfiguration)
class SystemConfigurationAdmin(admin.ModelAdmin):
    list_display = ('key', 'value', 'setting_type', 'is_active', 'updated_at')
    list_filter = ('setting_type', 'is_active')
    search_fields = ('key', 'description')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('reference_number', 'performed_by', 'action', 'module', 'entity_type',
                   'entity_id', 'timestamp')
    list_filter = ('action', 'module')
    search_fields = ('reference_number', 'entity_id', 'description')
    readonly_fields = [field.name for field in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('recipient', 'title', 'notification_type', 'is_read', 'created_at')
    list_filter = ('notification_type', 'is_read')
    search_fields = ('title', 'message')
