from django.db.models.signals import post_save, pre_save, post_delete
from django.dispatch import receiver
from django.contrib.auth import get_user_model
from .models import EmployeeDesignation, EmployeeDesignationHistory
from .services import ApprovalRoutingService
import logging

logger = logging.getLogger(__name__)

User = get_user_model()


def set_primary_pointer(employee_id, designation):
    User.objects.filter(pk=employee_id).update(
        primary_designation=designation
    )


def sync_primary_designation(designation):
    employee = designation.employee

    if designation.is_primary:
        EmployeeDesignation.objects.filter(
            employee_id=designation.employee_id, is_primary=True
        ).exclude(pk=designation.pk).update(is_primary=False)

        if employee.primary_designation_id != designation.pk:
            set_primary_pointer(designation.employee_id, designation)
            employee.primary_designation = designation

    elif employee.primary_designation_id == designation.pk:
        replacement = (
            EmployeeDesignation.objects.filter(
                employee_id=designation.employee_id, is_primary=True
            )
            .exclude(pk=designation.pk)
            .first()
        )
        set_primary_pointer(designation.employee_id, replacement)
        employee.primary_designation = replacement


def record_designation_history(designation):
    old_values = getattr(designation, "_old_values", None)
    if not old_values:
        return []

    entries = []
    for field in EmployeeDesignation.TRACKED_FIELDS:
        old_value = old_values.get(field)
        new_value = getattr(designation, field)
        if old_value != new_value:
            entries.append(
                EmployeeDesignationHistory(
                    designation=designation,
                    field_changed=field.removesuffix("_id"),
                    old_value=None if old_value is None else str(old_value),
                    new_value=None if new_value is None else str(new_value),
                    changed_by=getattr(designation, "_changed_by", None),
                )
            )

    if entries:
        EmployeeDesignationHistory.objects.bulk_create(entries)
    return entries


@receiver(pre_save, sender=EmployeeDesignation)
def capture_designation_changes(sender, instance, **kwargs):
    if instance.pk:
        try:
            old_instance = EmployeeDesignation.objects.get(pk=instance.pk)
            instance._old_values = {
                field: getattr(old_instance, field)
                for field in EmployeeDesignation.TRACKED_FIELDS
            }
        except EmployeeDesignation.DoesNotExist:
            pass


@receiver(post_save, sender=EmployeeDesignation)
def handle_designation_saved(sender, instance, created, **kwargs):
    sync_primary_designation(instance)

    unit_ids = {instance.unit_id}
    if not created:
        record_designation_history(instance)
        old_values = getattr(instance, "_old_values", None) or {}
        unit_ids.add(old_values.get("unit_id"))

    ApprovalRoutingService.invalidate_cache_for(
        instance.employee_id, [unit_id for unit_id in unit_ids if unit_id]
    )


@receiver(post_delete, sender=EmployeeDesignation)
def handle_designation_deleted(sender, instance, **kwargs):
    if instance.is_primary:
        replacement = (
            EmployeeDesignation.objects.active()
            .filter(employee_id=instance.employee_id)
            .exclude(pk=instance.pk)
            .order_by("-start_date", "id")
            .first()
        )
        if replacement:
            EmployeeDesignation.objects.filter(pk=replacement.pk).update(is_primary=True)
            logger.info(
                f"Promoted designation {replacement.pk} to primary for employee {instance.employee_id}"
            )
        set_primary_pointer(instance.employee_id, replacement)

    ApprovalRoutingService.invalidate_cache_for(
        instance.employee_id, [instance.unit_id] if instance.unit_id else []
    )
