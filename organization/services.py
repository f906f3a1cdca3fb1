from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import transaction
from accounts.models import SystemConfiguration
from accounts.services import AuditLogService
from .models import EmployeeDesignation, UnitPosition
import logging

logger = logging.getLogger(__name__)

User = get_user_model()

CACHE_MISS = object()
MAX_CACHED_LEVEL = 10


def routing_cache_key(employee_id, level=None):
    return f"approval_next:{employee_id}:{level or 'auto'}"


class ApprovalRoutingService:
    """
    Finds approvers above a requester in the org structure.

    Lookup order: same unit, parent units (nearest first), system-wide
    positions, then the requester's sector. Within each scope the lowest
    sufficient authority level wins.
    """

    @staticmethod
    def _candidates(level, requester):
        return (
            EmployeeDesignation.objects.active()
            .primary()
            .filter(position__authority_level__gte=level, employee__is_active=True)
            .exclude(employee=requester)
            .select_related("employee", "position", "unit")
            .order_by("position__authority_level", "id")
        )

    @staticmethod
    def _routing_context(requester):
        designation = requester.primary_designation
        if not designation or not designation.position_id or not designation.unit_id:
            return None
        return designation

    @staticmethod
    def _required_level(designation, min_authority_level):
        if min_authority_level:
            return min_authority_level
        return (designation.position.authority_level or 1) + 1

    @staticmethod
    def _scopes(designation, level, requester):
        candidates = ApprovalRoutingService._candidates(level, requester)
        unit = designation.unit

        yield "unit", candidates.filter(unit=unit)

        for ancestor in unit.get_ancestors():
            yield "parent_unit", candidates.filter(unit=ancestor)

        yield "system_wide", candidates.filter(position__sector__isnull=True)

        if unit.sector_id:
            yield "sector", candidates.filter(unit__sector_id=unit.sector_id)

    @staticmethod
    def find_next_approver(requester, min_authority_level=None):
        cache_key = routing_cache_key(requester.id, min_authority_level)
        cached = cache.get(cache_key, CACHE_MISS)
        if cached is not CACHE_MISS:
            if cached is None:
                return None
            return User.objects.filter(pk=cached).first()

        approver = ApprovalRoutingService._resolve_next_approver(
            requester, min_authority_level
        )

        timeout = SystemConfiguration.get_int_setting("APPROVAL_ROUTING_CACHE_SECONDS", 300)
        cache.set(cache_key, approver.id if approver else None, timeout)
        return approver

    @staticmethod
    def _resolve_next_approver(requester, min_authority_level=None):
        designation = ApprovalRoutingService._routing_context(requester)
        if designation is None:
            logger.debug(f"No routable primary designation for employee {requester.id}")
            return None

        level = ApprovalRoutingService._required_level(designation, min_authority_level)

        for scope, queryset in ApprovalRoutingService._scopes(designation, level, requester):
            match = queryset.first()
            if match:
                logger.debug(
                    f"Routed employee {requester.id} to {match.employee_id} "
                    f"via {scope} at level {match.position.authority_level}"
                )
                return match.employee

        logger.info(f"No approver at level {level} found for employee {requester.id}")
        return None

    @staticmethod
    def find_approvers(requester, min_authority_level=None):
        designation = ApprovalRoutingService._routing_context(requester)
        if designation is None:
            return []

        level = ApprovalRoutingService._required_level(designation, min_authority_level)

        approvers = []
        seen = set()
        for scope, queryset in ApprovalRoutingService._scopes(designation, level, requester):
            for match in queryset:
                if match.employee_id not in seen:
                    seen.add(match.employee_id)
                    approvers.append(match.employee)
        return approvers

    @staticmethod
    def get_approval_chain(requester):
        designation = ApprovalRoutingService._routing_context(requester)
        if designation is None:
            return []

        own_level = designation.position.authority_level or 1
        approvers = ApprovalRoutingService.find_approvers(requester, own_level + 1)

        def authority(user):
            position = user.primary_position
            return position.authority_level if position else 999

        return sorted(approvers, key=authority)

    @staticmethod
    def invalidate_cache_for(employee_id, unit_ids=None):
        if unit_ids is None:
            unit_ids = list(
                EmployeeDesignation.objects.filter(
                    employee_id=employee_id, unit__isnull=False
                ).values_list("unit_id", flat=True)
            )

        employee_ids = {employee_id}
        if unit_ids:
            employee_ids.update(
                EmployeeDesignation.objects.filter(unit_id__in=unit_ids).values_list(
                    "employee_id", flat=True
                )
            )

        keys = []
        for emp_id in employee_ids:
            keys.append(routing_cache_key(emp_id))
            keys.extend(
                routing_cache_key(emp_id, level) for level in range(1, MAX_CACHED_LEVEL + 1)
            )
        cache.delete_many(keys)
        return len(employee_ids)


class HierarchicalApproverService:
    """Turns configured step approvers into concrete users for one requester."""

    @staticmethod
    def escalate(requester):
        designation = requester.primary_designation
        if not designation or not designation.position_id:
            return None

        current_level = designation.position.authority_level or 1
        next_approver = ApprovalRoutingService.find_next_approver(requester, current_level + 1)
        return next_approver.id if next_approver else None

    @staticmethod
    def resolve_approver(approver_id, requester):
        if not approver_id:
            return None

        approver = (
            User.objects.select_related("primary_designation__position")
            .filter(pk=approver_id)
            .first()
        )
        if approver is None:
            return approver_id

        if approver.pk == requester.pk:
            return HierarchicalApproverService.escalate(requester)

        requester_position = requester.primary_position
        approver_position = approver.primary_position
        if requester_position and approver_position:
            requester_level = requester_position.authority_level or 1
            approver_level = approver_position.authority_level or 1
            if requester_level == approver_level and requester_position.pk != approver_position.pk:
                return HierarchicalApproverService.escalate(requester)

        return approver_id

    @staticmethod
    def _role_holders(role_id, requester):
        designation = requester.primary_designation
        if not designation or not designation.unit_id:
            return []

        return list(
            User.objects.filter(
                role_id=role_id,
                is_active=True,
                designations__unit_id=designation.unit_id,
            )
            .exclude(pk=requester.pk)
            .distinct()
            .order_by("id")
            .values_list("id", flat=True)
        )

    @staticmethod
    def _position_holders(position_id, requester):
        designation = requester.primary_designation
        if not designation:
            return []

        return list(
            EmployeeDesignation.objects.filter(
                position_id=position_id,
                unit_id=designation.unit_id,
                employee__is_active=True,
            )
            .exclude(employee=requester)
            .order_by("id")
            .values_list("employee_id", flat=True)
        )

    @staticmethod
    def _resolve_one(approver, requester):
        approver_type = approver.get("approver_type")

        if approver_type == "user":
            approver_id = approver.get("approver_id")
            resolved_id = HierarchicalApproverService.resolve_approver(approver_id, requester)
            return [
                {
                    **approver,
                    "approver_id": resolved_id,
                    "original_approver_id": approver_id,
                    "was_escalated": resolved_id != approver_id,
                }
            ]

        if approver_type == "role":
            role_id = approver.get("approver_role_id")
            if not role_id:
                return [approver]

            holders = HierarchicalApproverService._role_holders(role_id, requester)
            if not holders:
                return [approver]

            resolved = []
            for user_id in holders:
                entry = {
                    **approver,
                    "approver_type": "user",
                    "approver_id": user_id,
                    "approver_role_id": role_id,
                    "was_resolved_from_role": True,
                }
                if user_id == requester.pk:
                    escalated_id = HierarchicalApproverService.escalate(requester)
                    if escalated_id:
                        entry.update(
                            approver_id=escalated_id,
                            was_escalated=True,
                            original_approver_id=user_id,
                        )
                resolved.append(entry)
            return resolved

        if approver_type == "position":
            position_id = approver.get("approver_position_id")
            if not position_id:
                return [approver]

            holders = HierarchicalApproverService._position_holders(position_id, requester)
            if not holders:
                return [approver]

            entry = {
                **approver,
                "approver_type": "user",
                "approver_id": holders[0],
                "approver_position_id": position_id,
                "was_resolved_from_position": True,
            }
            if holders[0] == requester.pk:
                escalated_id = HierarchicalApproverService.escalate(requester)
                if escalated_id:
                    entry.update(
                        approver_id=escalated_id,
                        was_escalated=True,
                        original_position_id=position_id,
                    )
            return [entry]

        if approver_type == "hierarchical":
            next_approver = ApprovalRoutingService.find_next_approver(
                requester, approver.get("min_authority_level")
            )
            if not next_approver:
                return [approver]

            designation = next_approver.primary_designation
            return [
                {
                    **approver,
                    "approver_type": "user",
                    "approver_id": next_approver.id,
                    "was_resolved_from_hierarchical": True,
                    "resolved_authority_level": (
                        designation.position.authority_level if designation else None
                    ),
                    "resolved_unit": (
                        designation.unit.name if designation and designation.unit else None
                    ),
                }
            ]

        return [approver]

    @staticmethod
    def resolve_approvers(approvers, requester):
        resolved = []
        for approver in approvers:
            resolved.extend(HierarchicalApproverService._resolve_one(approver, requester))

        seen = set()
        unique = []
        for approver in resolved:
            key = "_".join(
                str(approver.get(field) or "")
                for field in (
                    "approver_type",
                    "approver_id",
                    "approver_role_id",
                    "approver_position_id",
                    "min_authority_level",
                )
            )
            if key not in seen:
                seen.add(key)
                unique.append(approver)
        return unique


class DesignationService:
    @staticmethod
    def validate_assignment(position, unit=None):
        if unit is not None:
            if position.sector_id and position.sector_id != unit.sector_id:
                raise ValidationError(
                    "This position belongs to a different sector than the selected unit."
                )

            if not UnitPosition.is_allowed(unit.unit_type, position):
                strict_mode = settings.HR_SETTINGS.get("WHITELIST_STRICT_MODE", False)
                if strict_mode or UnitPosition.has_whitelist_for(unit.unit_type):
                    raise ValidationError(
                        f"This position is not allowed for {unit.unit_type} unit type."
                    )
        elif not position.is_system_wide:
            raise ValidationError(
                "This position belongs to a sector and requires a unit assignment."
            )

    @staticmethod
    def assign(employee, position, unit=None, is_primary=False, start_date=None,
               end_date=None, academic_rank=None, staff_grade=None, assigned_by=None):
        DesignationService.validate_assignment(position, unit)

        with transaction.atomic():
            if is_primary:
                EmployeeDesignation.objects.filter(
                    employee=employee, is_primary=True
                ).update(is_primary=False)

            designation = EmployeeDesignation(
                employee=employee,
                unit=unit,
                position=position,
                is_primary=is_primary,
                academic_rank=academic_rank,
                staff_grade=staff_grade,
                end_date=end_date,
            )
            if start_date:
                designation.start_date = start_date
            designation._changed_by = assigned_by
            designation.save()

            AuditLogService.log_created(
                "employees",
                "EmployeeDesignation",
                designation.id,
                new_values={
                    "employee_id": employee.id,
                    "unit_id": unit.id if unit else None,
                    "position_id": position.id,
                    "is_primary": is_primary,
                },
                description=(
                    f"Created designation for employee {employee.id}: "
                    f"Unit #{unit.id if unit else None}, Position #{position.id}"
                ),
                user=assigned_by,
            )

        return designation
