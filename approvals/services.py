from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone
from accounts.models import Notification, SystemConfiguration
from accounts.services import AuditLogService, TwoFactorVerificationService
from organization.models import EmployeeDesignation, Position
from organization.services import ApprovalRoutingService, HierarchicalApproverService
from .models import (
    APPROVER_TARGET_FIELDS,
    ApprovalComment,
    ApprovalDelegation,
    RequestApprovalAction,
    RequestSubmission,
    RequestType,
)
from .serializers import NotificationPayloadSerializer, RequestApprovalActionSerializer
from datetime import timedelta
import logging
import math

logger = logging.getLogger(__name__)

User = get_user_model()

NO_ACTION_MESSAGE = "No pending approval step found for you."


class NotificationService:
    @staticmethod
    def create_notification(recipient, title, message, notification_type, data=None):
        notification = Notification.objects.create(
            recipient=recipient,
            title=title,
            message=message,
            notification_type=notification_type,
            data=data or {},
            is_read=False,
        )

        send_email = SystemConfiguration.get_bool_setting(
            "APPROVAL_EMAIL_NOTIFICATIONS",
            settings.HR_SETTINGS.get("APPROVAL_EMAIL_NOTIFICATIONS", False),
        )
        if send_email and recipient.email:
            try:
                send_mail(
                    subject=title,
                    message=message,
                    from_email=settings.DEFAULT_FROM_EMAIL,
                    recipient_list=[recipient.email],
                    fail_silently=False,
                )
            except Exception as e:
                logger.error(f"Failed to email notification to {recipient.email}: {e}")

        return notification

    @staticmethod
    def submission_payload(submission, action=None, **extra):
        payload = dict(NotificationPayloadSerializer(submission).data)
        if action is not None:
            action_data = RequestApprovalActionSerializer(action).data
            payload["action_id"] = action_data["id"]
            payload["step_index"] = action_data["step_index"]
            payload["due_at"] = action_data["due_at"]
        payload.update(extra)
        return payload

    @staticmethod
    def get_action_recipients(action):
        recipients = []

        if action.approver_id:
            approver = User.objects.filter(pk=action.approver_id).first()
            if approver:
                recipients.append(approver)
                delegate = ApprovalDelegation.get_active_delegate_for(approver.pk)
                if delegate:
                    recipients.append(delegate)

        if action.approver_role_id:
            recipients.extend(
                User.objects.filter(role_id=action.approver_role_id, is_active=True).order_by("id")
            )

        if action.approver_position_id:
            recipients.extend(
                User.objects.filter(
                    designations__position_id=action.approver_position_id,
                    designations__is_primary=True,
                    is_active=True,
                )
                .distinct()
                .order_by("id")
            )

        unique = []
        seen = set()
        for recipient in recipients:
            if recipient.pk not in seen:
                seen.add(recipient.pk)
                unique.append(recipient)
        return unique

    @staticmethod
    def notify_approvers(submission, action):
        request_name = submission.request_type.name
        recipients = NotificationService.get_action_recipients(action)

        for recipient in recipients:
            NotificationService.create_notification(
                recipient=recipient,
                title="Approval Requested",
                message=f"New approval request: {request_name} ({submission.reference_code})",
                notification_type="approval_requested",
                data=NotificationService.submission_payload(submission, action),
            )
        return recipients

    @staticmethod
    def notify_reminder(submission, action, recipient, is_overdue):
        request_name = submission.request_type.name
        prefix = "OVERDUE" if is_overdue else "Reminder"

        return NotificationService.create_notification(
            recipient=recipient,
            title="Approval Overdue" if is_overdue else "Approval Reminder",
            message=f"{prefix}: {request_name} ({submission.reference_code})",
            notification_type="approval_overdue" if is_overdue else "approval_reminder",
            data=NotificationService.submission_payload(
                submission, action, is_overdue=is_overdue
            ),
        )

    @staticmethod
    def notify_escalated(submission, action, new_approver):
        return NotificationService.create_notification(
            recipient=new_approver,
            title="Approval Escalated To You",
            message=(
                f"Approval for {submission.request_type.name} ({submission.reference_code}) "
                f"was escalated to you due to an overdue deadline."
            ),
            notification_type="approval_escalated",
            data=NotificationService.submission_payload(submission, action),
        )

    @staticmethod
    def notify_request_approved(submission, approver, notes=None, is_final=False):
        if is_final:
            message = f"Your request {submission.reference_code} has been fully approved."
        else:
            message = (
                f"Your request {submission.reference_code} has been approved "
                f"and moved to the next step."
            )

        return NotificationService.create_notification(
            recipient=submission.user,
            title="Request Approved",
            message=message,
            notification_type="request_fully_approved" if is_final else "request_step_approved",
            data=NotificationService.submission_payload(
                submission, approver_name=approver.name, notes=notes, is_final=is_final
            ),
        )

    @staticmethod
    def notify_request_rejected(submission, rejector, notes):
        return NotificationService.create_notification(
            recipient=submission.user,
            title="Request Rejected",
            message=f"Your request {submission.reference_code} has been rejected.",
            notification_type="request_rejected",
            data=NotificationService.submission_payload(
                submission, rejector_name=rejector.name, notes=notes
            ),
        )

    @staticmethod
    def notify_request_fulfilled(submission):
        return NotificationService.create_notification(
            recipient=submission.user,
            title="Request Completed",
            message=f"Your request {submission.reference_code} has been completed.",
            notification_type="request_fulfilled",
            data=NotificationService.submission_payload(submission),
        )


class ApprovalWorkflowService:
    """
    Drives a submission through its approval steps.

    Each configured step becomes one ``RequestApprovalAction`` per resolved
    approver. A step is decided by its approval mode; once decided, the
    remaining pending actions of that step are closed and the next step
    with pending actions becomes current.
    """

    @staticmethod
    def submit(request_type, user, answers=None):
        answers = answers or {}

        if request_type.is_leave_request:
            from leaves.services import LeaveService

            LeaveService.assert_sufficient_leave_balance(user, answers)

        steps = request_type.get_approval_steps()
        has_steps = bool(steps)

        if has_steps:
            status = RequestSubmission.STATUS_PENDING
        elif request_type.requires_fulfillment():
            status = RequestSubmission.STATUS_FULFILLMENT
        else:
            status = RequestSubmission.STATUS_APPROVED

        with transaction.atomic():
            submission = RequestSubmission.objects.create(
                request_type=request_type,
                user=user,
                answers=answers,
                status=status,
                current_step_index=0 if has_steps else None,
                approval_state=ApprovalWorkflowService.build_initial_approval_state(request_type),
            )

            actions = []
            if has_steps:
                actions = ApprovalWorkflowService.initialize_approval_flow(submission, steps)

            AuditLogService.log_created(
                "requests",
                "RequestSubmission",
                submission.id,
                new_values={
                    "reference_code": submission.reference_code,
                    "request_type": request_type.name,
                    "status": submission.status,
                },
                description=(
                    f"Submitted Request: {request_type.name} (Ref: {submission.reference_code})"
                ),
                user=user,
            )

        for action in actions:
            if action.step_index == submission.current_step_index:
                NotificationService.notify_approvers(submission, action)

        logger.info(
            f"Submission {submission.reference_code} created by user {user.pk} "
            f"with {len(actions)} approval actions"
        )
        return submission

    @staticmethod
    def initialize_approval_flow(submission, steps):
        requester = submission.user
        now = timezone.now()
        actions = []

        for index, step in enumerate(steps):
            approvers = step.get("approvers") or []
            if not approvers:
                continue

            approval_mode = step.get("approval_mode") or RequestType.APPROVAL_MODE_ANY
            sla_hours = step.get("sla_hours")
            due_at = now + timedelta(hours=int(sla_hours)) if sla_hours else None

            resolved = HierarchicalApproverService.resolve_approvers(approvers, requester)
            resolved = ApprovalWorkflowService.filter_approvers_by_unit(resolved, requester)
            resolved = [
                approver
                for approver in resolved
                if approver.get("approver_type") != "hierarchical"
                and any(approver.get(field) for field in APPROVER_TARGET_FIELDS.values())
            ]

            if not resolved:
                logger.warning(
                    f"No valid approvers found for step {index} in submission {submission.pk}"
                )
                ApprovalComment.create_system_comment(
                    submission,
                    f"Warning: No valid approvers could be resolved for step "
                    f"'{step.get('name') or index + 1}'. The request may require manual intervention.",
                )
                continue

            for approver in resolved:
                actions.append(
                    ApprovalWorkflowService._create_action(
                        submission, index, step, approver, approval_mode, due_at
                    )
                )

        if actions:
            first_step = min(action.step_index for action in actions)
            if first_step != submission.current_step_index:
                submission.current_step_index = first_step
                submission.save(update_fields=["current_step_index", "updated_at"])
        else:
            logger.warning(f"Submission {submission.pk} has approval steps but no approvers")

        ApprovalWorkflowService.attach_actions_to_state(submission, actions)
        return actions

    @staticmethod
    def _create_action(submission, index, step, approver, approval_mode, due_at):
        approver_type = approver.get("approver_type")
        from_role = approver.get("was_resolved_from_role", False)
        from_position = approver.get("was_resolved_from_position", False)

        return RequestApprovalAction.objects.create(
            submission=submission,
            step_index=index,
            status=RequestApprovalAction.STATUS_PENDING,
            approver_id=approver.get("approver_id") if approver_type == "user" else None,
            approver_role_id=(
                approver.get("approver_role_id")
                if approver_type == "role" and not from_role
                else None
            ),
            approver_position_id=(
                approver.get("approver_position_id")
                if approver_type == "position" and not from_position
                else None
            ),
            due_at=due_at,
            meta={
                "step": {key: value for key, value in step.items() if key != "approvers"},
                "approver": approver,
                "approval_mode": approval_mode,
                "original_approver_id": approver.get("original_approver_id"),
                "was_escalated": approver.get("was_escalated", False),
                "was_resolved_from_role": from_role,
                "was_resolved_from_position": from_position,
                "was_resolved_from_hierarchical": approver.get(
                    "was_resolved_from_hierarchical", False
                ),
                "original_role_id": approver.get("approver_role_id") if from_role else None,
                "original_position_id": (
                    approver.get("approver_position_id") if from_position else None
                ),
                "min_authority_level": approver.get("min_authority_level"),
                "resolved_authority_level": approver.get("resolved_authority_level"),
                "resolved_unit": approver.get("resolved_unit"),
            },
        )

    @staticmethod
    def filter_approvers_by_unit(approvers, requester):
        """
        Keep approvers that belong to the requester's unit or sector.

        Escalated and hierarchy-resolved users are kept as-is since they
        were picked from above the requester on purpose.
        """
        designation = requester.primary_designation
        if not designation or not designation.unit_id:
            return list(approvers)

        requester_unit_id = designation.unit_id
        requester_sector_id = designation.unit.sector_id if designation.unit else None

        kept = []
        for approver in approvers:
            approver_type = approver.get("approver_type")

            if approver_type == "user":
                approver_id = approver.get("approver_id")
                if not approver_id:
                    continue
                if approver.get("was_escalated") or approver.get("was_resolved_from_hierarchical"):
                    kept.append(approver)
                    continue

                approver_unit_id = (
                    EmployeeDesignation.objects.filter(employee_id=approver_id, is_primary=True)
                    .values_list("unit_id", flat=True)
                    .first()
                )
                if approver_unit_id == requester_unit_id:
                    kept.append(approver)

            elif approver_type == "position":
                position = Position.objects.filter(pk=approver.get("approver_position_id")).first()
                if position and position.sector_id == requester_sector_id:
                    kept.append(approver)

            else:
                kept.append(approver)

        return kept

    @staticmethod
    def build_initial_approval_state(request_type):
        steps = []
        for index, step in enumerate(request_type.get_approval_steps()):
            steps.append(
                {
                    "name": step.get("name"),
                    "description": step.get("description"),
                    "approval_mode": step.get("approval_mode"),
                    "status": RequestApprovalAction.STATUS_PENDING,
                    "step_index": index,
                    "approvers": [
                        {
                            "approver_type": approver.get("approver_type"),
                            "approver_id": approver.get("approver_id"),
                            "approver_role_id": approver.get("approver_role_id"),
                            "approver_position_id": approver.get("approver_position_id"),
                            "status": RequestApprovalAction.STATUS_PENDING,
                        }
                        for approver in step.get("approvers", [])
                    ],
                }
            )
        return {"steps": steps}

    @staticmethod
    def attach_actions_to_state(submission, actions):
        if not actions:
            return

        state = submission.approval_state or {"steps": []}
        by_step = {}
        for action in actions:
            by_step.setdefault(action.step_index, []).append(
                {
                    "action_id": action.id,
                    "approver_type": action.meta.get("approver", {}).get("approver_type"),
                    "approver_id": action.approver_id,
                    "approver_role_id": action.approver_role_id,
                    "approver_position_id": action.approver_position_id,
                    "status": action.status,
                }
            )

        for step in state.get("steps", []):
            if step.get("step_index") in by_step:
                step["approvers"] = by_step[step["step_index"]]

        submission.approval_state = state
        submission.save(update_fields=["approval_state", "updated_at"])

    @staticmethod
    def resolve_step_status(approvers, approval_mode=RequestType.APPROVAL_MODE_ANY):
        statuses = [approver.get("status") for approver in approvers if approver.get("status")]
        total = len(statuses)
        if total == 0:
            return RequestApprovalAction.STATUS_PENDING

        approved = statuses.count(RequestApprovalAction.STATUS_APPROVED)
        rejected = statuses.count(RequestApprovalAction.STATUS_REJECTED)
        threshold = math.ceil(total / 2)

        if approval_mode == RequestType.APPROVAL_MODE_ALL and rejected > 0:
            return RequestApprovalAction.STATUS_REJECTED

        if approval_mode == RequestType.APPROVAL_MODE_ANY and rejected == total:
            return RequestApprovalAction.STATUS_REJECTED

        if approval_mode == RequestType.APPROVAL_MODE_MAJORITY and rejected >= threshold:
            return RequestApprovalAction.STATUS_REJECTED

        if approval_mode == RequestType.APPROVAL_MODE_ANY and approved > 0:
            return RequestApprovalAction.STATUS_APPROVED

        if approval_mode == RequestType.APPROVAL_MODE_ALL and approved == total:
            return RequestApprovalAction.STATUS_APPROVED

        if approval_mode == RequestType.APPROVAL_MODE_MAJORITY and approved >= threshold:
            return RequestApprovalAction.STATUS_APPROVED

        return RequestApprovalAction.STATUS_PENDING

    @staticmethod
    def update_approval_state(submission, action):
        state = submission.approval_state or {"steps": []}

        for step in state.get("steps", []):
            if step.get("step_index") != action.step_index:
                continue

            for approver in step.get("approvers", []):
                if ApprovalWorkflowService._state_entry_matches(approver, action):
                    approver["status"] = action.status
                    approver["acted_at"] = action.acted_at.isoformat() if action.acted_at else None
                    approver["acted_by"] = action.approver_id
                    approver["notes"] = action.notes
                    approver["delegated_from"] = action.delegated_from_user_id

            mode = (
                step.get("approval_mode")
                or action.meta.get("approval_mode")
                or RequestType.APPROVAL_MODE_ANY
            )
            step["status"] = ApprovalWorkflowService.resolve_step_status(
                step.get("approvers", []), mode
            )

        submission.approval_state = state
        submission.save(update_fields=["approval_state", "updated_at"])

    @staticmethod
    def _state_entry_matches(entry, action):
        if entry.get("action_id"):
            return entry["action_id"] == action.id
        if action.approver_id and entry.get("approver_id") == action.approver_id:
            return True
        if action.approver_role_id and entry.get("approver_role_id") == action.approver_role_id:
            return True
        return bool(
            action.approver_position_id
            and entry.get("approver_position_id") == action.approver_position_id
        )

    @staticmethod
    def user_matches_position(action, user):
        designation = user.primary_designation
        if not designation or designation.position_id != action.approver_position_id:
            return False

        requester_designation = action.submission.user.primary_designation
        requester_sector_id = (
            requester_designation.unit.sector_id
            if requester_designation and requester_designation.unit
            else None
        )
        approver_sector_id = designation.unit.sector_id if designation.unit else None

        if requester_sector_id and approver_sector_id:
            return requester_sector_id == approver_sector_id
        return True

    @staticmethod
    def current_action_for(submission, user):
        if submission.current_step_index is None:
            return None

        pending = (
            submission.approval_actions.filter(
                status=RequestApprovalAction.STATUS_PENDING,
                step_index=submission.current_step_index,
            )
            .select_related("submission__user")
            .order_by("id")
        )

        delegator_ids = set(ApprovalDelegation.get_delegators_for(user.pk))

        for action in pending:
            if action.approver_id and action.approver_id == user.pk:
                return action
            if action.approver_id and action.approver_id in delegator_ids:
                return action
            if action.approver_role_id and action.approver_role_id == user.role_id:
                return action
            if action.approver_position_id and ApprovalWorkflowService.user_matches_position(
                action, user
            ):
                return action

        return None

    @staticmethod
    def user_can_approve(submission, user):
        if submission.status != RequestSubmission.STATUS_PENDING:
            return False
        return ApprovalWorkflowService.current_action_for(submission, user) is not None

    @staticmethod
    def _verify_two_factor(user, code):
        if TwoFactorVerificationService.is_required():
            TwoFactorVerificationService.validate_for_sensitive_action(user, code)

    @staticmethod
    def _record_decision(action, user, status, notes):
        delegated_from_id = None
        if action.approver_id and action.approver_id != user.pk:
            if ApprovalDelegation.can_act_on_behalf_of(user.pk, action.approver_id):
                delegated_from_id = action.approver_id

        action.status = status
        action.notes = notes
        action.acted_at = timezone.now()
        action.approver = user
        action.delegated_from_user_id = delegated_from_id
        action.save()
        return action

    @staticmethod
    def _close_pending_actions(submission, reason, step_index=None):
        actions = submission.approval_actions.filter(status=RequestApprovalAction.STATUS_PENDING)
        if step_index is not None:
            actions = actions.filter(step_index=step_index)
        return actions.update(
            status=RequestApprovalAction.STATUS_CLOSED,
            acted_at=timezone.now(),
            notes=reason,
            updated_at=timezone.now(),
        )

    @staticmethod
    def approve(submission, user, notes=None, code=None):
        ApprovalWorkflowService._verify_two_factor(user, code)

        if submission.status != RequestSubmission.STATUS_PENDING:
            raise ValidationError(NO_ACTION_MESSAGE)

        with transaction.atomic():
            action = ApprovalWorkflowService.current_action_for(submission, user)
            if action is None:
                raise ValidationError(NO_ACTION_MESSAGE)

            ApprovalWorkflowService._record_decision(
                action, user, RequestApprovalAction.STATUS_APPROVED, notes
            )

            if notes:
                ApprovalComment.create_approval_note(submission, user, notes, action)

            ApprovalWorkflowService.update_approval_state(submission, action)
            is_final = ApprovalWorkflowService.advance_or_complete(submission, user)

            AuditLogService.log_approved(
                "requests",
                "RequestSubmission",
                submission.id,
                new_values={"notes": notes, "step_index": action.step_index},
                description=(
                    f"Approved Request: {submission.request_type.name} "
                    f"(Ref: {submission.reference_code})"
                ),
                user=user,
            )

        NotificationService.notify_request_approved(submission, user, notes, is_final)
        logger.info(
            f"Submission {submission.reference_code} step {action.step_index} approved by user {user.pk}"
        )
        return submission

    @staticmethod
    def advance_or_complete(submission, current_approver=None):
        """Returns True when the submission has no more steps to go through."""
        step_index = submission.current_step_index
        step_actions = list(
            submission.approval_actions.filter(step_index=step_index).exclude(
                status=RequestApprovalAction.STATUS_CLOSED
            )
        )
        mode = (
            step_actions[0].meta.get("approval_mode") if step_actions else None
        ) or RequestType.APPROVAL_MODE_ANY

        step_status = ApprovalWorkflowService.resolve_step_status(
            [{"status": action.status} for action in step_actions], mode
        )
        if step_status == RequestApprovalAction.STATUS_PENDING:
            return False

        ApprovalWorkflowService._close_pending_actions(
            submission, f"Step decided ({mode})", step_index=step_index
        )

        next_action = (
            submission.approval_actions.filter(
                status=RequestApprovalAction.STATUS_PENDING, step_index__gt=step_index
            )
            .order_by("step_index", "id")
            .first()
        )

        if next_action:
            submission.current_step_index = next_action.step_index
            submission.save(update_fields=["current_step_index", "updated_at"])

            for action in submission.approval_actions.filter(
                status=RequestApprovalAction.STATUS_PENDING, step_index=next_action.step_index
            ):
                NotificationService.notify_approvers(submission, action)
            return False

        submission.current_step_index = None
        submission.status = (
            RequestSubmission.STATUS_FULFILLMENT
            if submission.requires_fulfillment()
            else RequestSubmission.STATUS_APPROVED
        )
        submission._acting_user = current_approver
        submission.save(update_fields=["current_step_index", "status", "updated_at"])
        return True

    @staticmethod
    def reject(submission, user, notes, code=None):
        if not notes or not str(notes).strip():
            raise ValidationError("Rejection notes are required.")

        ApprovalWorkflowService._verify_two_factor(user, code)

        if submission.status != RequestSubmission.STATUS_PENDING:
            raise ValidationError(NO_ACTION_MESSAGE)

        with transaction.atomic():
            action = ApprovalWorkflowService.current_action_for(submission, user)
            if action is None:
                raise ValidationError(NO_ACTION_MESSAGE)

            ApprovalWorkflowService._record_decision(
                action, user, RequestApprovalAction.STATUS_REJECTED, notes
            )
            ApprovalComment.create_approval_note(submission, user, notes, action, is_rejection=True)
            ApprovalWorkflowService._close_pending_actions(submission, "Request rejected")

            submission.status = RequestSubmission.STATUS_REJECTED
            submission.current_step_index = None
            submission._acting_user = user
            submission.save(update_fields=["status", "current_step_index", "updated_at"])

            ApprovalWorkflowService.update_approval_state(submission, action)

            AuditLogService.log_rejected(
                "requests",
                "RequestSubmission",
                submission.id,
                new_values={"notes": notes, "step_index": action.step_index},
                description=(
                    f"Rejected Request: {submission.request_type.name} "
                    f"(Ref: {submission.reference_code})"
                ),
                user=user,
            )

        NotificationService.notify_request_rejected(submission, user, notes)
        logger.info(f"Submission {submission.reference_code} rejected by user {user.pk}")
        return submission

    @staticmethod
    def withdraw(submission, user, reason=None):
        if submission.user_id != user.pk:
            raise ValidationError("You can only withdraw your own requests.")

        if not submission.can_be_withdrawn():
            raise ValidationError(
                "This request cannot be withdrawn. Only pending requests can be withdrawn."
            )

        with transaction.atomic():
            submission.status = RequestSubmission.STATUS_WITHDRAWN
            submission.withdrawn_at = timezone.now()
            submission.withdrawal_reason = reason
            submission.current_step_index = None
            submission._acting_user = user
            submission.save(
                update_fields=[
                    "status",
                    "withdrawn_at",
                    "withdrawal_reason",
                    "current_step_index",
                    "updated_at",
                ]
            )

            ApprovalWorkflowService._close_pending_actions(submission, "Request withdrawn")

            comment = "Request withdrawn by requester."
            if reason:
                comment = f"{comment} Reason: {reason}"
            ApprovalComment.objects.create(
                submission=submission,
                user=user,
                comment=comment,
                comment_type=ApprovalComment.TYPE_WITHDRAWAL,
                is_internal=False,
            )

            AuditLogService.log(
                "WITHDRAW",
                "requests",
                "RequestSubmission",
                submission.id,
                description=(
                    f"Withdrew Request: {submission.request_type.name} "
                    f"(Ref: {submission.reference_code})"
                ),
                new_values={"reason": reason},
                user=user,
            )

        logger.info(f"Submission {submission.reference_code} withdrawn by user {user.pk}")
        return submission

    @staticmethod
    def add_comment(submission, user, comment, is_internal=False):
        if not comment or not str(comment).strip():
            raise ValidationError("Comment cannot be empty.")

        if is_internal and not (user.is_staff or user.is_superuser):
            is_internal = False

        return ApprovalComment.objects.create(
            submission=submission,
            user=user,
            comment=comment,
            comment_type=ApprovalComment.TYPE_COMMENT,
            is_internal=is_internal,
        )

    @staticmethod
    def user_can_fulfill(submission, user):
        if user.is_staff or user.is_superuser:
            return True

        final_actions = submission.approval_actions.filter(
            status=RequestApprovalAction.STATUS_APPROVED
        ).order_by("-step_index")
        final_action = final_actions.first()
        if final_action is None:
            return False

        for action in final_actions.filter(step_index=final_action.step_index):
            if action.approver_id == user.pk:
                return True
            if action.approver_role_id and action.approver_role_id == user.role_id:
                return True
        return False

    @staticmethod
    def fulfill(submission, user, notes=None):
        if submission.status != RequestSubmission.STATUS_FULFILLMENT:
            raise ValidationError("Only requests awaiting fulfillment can be completed.")

        if not ApprovalWorkflowService.user_can_fulfill(submission, user):
            raise ValidationError("You are not allowed to fulfill this request.")

        with transaction.atomic():
            submission.status = RequestSubmission.STATUS_COMPLETED
            submission.fulfilled_at = timezone.now()
            submission._acting_user = user
            submission.save(update_fields=["status", "fulfilled_at", "updated_at"])

            AuditLogService.log_updated(
                "requests",
                "RequestSubmission",
                submission.id,
                old_values={"status": RequestSubmission.STATUS_FULFILLMENT},
                new_values={"status": RequestSubmission.STATUS_COMPLETED, "notes": notes},
                description=(
                    f"Fulfilled Request: {submission.request_type.name} "
                    f"(Ref: {submission.reference_code})"
                ),
                user=user,
            )

        NotificationService.notify_request_fulfilled(submission)
        return submission


class ApprovalReminderService:
    """Reminders for due approval actions and escalation of overdue ones."""

    @staticmethod
    def reminder_interval_hours():
        return SystemConfiguration.get_int_setting("APPROVAL_REMINDER_HOURS", 24)

    @staticmethod
    def should_send_reminder(action, now=None):
        if not action.reminded_at:
            return True
        now = now or timezone.now()
        interval = timedelta(hours=ApprovalReminderService.reminder_interval_hours())
        return now - action.reminded_at >= interval

    @staticmethod
    def pending_actions():
        return (
            RequestApprovalAction.objects.filter(
                status=RequestApprovalAction.STATUS_PENDING,
                due_at__isnull=False,
                submission__status=RequestSubmission.STATUS_PENDING,
            )
            .select_related("submission__request_type", "submission__user", "approver")
            .order_by("due_at", "id")
        )

    @staticmethod
    def escalate_action(action):
        submission = action.submission
        requester = submission.user

        current_level = (action.meta or {}).get("resolved_authority_level") or 1
        next_approver = ApprovalRoutingService.find_next_approver(requester, current_level + 1)
        if next_approver is None:
            logger.warning(f"Cannot escalate action {action.pk}: no higher authority found")
            return None

        with transaction.atomic():
            meta = dict(action.meta or {})
            meta.update(
                escalation_reason="overdue",
                original_due_at=action.due_at.isoformat() if action.due_at else None,
            )

            action.is_escalated = True
            action.escalated_at = timezone.now()
            action.escalated_from_user_id = action.approver_id
            action.approver = next_approver
            action.meta = meta
            action.save()

            ApprovalComment.create_system_comment(
                submission,
                f"Approval escalated to {next_approver.name} due to overdue deadline.",
                approval_action=action,
            )

            AuditLogService.log(
                "ESCALATE",
                "requests",
                "RequestApprovalAction",
                action.pk,
                description=(
                    f"Escalated approval for {submission.reference_code} to {next_approver.name}"
                ),
                new_values={
                    "escalated_from_user_id": action.escalated_from_user_id,
                    "approver_id": next_approver.pk,
                },
            )

            NotificationService.notify_escalated(submission, action, next_approver)

        logger.info(f"Escalated {submission.reference_code} to {next_approver.name}")
        return next_approver

    @staticmethod
    def process(escalate=False, dry_run=False, write=None):
        """
        Returns ``{"reminders_sent", "escalations"}``. ``write`` receives one
        line per reminder, escalation or dry-run decision.
        """
        write = write or (lambda line: None)
        reminders_sent = 0
        escalations = 0

        for action in ApprovalReminderService.pending_actions():
            submission = action.submission
            if submission.current_step_index != action.step_index:
                continue

            is_overdue = action.is_overdue()
            is_due_soon = action.is_due_soon(24)

            if is_overdue and escalate and not action.is_escalated:
                if dry_run:
                    write(f"[DRY RUN] Would escalate: {submission.reference_code}")
                else:
                    new_approver = ApprovalReminderService.escalate_action(action)
                    if new_approver:
                        escalations += 1
                        write(f"Escalated {submission.reference_code} to {new_approver.name}")

            if (is_due_soon or is_overdue) and ApprovalReminderService.should_send_reminder(action):
                for recipient in NotificationService.get_action_recipients(action):
                    if dry_run:
                        write(
                            f"[DRY RUN] Would remind {recipient.name} for: {submission.reference_code}"
                        )
                    else:
                        NotificationService.notify_reminder(
                            submission, action, recipient, is_overdue
                        )
                        reminders_sent += 1

                if not dry_run:
                    action.reminded_at = timezone.now()
                    action.reminder_count += 1
                    action.save(update_fields=["reminded_at", "reminder_count", "updated_at"])

        return {"reminders_sent": reminders_sent, "escalations": escalations}
