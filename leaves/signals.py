from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver
from django.utils import timezone
from approvals.models import RequestApprovalAction, RequestSubmission
from .models import LeaveRequest, LeaveType
from .services import LeaveService, parse_date
import logging

logger = logging.getLogger(__name__)

ANSWER_FIELDS = {
    "reason": "reason",
    "leave_location": "location",
    "location_details": "location_details",
    "sick_leave_type": "sick_leave_type",
    "illness_description": "illness_description",
    "women_special_illness": "women_special_illness",
    "study_leave_type": "study_leave_type",
    "study_leave_details": "study_leave_details",
    "other_purpose_type": "other_leave_type",
    "other_leave_details": "other_leave_details",
}


def leave_details(submission):
    """``(leave_type, start, end, days)`` from the answers, or None if incomplete."""
    answers = submission.answers or {}
    code = answers.get("leave_type")
    if not code or not answers.get("start_date") or not answers.get("end_date"):
        return None

    leave_type = LeaveType.objects.filter(code=code).first()
    if leave_type is None:
        logger.warning(f"Leave type {code} not found for submission {submission.pk}")
        return None

    start_date = parse_date(answers["start_date"])
    end_date = parse_date(answers["end_date"])
    days = LeaveService.calculate_working_days(start_date, end_date)
    return leave_type, start_date, end_date, days


def credits_source(leave_type):
    return leave_type.get_credits_source() or leave_type


def rejection_reason(submission):
    action = (
        submission.approval_actions.filter(status=RequestApprovalAction.STATUS_REJECTED)
        .order_by("-acted_at", "-id")
        .first()
    )
    return action.notes if action else None


def handle_leave_submitted(submission):
    details = leave_details(submission)
    if details is None:
        return

    leave_type, _, _, days = details
    if leave_type.draws_on_credits():
        reserved = LeaveService.reserve_balance(submission.user, credits_source(leave_type), days)
        if not reserved:
            logger.warning(
                f"Failed to reserve {days} {leave_type.code} days for submission {submission.pk}"
            )

    logger.info(
        f"Leave request {submission.reference_code} submitted: {leave_type.code}, {days} days"
    )


def handle_leave_approved(submission):
    details = leave_details(submission)
    if details is None:
        return

    leave_type, start_date, end_date, days = details
    answers = submission.answers or {}
    employee = submission.user

    with transaction.atomic():
        credits = LeaveService.get_leave_credits_as_of_date(employee)

        defaults = {
            model_field: answers.get(answer_key)
            for answer_key, model_field in ANSWER_FIELDS.items()
        }
        defaults.update(
            employee=employee,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days=days,
            commutation_requested=answers.get("commutation_requested") == "requested",
            vacation_leave_balance=credits["vacation_leave"]["balance"],
            sick_leave_balance=credits["sick_leave"]["balance"],
            status="approved",
            approved_at=timezone.now(),
            approved_by=getattr(submission, "_acting_user", None),
            days_with_pay=days,
            days_without_pay=0,
        )

        leave_request, _ = LeaveRequest.objects.update_or_create(
            request_submission=submission, defaults=defaults
        )

        if leave_type.draws_on_credits():
            LeaveService.deduct_balance(employee, credits_source(leave_type), days)

    logger.info(
        f"Leave request {submission.reference_code} approved: {days} {leave_type.code} days deducted"
    )
    return leave_request


def handle_leave_rejected(submission):
    acting_user = getattr(submission, "_acting_user", None)
    reason = rejection_reason(submission)
    leave_request = LeaveRequest.objects.filter(request_submission=submission).first()

    if leave_request is None:
        details = leave_details(submission)
        if details is None:
            return

        leave_type, start_date, end_date, days = details
        if leave_type.draws_on_credits():
            LeaveService.release_balance(submission.user, credits_source(leave_type), days)

        return LeaveRequest.objects.create(
            request_submission=submission,
            employee=submission.user,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days=days,
            reason=(submission.answers or {}).get("reason"),
            status="rejected",
            rejected_at=timezone.now(),
            rejected_by=acting_user,
            rejection_reason=reason,
        )

    leave_request.status = "rejected"
    leave_request.rejected_at = timezone.now()
    leave_request.rejected_by = acting_user
    leave_request.rejection_reason = reason
    leave_request.save()

    leave_type = leave_request.leave_type
    if leave_type.draws_on_credits():
        LeaveService.release_balance(
            leave_request.employee, credits_source(leave_type), leave_request.days
        )

    logger.info(f"Leave request {submission.reference_code} rejected and balance released")
    return leave_request


def handle_leave_withdrawn(submission):
    details = leave_details(submission)
    if details is None:
        return

    leave_type, _, _, days = details
    if leave_type.draws_on_credits():
        LeaveService.release_balance(submission.user, credits_source(leave_type), days)

    LeaveRequest.objects.filter(request_submission=submission).update(
        status="cancelled", updated_at=timezone.now()
    )
    logger.info(f"Leave request {submission.reference_code} withdrawn and balance released")


@receiver(pre_save, sender=RequestSubmission)
def capture_previous_status(sender, instance, **kwargs):
    if instance.pk:
        instance._old_status = (
            sender.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
        )
    else:
        instance._old_status = None


@receiver(post_save, sender=RequestSubmission)
def sync_leave_balance(sender, instance, created, **kwargs):
    if not instance.request_type.is_leave_request:
        return

    if created:
        if instance.status == RequestSubmission.STATUS_PENDING:
            try:
                handle_leave_submitted(instance)
            except Exception as e:
                logger.error(f"Error handling leave submission {instance.pk}: {e}")
        return

    old_status = getattr(instance, "_old_status", None)
    if old_status == instance.status:
        return

    if instance.status == RequestSubmission.STATUS_APPROVED:
        try:
            handle_leave_approved(instance)
        except Exception as e:
            logger.error(f"Error handling leave approval {instance.pk}: {e}")
            raise

    elif instance.status == RequestSubmission.STATUS_REJECTED:
        try:
            with transaction.atomic():
                handle_leave_rejected(instance)
        except Exception as e:
            logger.error(f"Error handling leave rejection {instance.pk}: {e}")

    elif instance.status == RequestSubmission.STATUS_WITHDRAWN:
        try:
            handle_leave_withdrawn(instance)
        except Exception as e:
            logger.error(f"Error handling leave withdrawal {instance.pk}: {e}")
