from celery import shared_task
from .services import ApprovalReminderService
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def send_approval_reminders_task(self, escalate=True):
    try:
        result = ApprovalReminderService.process(escalate=escalate)
        logger.info(
            f"Approval reminders: {result['reminders_sent']} sent, "
            f"{result['escalations']} escalated"
        )

        return {
            "success": True,
            "reminders_sent": result["reminders_sent"],
            "escalations": result["escalations"],
        }

    except Exception as exc:
        logger.error(f"Approval reminder run failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(countdown=600, exc=exc)
        return {"success": False, "error": str(exc)}
