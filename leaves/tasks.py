from celery import shared_task
from django.utils import timezone
from .services import LeaveService
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def process_monthly_accrual_task(self, month=None):
    try:
        if month:
            target_month = datetime.strptime(month, "%Y-%m").date()
        else:
            first_of_month = timezone.localdate().replace(day=1)
            target_month = (first_of_month - timedelta(days=1)).replace(day=1)

        result = LeaveService.process_monthly_accrual_for_all(target_month)

        return {
            "success": True,
            "month": target_month.strftime("%Y-%m"),
            "processed": result["processed"],
            "errors": result["errors"],
        }

    except Exception as exc:
        logger.error(f"Monthly leave accrual failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(countdown=600, exc=exc)
        return {"success": False, "error": str(exc)}


@shared_task(bind=True, max_retries=3)
def process_carry_over_task(self, year=None):
    try:
        target_year = int(year) if year else timezone.localdate().year
        result = LeaveService.process_carry_over_for_all(target_year)

        return {
            "success": True,
            "year": target_year,
            "processed": result["processed"],
            "errors": result["errors"],
        }

    except Exception as exc:
        logger.error(f"Leave carry-over failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(countdown=600, exc=exc)
        return {"success": False, "error": str(exc)}
