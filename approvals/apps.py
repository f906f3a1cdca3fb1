from django.apps import AppConfig


class ApprovalsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "approvals"
    verbose_name = "D. Approvals"

    def ready(self):
        try:
            import approvals.tasks
        except ImportError:
            pass
