from django.apps import AppConfig


class LeavesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "leaves"
    verbose_name = "C. Leaves"

    def ready(self):
        try:
            import leaves.signals
        except ImportError:
            pass

        try:
            import leaves.tasks
        except ImportError:
            pass
