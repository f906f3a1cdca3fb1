from django.apps import AppConfig


class OrganizationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "organization"
    verbose_name = "B. Organization"

    def ready(self):
        try:
            import organization.signals
        except ImportError:
            pass
