from django.apps import AppConfig
from django.db.models.signals import post_migrate
import logging

logger = logging.getLogger(__name__)


class AccountsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "accounts"
    verbose_name = "Accounts"

    def ready(self):
        post_migrate.connect(
            self.create_initial_data,
            sender=self,
            dispatch_uid="accounts_create_initial_data",
        )

    def create_initial_data(self, sender, **kwargs):
        try:
            from accounts.models import Role, SystemConfiguration

            default_roles = [
                ("SUPER_ADMIN", 10, True),
                ("HR_ADMIN", 8, True),
                ("DEAN", 6, True),
                ("DEPARTMENT_HEAD", 5, True),
                ("OFFICE_HEAD", 5, True),
                ("FACULTY", 2, False),
                ("STAFF", 1, False),
            ]
            display_names = dict(Role.ROLE_TYPES)

            for name, level, can_approve in default_roles:
                Role.objects.get_or_create(
                    name=name,
                    defaults={
                        "display_name": display_names[name],
                        "level": level,
                        "can_approve_leave": can_approve,
                        "can_manage_employees": name in ("SUPER_ADMIN", "HR_ADMIN"),
                    },
                )

            created = SystemConfiguration.initialize_default_settings()
            if created:
                logger.info(f"Created {created} default system settings")

        except Exception as e:
            logger.error(f"Error creating initial accounts data: {e}")
