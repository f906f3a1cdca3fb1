import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "unihr.settings")

app = Celery("unihr")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
