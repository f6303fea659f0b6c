from django.apps import AppConfig


class DjangoActivityLedgerConfig(AppConfig):
    name = "django_activity_ledger"
    verbose_name = "Activity Ledger"
    default_auto_field = "django.db.models.BigAutoField"
