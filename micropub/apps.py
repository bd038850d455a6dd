from django.apps import AppConfig


class MicropubConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "micropub"
    verbose_name = "Micropub"
