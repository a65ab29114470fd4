from django.apps import AppConfig


class EventRegConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'eventreg'
    verbose_name = 'Event registrations'

    def ready(self):
        from . import signals  # noqa: F401
