from django.apps import AppConfig


class AnswerHubConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'answerhub'
    verbose_name = 'AlgoAnswerHub'

    def ready(self):
        from . import signals  # noqa: F401
