from django.apps import AppConfig
from django.core.exceptions import ImproperlyConfigured

from . import conf
from .srs import MIN_EASE_FACTOR


class SchedulingConfig(AppConfig):
    name = 'scheduling'
    verbose_name = 'Spaced repetition scheduling'

    def ready(self):
        """Reject mastery thresholds the scheduler can never satisfy sensibly."""
        if conf.get('MASTERED_REPETITIONS') < 0:
            raise ImproperlyConfigured(
                "SCHEDULING_MASTERED_REPETITIONS must not be negative"
            )
        if conf.get('MASTERED_EASE_FACTOR') < MIN_EASE_FACTOR:
            raise ImproperlyConfigured(
                f"SCHEDULING_MASTERED_EASE_FACTOR must be at least {MIN_EASE_FACTOR}"
            )
