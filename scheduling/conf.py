"""Settings for the scheduling app, read lazily from the Django project."""

from django.conf import settings

DEFAULTS = {
    # A state counts as mastered at or above both thresholds
    'MASTERED_REPETITIONS': 5,
    'MASTERED_EASE_FACTOR': 2.5,
}


def get(name):
    """Return SCHEDULING_<name> from settings, or its default."""
    return getattr(settings, f'SCHEDULING_{name}', DEFAULTS[name])
