"""
Minimal Django settings for running the scheduling app standalone.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'scheduling-test-only-secret')
DEBUG = os.environ.get('DJANGO_DEBUG', 'False').lower() == 'true'

INSTALLED_APPS = [
    'scheduling',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

USE_TZ = True
TIME_ZONE = 'UTC'

SCHEDULING_MASTERED_REPETITIONS = 5
SCHEDULING_MASTERED_EASE_FACTOR = 2.5

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'scheduling': {
            'handlers': ['console'],
            'level': os.environ.get('SCHEDULING_LOG_LEVEL', 'WARNING'),
        },
    },
}
