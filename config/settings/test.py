"""
Quit-Trace — Test Settings

Uses the base DATABASE_URL (PostgreSQL by default, so row locks and the
concurrency tests are exercised). A sqlite:/// DATABASE_URL is accepted for
quick local runs; the concurrency tests then skip. Activated by:
  DJANGO_SETTINGS_MODULE=config.settings.test

@file config/settings/test.py
"""

from .base import *  # noqa: F401, F403

DEBUG = False

ALLOWED_HOSTS = ['*']

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

REST_FRAMEWORK['DEFAULT_THROTTLE_CLASSES'] = []  # noqa: F405
REST_FRAMEWORK['DEFAULT_RENDERER_CLASSES'] = (  # noqa: F405
    'core.renderers.StandardJSONRenderer',
)

LEDGER_LOCK_TIMEOUT_MS = 2000

LOGGING['loggers']['quittrace']['level'] = 'WARNING'  # noqa: F405
