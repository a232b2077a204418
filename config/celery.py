"""
Quit-Trace — Celery Application

Workers and beat read every CELERY_* key from Django settings; periodic
jobs are declared in settings.CELERY_BEAT_SCHEDULE and stored by
django_celery_beat's DatabaseScheduler.

@file config/celery.py
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

app = Celery('quittrace')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
