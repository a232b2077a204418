"""
Ledger — Application Configuration
"""

from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ledger'
    verbose_name = 'Chain-of-Custody Ledger'
