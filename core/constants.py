"""
Core — Constants

Shared constants: audit action names and pagination limits.

@file core/constants.py
"""

AUDIT_ACTION_CREATE = 'CREATE'
AUDIT_ACTION_UPDATE = 'UPDATE'
AUDIT_ACTION_SOFT_DELETE = 'SOFT_DELETE'
AUDIT_ACTION_STATUS_CHANGE = 'STATUS_CHANGE'
AUDIT_ACTION_MOVEMENT = 'MOVEMENT'
AUDIT_ACTION_LOGIN = 'LOGIN'

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
