"""
Core — Exception Handling

Ledger error taxonomy and the DRF exception handler for consistent API
error envelopes. Every ledger error is raised inside the transaction
boundary, so the caller never observes a partial commit.

@file core/exceptions.py
"""

import logging

from django.core.exceptions import PermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('quittrace')


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(APIException):
    """Malformed or out-of-range input (bad dates, non-positive quantity). Not retryable as-is."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'VALIDATION_ERROR'


class InvalidStateTransition(ValidationError):
    """Raised when a state machine transition is not allowed."""
    default_detail = 'Invalid state transition.'
    default_code = 'INVALID_STATE_TRANSITION'


class NotFoundError(APIException):
    """Referenced batch, product or party does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'NOT_FOUND'


class InsufficientQuantityError(APIException):
    """Requested transfer exceeds the available / in-stock quantity at commit time."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Insufficient quantity for this operation.'
    default_code = 'INSUFFICIENT_QUANTITY'


class DuplicateResourceError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'DUPLICATE_RESOURCE'


class ConsistencyViolation(APIException):
    """A ledger invariant would be broken. Always fatal to the transaction."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Ledger consistency violation.'
    default_code = 'CONSISTENCY_VIOLATION'


class ResourceBusyError(APIException):
    """Lock contention or transaction conflict. Transient; safe to retry with backoff."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Resource is busy, retry later.'
    default_code = 'RESOURCE_BUSY'


# ---------------------------------------------------------------------------
# Standard exception handler
# ---------------------------------------------------------------------------

def standard_exception_handler(exc, context):
    """
    Wraps every error response in the standard envelope:
      { "success": false, "errors": {...}, "code": "ERROR_CODE" }
    """
    if isinstance(exc, Http404):
        exc = NotFoundError()
    elif isinstance(exc, PermissionDenied):
        exc = APIException(detail='Permission denied.', code='PERMISSION_DENIED')
        exc.status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, DjangoValidationError):
        data = {
            'success': False,
            'errors': exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages},
            'code': 'VALIDATION_ERROR',
        }
        return Response(data, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, ConsistencyViolation):
        logger.error('Consistency violation surfaced to API: %s', exc.detail)

    response = exception_handler(exc, context)

    if response is not None:
        errors = {}
        code = getattr(exc, 'default_code', 'ERROR')

        if isinstance(response.data, dict):
            errors = response.data
            code = response.data.pop('code', code) if 'code' in response.data else code
        elif isinstance(response.data, list):
            errors = {'detail': response.data}
        else:
            errors = {'detail': [str(response.data)]}

        response.data = {
            'success': False,
            'errors': errors,
            'code': code,
        }
        if isinstance(exc, ResourceBusyError):
            response['Retry-After'] = '1'

    if response is None:
        logger.exception('Unhandled exception in view: %s', exc)
        return Response(
            {'success': False, 'errors': {'detail': ['Internal server error.']}, 'code': 'INTERNAL_ERROR'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return response
