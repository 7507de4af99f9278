import logging

from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class InvalidVisitState(APIException):
    """Transition requested from a status that does not allow it."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Visit is not in a status that allows this action.'
    default_code = 'invalid_visit_state'


class DoctorUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Doctor not found or not available.'
    default_code = 'doctor_unavailable'


class PendingInvestigations(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Lab and radiology investigations must be completed before ordering medications.'
    default_code = 'pending_investigations'


class PaymentRequired(APIException):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = 'Billing must be paid before this action.'
    default_code = 'payment_required'


class WorkflowIntegrityError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Workflow data is inconsistent.'
    default_code = 'integrity_error'


def _error_code(exc, resp) -> str:
    if isinstance(exc, APIException):
        codes = exc.get_codes()
        if isinstance(codes, str):
            return codes
    return {
        400: 'invalid',
        401: 'not_authenticated',
        403: 'permission_denied',
        404: 'not_found',
        405: 'method_not_allowed',
        429: 'throttled',
    }.get(resp.status_code, 'api_error')


def api_exception_handler(exc, context):
    if isinstance(exc, IntegrityError):
        logger.error("integrity error in %s: %s", context.get('view'), exc)
        exc = WorkflowIntegrityError()
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception("unhandled error in %s", context.get('view'), exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    if isinstance(exc, WorkflowIntegrityError):
        logger.error("workflow integrity failure: %s", exc.detail)
    elif resp.status_code in (402, 409):
        logger.info("rejected %s: %s", context.get('view').__class__.__name__, exc.detail)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response(
        {'ok': False, 'error': {'code': _error_code(exc, resp), 'message': detail}},
        status=resp.status_code,
    )
