import structlog
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

from .errors import ClinicError

logger = structlog.get_logger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, ClinicError):
        logger.info("clinic_error", code=exc.code, message=exc.message)
        return Response({'ok': False, 'error': {'code': exc.code, 'message': exc.message}}, status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error("unhandled_api_error", exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize in place so Retry-After / WWW-Authenticate survive
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = exc.default_code if isinstance(exc, APIException) else 'api_error'
    resp.data = {'ok': False, 'error': {'code': code, 'message': detail}}
    return resp
