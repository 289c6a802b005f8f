import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .exceptions import WorkflowError, InternalError

logger = logging.getLogger(__name__)


def workflow_exception_handler(exc, context):
    """
    Map lifecycle errors onto API responses using the shape
    {success, message, code, errors?}. Anything else falls through to DRF.
    """
    if isinstance(exc, WorkflowError):
        if isinstance(exc, InternalError) or exc.status_code >= 500:
            view = context.get('view')
            logger.error(
                f"Internal error in {view.__class__.__name__ if view else 'unknown view'}: {exc.details or exc}",
                exc_info=exc,
            )
            return Response(
                {'success': False, 'message': InternalError().message, 'code': InternalError.default_code},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        body = {'success': False, 'message': exc.message, 'code': exc.code}
        if exc.details:
            body['errors'] = exc.details
        return Response(body, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict) and 'success' not in response.data:
        if 'detail' in response.data:
            response.data = {'success': False, 'message': str(response.data['detail'])}
        else:
            response.data = {'success': False, 'message': 'Validation error.', 'errors': response.data}
    return response
