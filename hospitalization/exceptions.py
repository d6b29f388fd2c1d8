"""
Error taxonomy for account assurance and the unified API error handler.

Every error body leaving the API has the shape
``{'ok': False, 'message': ..., 'error': {'code': ...}}``. Storage faults
are reported with a generic message so that query text and schema names
never reach the caller; the original exception stays chained for logs.
"""
import structlog
from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

logger = structlog.get_logger(__name__)


class AssuranceError(Exception):
    code = 'assurance_error'
    status_code = 500
    default_message = 'Error al procesar la solicitud'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AssuranceValidationError(AssuranceError):
    code = 'validation_error'
    status_code = 400
    default_message = 'Faltan datos requeridos. Se necesita al menos paciente y usuario.'


class EpisodeNotFound(AssuranceError):
    code = 'not_found'
    status_code = 404

    def __init__(self, episode_id):
        super().__init__(f'No se encontró la hospitalización con ID {episode_id}')
        self.episode_id = episode_id


class StorageError(AssuranceError):
    """Connectivity or query fault in the record store."""
    code = 'storage_error'
    default_message = 'Error de acceso a la base de datos'


class OperationFailed(AssuranceError):
    """The assurance transaction was rolled back; ``__cause__`` holds why."""
    code = 'operation_failed'


class AssuranceTimeout(OperationFailed):
    code = 'timeout'
    default_message = 'Tiempo de espera agotado al asegurar la cuenta'


class SettlementRejected(AssuranceError):
    """The settlement procedure refused to open an account."""
    code = 'settlement_failed'
    default_message = 'Error al ejecutar el procedimiento almacenado'


def _first_message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return str(data['detail'])
        for field, errors in data.items():
            return f'{field}: {_first_message(errors)}'
    if isinstance(data, (list, tuple)) and data:
        return _first_message(data[0])
    return str(data)


def api_exception_handler(exc, context):
    if isinstance(exc, AssuranceError):
        if exc.status_code >= 500:
            logger.error('api.assurance_error', code=exc.code, error=repr(exc.__cause__ or exc))
        return Response({'ok': False, 'message': exc.message, 'error': {'code': exc.code}}, status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('api.unhandled_error', view=str(context.get('view')))
        return Response(
            {'ok': False, 'message': AssuranceError.default_message, 'error': {'code': 'server_error'}},
            status=500,
        )
    # normalize response; field errors stay available under error.detail
    error = {'code': 'api_error'}
    if isinstance(resp.data, dict) and 'detail' not in resp.data:
        error['detail'] = resp.data
    return Response({'ok': False, 'message': _first_message(resp.data), 'error': error}, status=resp.status_code)
