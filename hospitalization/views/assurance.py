"""
Account assurance endpoint.

``POST /api/hospitaliza/<id>/asegurar-cuenta`` links the episode to the
patient's active billing account, settling a new one when the insurance
requires it. "Not applicable" is a normal outcome (200, ``ok: false``)
and must not be confused with a failed settlement (500).
"""
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework import status

from hospitalization.serializers.assurance import AccountAssuranceSerializer
from hospitalization.services.assurance import AssuranceStatus, assure_account


def assurance_payload(result) -> dict:
    payload = {'ok': result.ok, 'status': result.status.value, 'message': result.message}
    if result.account_id:
        payload['accountId'] = result.account_id
    return payload


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def assure_hospitalization_account(request, episode_id):
    s = AccountAssuranceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    # Validation, not-found and storage errors are rendered by
    # hospitalization.exceptions.api_exception_handler.
    result = assure_account(episode_id, s.to_input())
    if result.status == AssuranceStatus.FAILED:
        return Response(assurance_payload(result), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(assurance_payload(result))


# DRF ScopedRateThrottle reads throttle_scope from the wrapped APIView class
assure_hospitalization_account.cls.throttle_scope = 'account_assure'
