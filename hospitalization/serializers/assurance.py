from html import unescape

import bleach
from rest_framework import serializers

from hospitalization.services.assurance import AssuranceInput


def _clean(v):
    # tags stripped, entities folded back: the procedure stores plain text
    return unescape(bleach.clean((v or '').strip(), tags=set(), strip=True))


class AccountAssuranceSerializer(serializers.Serializer):
    """Request body of the account assurance endpoint.

    Field names follow the admission front-end. ``paciente`` and
    ``usuario`` are checked by the assurance service itself so that the
    HTTP and command line paths report the same error.
    """
    paciente = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    seguro = serializers.CharField(max_length=5, required=False, allow_blank=True, allow_null=True)
    empresa = serializers.CharField(max_length=10, required=False, allow_blank=True, allow_null=True)
    consultorio = serializers.CharField(max_length=10, required=False, allow_blank=True, allow_null=True)
    observa = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    fecha = serializers.RegexField(r'^\d{2}/\d{2}/\d{4}$', required=False, allow_blank=True, allow_null=True)
    hora = serializers.RegexField(r'^\d{2}:\d{2}(:\d{2})?$', required=False, allow_blank=True, allow_null=True)
    nombre = serializers.CharField(max_length=120, required=False, allow_blank=True, allow_null=True)
    origen = serializers.CharField(max_length=2, required=False, allow_blank=True, allow_null=True)
    usuario = serializers.CharField(max_length=30, required=False, allow_blank=True, allow_null=True)
    nrofua = serializers.CharField(max_length=30, required=False, allow_blank=True, allow_null=True)
    presta = serializers.CharField(max_length=10, required=False, allow_blank=True, allow_null=True)

    def validate_observa(self, v):
        return _clean(v)

    def validate_nombre(self, v):
        return _clean(v)

    def to_input(self) -> AssuranceInput:
        d = self.validated_data
        return AssuranceInput(
            patient_id=d.get('paciente'),
            operator=d.get('usuario'),
            insurance=d.get('seguro'),
            company=d.get('empresa'),
            office=d.get('consultorio'),
            observation=d.get('observa'),
            admitted_on=d.get('fecha'),
            admitted_at=d.get('hora'),
            physician=d.get('nombre'),
            origin=d.get('origen'),
            fua_number=d.get('nrofua'),
            service_code=d.get('presta'),
        )
