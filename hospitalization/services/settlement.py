"""
Settlement invoker: opens a billing account through the legacy
``SP_LIQUIDA_NUEVA_CUENTA`` procedure.

The procedure owns account numbering and its business rules; this module
only marshals its parameters and reads back its status row. Backends are
plain classes with ``invoke(store, params) -> SettlementOutcome`` and are
selected with the ``ACCOUNT_SETTLEMENT_BACKEND`` setting, so tests can
substitute a scripted double.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Optional, Union

import structlog
from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string

from hospitalization.models import AccountStatus, AttentionOrigin, InsurancePlan
from hospitalization.services.store import RecordStore

logger = structlog.get_logger(__name__)

DATE_FORMAT = '%d/%m/%Y'
TIME_FORMAT = '%H:%M:%S'


@dataclass(frozen=True)
class SettlementRequest:
    patient_id: str
    operator: str
    insurance: Optional[str] = None
    company: Optional[str] = None
    office: Optional[str] = None
    observation: Optional[str] = None
    admitted_on: Optional[str] = None
    admitted_at: Optional[str] = None
    physician: Optional[str] = None
    origin: Optional[str] = None
    fua_number: Optional[str] = None
    service_code: Optional[str] = None

    def with_defaults(self, now=None) -> 'SettlementRequest':
        """Fill every blank optional field with the admission defaults.

        Date and time default to the current moment in the local calendar.
        """
        now = timezone.localtime(now)
        defaults = {
            'insurance': InsurancePlan.SOAT.value,
            'company': '0',
            'office': '2090',
            'observation': '.',
            'admitted_on': now.strftime(DATE_FORMAT),
            'admitted_at': now.strftime(TIME_FORMAT),
            'physician': '',
            'origin': AttentionOrigin.HOSPITALIZATION.value,
            'fua_number': '.',
            'service_code': '.',
        }
        missing = {k: v for k, v in defaults.items() if not getattr(self, k)}
        return replace(self, **missing)

    def as_procedure_params(self) -> list[tuple[str, Any]]:
        # Order and names follow the procedure signature.
        return [
            ('paciente', self.patient_id),
            ('seguro', self.insurance),
            ('empresa', self.company),
            ('consultorio', self.office),
            ('observa', self.observation),
            ('fecha', self.admitted_on),
            ('estado', AccountStatus.ACTIVE.value),
            ('hora', self.admitted_at),
            ('nombre', self.physician),
            ('origen', self.origin),
            ('usuario', self.operator),
            ('nrofua', self.fua_number),
            ('presta', self.service_code),
        ]

    def missing_fields(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is None]


@dataclass(frozen=True)
class SettlementSuccess:
    account_id: str
    ok = True


@dataclass(frozen=True)
class SettlementFailure:
    message: str
    ok = False


SettlementOutcome = Union[SettlementSuccess, SettlementFailure]


class StoredProcedureSettlement:
    """Runs the settlement stored procedure through the record store."""
    NO_RESPONSE = 'No se recibió respuesta del SP'

    def __init__(self, procedure: Optional[str] = None):
        self.procedure = procedure or settings.SETTLEMENT_PROCEDURE

    def invoke(self, store: RecordStore, request: SettlementRequest) -> SettlementOutcome:
        rows = store.call_procedure(self.procedure, request.as_procedure_params())
        if not rows:
            return SettlementFailure(self.NO_RESPONSE)
        row = rows[0]
        if _as_int(row.get('ESTADO')) != 1 or not row.get('CUENTAID'):
            return SettlementFailure(str(row.get('MENSAJE') or 'El procedimiento no abrió la cuenta'))
        return SettlementSuccess(str(row['CUENTAID']).strip())


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_settlement_backend():
    return import_string(settings.ACCOUNT_SETTLEMENT_BACKEND)()


def settle(store: RecordStore, backend, request: SettlementRequest) -> SettlementOutcome:
    """Invoke the settlement backend exactly once inside the caller's transaction.

    Defaults must already be applied; a request with blank fields is a
    programming error.
    """
    missing = request.missing_fields()
    if missing:
        raise ValueError(f'settlement request has unset fields: {", ".join(missing)}')
    log = logger.bind(patient_id=request.patient_id, insurance=request.insurance)
    log.info('settlement.invoking', procedure=getattr(backend, 'procedure', type(backend).__name__))
    outcome = backend.invoke(store, request)
    if outcome.ok:
        log.info('settlement.succeeded', account_id=outcome.account_id)
    else:
        log.warning('settlement.failed', message=outcome.message)
    return outcome
