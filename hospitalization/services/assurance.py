"""
Account assurance: guarantee that a hospitalization episode is linked to
the patient's current active billing account.

The whole sequence runs in one transaction on the record store:

1. read the episode's insurance and patient from storage (client values
   are not trusted for either);
2. stop with ``not_applicable`` unless the insurance requires settlement;
3. reuse the patient's active account, or open one through the
   settlement procedure;
4. re-read the current active account and write it, with the operating
   user, onto the episode.

A settlement refusal unwinds the transaction and is reported as a
``failed`` result. Storage faults, timeouts and inconsistent reads roll
back and surface as :class:`OperationFailed`.

Two concurrent calls for the same patient can both see "no account" and
both settle. Linking always targets the most recently opened account, so
the episode stays consistent; the extra account is left unlinked.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from time import monotonic
from typing import Optional

import structlog
from django.conf import settings
from django.db import models

from hospitalization.exceptions import (
    AssuranceTimeout,
    AssuranceValidationError,
    EpisodeNotFound,
    OperationFailed,
    SettlementRejected,
    StorageError,
)
from hospitalization.services.accounts import resolve_active_account
from hospitalization.services.insurance import classify_insurance
from hospitalization.services.settlement import SettlementRequest, get_settlement_backend, settle
from hospitalization.services.store import RecordStore

logger = structlog.get_logger(__name__)


class AssuranceStatus(models.TextChoices):
    NOT_APPLICABLE = 'not_applicable'
    LINKED_EXISTING = 'linked_existing'
    CREATED_AND_LINKED = 'created_and_linked'
    FAILED = 'failed'


@dataclass(frozen=True)
class AssuranceInput:
    patient_id: Optional[str]
    operator: Optional[str]
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


@dataclass(frozen=True)
class AssuranceResult:
    status: AssuranceStatus
    account_id: Optional[str] = None
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.status in (AssuranceStatus.LINKED_EXISTING, AssuranceStatus.CREATED_AND_LINKED)


MESSAGES = {
    AssuranceStatus.NOT_APPLICABLE: 'No aplica. El tipo de cuenta no requiere liquidación.',
    AssuranceStatus.LINKED_EXISTING: 'Cuenta asegurada correctamente',
    AssuranceStatus.CREATED_AND_LINKED: 'Cuenta creada y asegurada correctamente',
}


class _Deadline:
    def __init__(self, seconds: float):
        self.expires = monotonic() + seconds if seconds and seconds > 0 else None

    def check(self, step: str) -> None:
        if self.expires is not None and monotonic() > self.expires:
            raise AssuranceTimeout(f'Tiempo de espera agotado ({step})')


def _blank(value: Optional[str]) -> bool:
    return not (value or '').strip()


def assure_account(
    episode_id: Optional[str],
    data: AssuranceInput,
    *,
    store: Optional[RecordStore] = None,
    settlement=None,
    timeout: Optional[float] = None,
) -> AssuranceResult:
    episode_id = (episode_id or '').strip()
    if not episode_id:
        raise AssuranceValidationError('Falta el ID de hospitalización')
    if _blank(data.patient_id) or _blank(data.operator):
        raise AssuranceValidationError()

    store = store or RecordStore()
    settlement = settlement or get_settlement_backend()
    deadline = _Deadline(settings.ACCOUNT_ASSURANCE_TIMEOUT if timeout is None else timeout)
    log = logger.bind(episode_id=episode_id, operator=data.operator)

    def run(tx: RecordStore) -> AssuranceResult:
        return _assure_in_transaction(tx, episode_id, data, settlement, deadline, log)

    try:
        result = store.atomic(run)
    except SettlementRejected as exc:
        log.warning('assurance.failed', reason=exc.message)
        return AssuranceResult(AssuranceStatus.FAILED, message=exc.message)
    except StorageError as exc:
        log.error('assurance.storage_error', error=repr(exc.__cause__ or exc))
        raise OperationFailed() from exc
    except OperationFailed as exc:
        log.error('assurance.rolled_back', reason=exc.message, error=repr(exc.__cause__ or exc))
        raise
    log.info('assurance.completed', status=result.status.value, account_id=result.account_id)
    return result


def _assure_in_transaction(tx, episode_id, data, settlement, deadline, log) -> AssuranceResult:
    episode = tx.fetch_episode(episode_id)
    if episode is None:
        raise EpisodeNotFound(episode_id)
    patient_id = (episode.patient_id or '').strip()
    log = log.bind(patient_id=patient_id)
    if patient_id != data.patient_id.strip():
        log.warning('assurance.patient_mismatch', requested=data.patient_id)

    eligibility = classify_insurance(episode.insurance)
    if not eligibility.requires_settlement:
        log.info('assurance.not_applicable', insurance=(episode.insurance or '').strip())
        return AssuranceResult(AssuranceStatus.NOT_APPLICABLE, message=MESSAGES[AssuranceStatus.NOT_APPLICABLE])
    deadline.check('lectura de hospitalización')

    existing = resolve_active_account(tx, patient_id)
    deadline.check('búsqueda de cuenta')
    if existing is not None:
        status = AssuranceStatus.LINKED_EXISTING
        log.info('assurance.account_found', account_id=existing.account_id)
    else:
        fields = asdict(data)
        fields['patient_id'] = patient_id
        request = SettlementRequest(**fields).with_defaults()
        outcome = settle(tx, settlement, request)
        if not outcome.ok:
            raise SettlementRejected(outcome.message)
        status = AssuranceStatus.CREATED_AND_LINKED
        deadline.check('liquidación')

    # The procedure and concurrent requests may have opened a newer
    # account since the lookup above; always link the current one.
    current = resolve_active_account(tx, patient_id)
    if current is None:
        raise OperationFailed('No se encontró una cuenta activa luego de la liquidación')
    deadline.check('vinculación')
    tx.link_account(episode_id, current.account_id, data.operator.strip())
    return AssuranceResult(status, account_id=current.account_id, message=MESSAGES[status])
