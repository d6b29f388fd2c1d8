from datetime import timedelta

import pytest
from django.db import DatabaseError, OperationalError
from django.utils import timezone

from hospitalization.exceptions import (
    AssuranceTimeout,
    AssuranceValidationError,
    EpisodeNotFound,
    OperationFailed,
    StorageError,
)
from hospitalization.models import AccountStatus, BillingAccount, Hospitalization
from hospitalization.services import assurance as assurance_module
from hospitalization.services.accounts import resolve_active_account
from hospitalization.services.assurance import AssuranceInput, AssuranceStatus, assure_account
from hospitalization.services.settlement import StoredProcedureSettlement
from hospitalization.services.store import RecordStore
from hospitalization.tests.doubles import RacingSettlement, RejectingSettlement, ScriptedSettlement

pytestmark = pytest.mark.django_db


def make_episode(episode_id='H-1001', patient='P55', insurance=' 02', account=None):
    return Hospitalization.objects.create(
        episode_id=episode_id, patient_id=patient, insurance=insurance, account_id=account,
    )


def open_account(account_id, patient='P55', status=AccountStatus.ACTIVE, age_days=0):
    return BillingAccount.objects.create(
        account_id=account_id, patient_id=patient, status=status,
        opened_at=timezone.now() - timedelta(days=age_days),
    )


def request_for(patient='P55', operator='jperez', **extra):
    return AssuranceInput(patient_id=patient, operator=operator, **extra)


def test_new_account_is_settled_and_linked():
    make_episode()
    settlement = ScriptedSettlement()

    result = assure_account('H-1001 ', request_for(), settlement=settlement)

    assert result.status == AssuranceStatus.CREATED_AND_LINKED
    assert result.account_id == 'A900'
    assert result.ok
    episode = Hospitalization.objects.get(episode_id='H-1001')
    assert episode.account_id == 'A900'
    assert episode.operator == 'jperez'

    assert len(settlement.calls) == 1
    sent = settlement.calls[0]
    assert sent.patient_id == 'P55'
    assert sent.insurance == '02'
    assert sent.company == '0'
    assert sent.office == '2090'
    assert sent.origin == 'HO'
    assert sent.observation == '.'
    assert sent.fua_number == '.'
    assert sent.service_code == '.'
    assert sent.physician == ''
    assert sent.admitted_on == timezone.localtime().strftime('%d/%m/%Y')


def test_second_call_reuses_the_settled_account():
    make_episode()
    settlement = ScriptedSettlement()

    first = assure_account('H-1001', request_for(), settlement=settlement)
    second = assure_account('H-1001', request_for(), settlement=settlement)

    assert first.status == AssuranceStatus.CREATED_AND_LINKED
    assert second.status == AssuranceStatus.LINKED_EXISTING
    assert second.account_id == first.account_id
    assert len(settlement.calls) == 1
    assert BillingAccount.objects.filter(patient_id='P55').count() == 1


def test_existing_account_is_linked_without_settlement():
    make_episode()
    open_account('A100')
    settlement = ScriptedSettlement()

    for _ in range(2):
        result = assure_account('H-1001', request_for(), settlement=settlement)
        assert result.status == AssuranceStatus.LINKED_EXISTING
        assert result.account_id == 'A100'
        assert Hospitalization.objects.get(episode_id='H-1001').account_id == 'A100'
    assert settlement.calls == []


def test_most_recent_active_account_wins():
    make_episode()
    open_account('A100', age_days=30)
    open_account('A200', age_days=1)
    open_account('A300', status=AccountStatus.CLOSED)

    result = assure_account('H-1001', request_for(), settlement=ScriptedSettlement())

    assert result.account_id == 'A200'


def test_resolver_breaks_opening_ties_by_account_id():
    opened = timezone.now()
    BillingAccount.objects.create(account_id='A010', patient_id='P55', status=AccountStatus.ACTIVE, opened_at=opened)
    BillingAccount.objects.create(account_id='A020', patient_id='P55', status=AccountStatus.ACTIVE, opened_at=opened)

    assert resolve_active_account(RecordStore(), 'P55').account_id == 'A020'
    assert resolve_active_account(RecordStore(), 'P99') is None


def test_ineligible_insurance_is_not_applicable_and_writes_nothing():
    make_episode(insurance='20', account='A1')
    settlement = ScriptedSettlement()

    result = assure_account('H-1001', request_for(operator='otro'), settlement=settlement)

    assert result.status == AssuranceStatus.NOT_APPLICABLE
    assert not result.ok
    assert result.account_id is None
    episode = Hospitalization.objects.get(episode_id='H-1001')
    assert episode.account_id == 'A1'
    assert episode.operator is None
    assert settlement.calls == []
    assert not BillingAccount.objects.exists()


def test_insurance_is_read_from_storage_not_from_the_request():
    make_episode(insurance='20')

    result = assure_account('H-1001', request_for(insurance='02'), settlement=ScriptedSettlement())

    assert result.status == AssuranceStatus.NOT_APPLICABLE


def test_rejected_settlement_leaves_episode_untouched():
    make_episode(account='A-OLD')

    result = assure_account('H-1001', request_for(), settlement=RejectingSettlement())

    assert result.status == AssuranceStatus.FAILED
    assert result.message == 'Paciente sin afiliación vigente'
    assert result.account_id is None
    episode = Hospitalization.objects.get(episode_id='H-1001')
    assert episode.account_id == 'A-OLD'
    assert episode.operator is None


def test_link_targets_account_opened_concurrently():
    make_episode()

    result = assure_account('H-1001', request_for(), settlement=RacingSettlement())

    assert result.status == AssuranceStatus.CREATED_AND_LINKED
    assert result.account_id == 'A999'
    assert Hospitalization.objects.get(episode_id='H-1001').account_id == 'A999'


def test_explicit_request_fields_reach_the_procedure():
    make_episode()
    settlement = ScriptedSettlement()

    assure_account('H-1001', request_for(
        insurance='17', company='5', office='3001', observation='traslado',
        admitted_on='01/02/2024', admitted_at='08:30:00', physician='Dr. Rojas',
        origin='EM', fua_number='F-77', service_code='056',
    ), settlement=settlement)

    sent = settlement.calls[0]
    assert (sent.insurance, sent.company, sent.office, sent.origin) == ('17', '5', '3001', 'EM')
    assert (sent.admitted_on, sent.admitted_at) == ('01/02/2024', '08:30:00')
    assert (sent.physician, sent.fua_number, sent.service_code) == ('Dr. Rojas', 'F-77', '056')


@pytest.mark.parametrize('episode_id, data', [
    ('  ', request_for()),
    ('H-1001', request_for(patient='')),
    ('H-1001', request_for(operator=None)),
    ('H-1001', request_for(operator='   ')),
])
def test_missing_required_fields_fail_before_any_io(episode_id, data, django_assert_num_queries):
    with django_assert_num_queries(0):
        with pytest.raises(AssuranceValidationError):
            assure_account(episode_id, data, settlement=ScriptedSettlement())


def test_unknown_episode_is_not_found():
    with pytest.raises(EpisodeNotFound):
        assure_account('H-404', request_for(), settlement=ScriptedSettlement())


def test_storage_error_during_link_rolls_back_settlement(monkeypatch):
    make_episode()

    def broken_link(self, *args, **kwargs):
        raise DatabaseError('UPDATE HOSPITALIZA failed')

    monkeypatch.setattr(RecordStore, 'link_account', broken_link)
    with pytest.raises(OperationFailed) as excinfo:
        assure_account('H-1001', request_for(), settlement=ScriptedSettlement())

    assert 'HOSPITALIZA' not in excinfo.value.message
    assert isinstance(excinfo.value.__cause__.__cause__, DatabaseError)
    assert not BillingAccount.objects.exists()
    assert Hospitalization.objects.get(episode_id='H-1001').account_id is None


def test_statement_timeout_in_procedure_rolls_back(monkeypatch):
    make_episode()

    def timed_out(self, name, params):
        raise StorageError() from OperationalError('Query timeout expired')

    monkeypatch.setattr(RecordStore, 'call_procedure', timed_out)
    with pytest.raises(OperationFailed) as excinfo:
        assure_account('H-1001', request_for(), settlement=StoredProcedureSettlement())

    assert isinstance(excinfo.value.__cause__.__cause__, OperationalError)
    assert Hospitalization.objects.get(episode_id='H-1001').account_id is None


def test_timeout_after_settlement_rolls_back_the_link(monkeypatch):
    make_episode()
    # deadline start, after episode read, after account lookup, after settlement
    ticks = iter([0, 0, 0, 100])
    monkeypatch.setattr(assurance_module, 'monotonic', lambda: next(ticks, 100))
    settlement = ScriptedSettlement()

    with pytest.raises(AssuranceTimeout):
        assure_account('H-1001', request_for(), settlement=settlement, timeout=5)

    assert len(settlement.calls) == 1
    assert not BillingAccount.objects.exists()
    assert Hospitalization.objects.get(episode_id='H-1001').account_id is None
