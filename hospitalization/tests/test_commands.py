from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import override_settings

from hospitalization.models import Hospitalization

pytestmark = [
    pytest.mark.django_db,
    pytest.mark.usefixtures('scripted_settlement'),
]


@pytest.fixture
def scripted_settlement():
    with override_settings(ACCOUNT_SETTLEMENT_BACKEND='hospitalization.tests.doubles.ScriptedSettlement'):
        yield


def test_command_links_account():
    Hospitalization.objects.create(episode_id='H-1001', patient_id='P55', insurance='02')
    out = StringIO()

    call_command('assure_account', 'H-1001', '--patient', 'P55', '--user', 'jperez', '--origin', 'EM', stdout=out)

    assert 'created_and_linked' in out.getvalue()
    assert 'A900' in out.getvalue()
    assert Hospitalization.objects.get(episode_id='H-1001').account_id == 'A900'


def test_command_reports_not_applicable():
    Hospitalization.objects.create(episode_id='H-2002', patient_id='P77', insurance='20')
    out = StringIO()

    call_command('assure_account', 'H-2002', '--patient', 'P77', '--user', 'jperez', stdout=out)

    assert 'not_applicable' in out.getvalue()


def test_command_fails_for_unknown_episode():
    with pytest.raises(CommandError, match='not_found'):
        call_command('assure_account', 'H-404', '--patient', 'P55', '--user', 'jperez')


@override_settings(ACCOUNT_SETTLEMENT_BACKEND='hospitalization.tests.doubles.RejectingSettlement')
def test_command_fails_when_settlement_is_rejected():
    Hospitalization.objects.create(episode_id='H-1001', patient_id='P55', insurance='0')

    with pytest.raises(CommandError, match='Paciente sin afiliación vigente'):
        call_command('assure_account', 'H-1001', '--patient', 'P55', '--user', 'jperez')
