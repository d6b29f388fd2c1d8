from django.core.management.base import BaseCommand, CommandError

from hospitalization.exceptions import AssuranceError
from hospitalization.serializers.assurance import AccountAssuranceSerializer
from hospitalization.services.assurance import AssuranceStatus, assure_account

OPTIONAL_FIELDS = [
    ('insurance', 'seguro'),
    ('company', 'empresa'),
    ('office', 'consultorio'),
    ('observation', 'observa'),
    ('date', 'fecha'),
    ('time', 'hora'),
    ('physician', 'nombre'),
    ('origin', 'origen'),
    ('fua', 'nrofua'),
    ('service', 'presta'),
]


class Command(BaseCommand):
    help = "Link a hospitalization episode to the patient's active billing account, settling one if required."

    def add_arguments(self, parser):
        parser.add_argument('episode', help='Hospitalization ID (IDHOSPITALIZACION)')
        parser.add_argument('--patient', required=True)
        parser.add_argument('--user', required=True, help='Operating user recorded on the episode')
        for option, _ in OPTIONAL_FIELDS:
            parser.add_argument(f'--{option}')

    def handle(self, *args, **opts):
        payload = {'paciente': opts['patient'], 'usuario': opts['user']}
        for option, key in OPTIONAL_FIELDS:
            if opts.get(option) is not None:
                payload[key] = opts[option]
        s = AccountAssuranceSerializer(data=payload)
        if not s.is_valid():
            raise CommandError(f"invalid arguments: {s.errors}")
        try:
            result = assure_account(opts['episode'], s.to_input())
        except AssuranceError as e:
            raise CommandError(f"{e.code}: {e.message}") from e

        if result.status == AssuranceStatus.FAILED:
            raise CommandError(f"settlement failed: {result.message}")
        line = f"{result.status.value}: {result.message}"
        if result.account_id:
            line += f" (cuenta {result.account_id})"
        style = self.style.SUCCESS if result.ok else self.style.WARNING
        self.stdout.write(style(line))
