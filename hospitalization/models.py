"""
Database models for the hospitalization backend.

The hospitalization (``HOSPITALIZA``) and account (``CUENTA``) tables are
owned by the hospital information system; the models map their legacy
column names onto readable attribute names. Django only manages the
schema when ``LEGACY_SCHEMA_MANAGED`` is on (development and tests).
"""
from __future__ import annotations

from django.conf import settings
from django.db import models


class InsurancePlan(models.TextChoices):
    """Insurance codes that require a settled billing account."""
    PAGANTE = '0', 'Pagante'
    SOAT = '02', 'SOAT'
    OTHER_PROGRAMS = '17', 'Otros programas'


class AccountStatus(models.TextChoices):
    ACTIVE = '1', 'Activa'
    CLOSED = '0', 'Cerrada'


class AttentionOrigin(models.TextChoices):
    HOSPITALIZATION = 'HO', 'Hospitalización'
    EMERGENCY = 'EM', 'Emergencia'
    OUTPATIENT = 'CE', 'Consulta externa'


class Hospitalization(models.Model):
    """A hospitalization episode as registered by the admission process.

    Episodes are created upstream. This app only ever writes the linked
    account and the operating user.
    """
    episode_id = models.CharField(max_length=20, primary_key=True, db_column='IDHOSPITALIZACION')
    patient_id = models.CharField(max_length=20, db_column='PACIENTE', db_index=True)
    insurance = models.CharField(max_length=5, blank=True, null=True, db_column='SEGURO')
    company = models.CharField(max_length=10, blank=True, null=True, db_column='EMPRESA')
    office = models.CharField(max_length=10, blank=True, null=True, db_column='CONSULTORIO')
    physician = models.CharField(max_length=120, blank=True, null=True, db_column='NOMBRE')
    admitted_on = models.CharField(max_length=10, blank=True, null=True, db_column='FECHA')
    admitted_at = models.CharField(max_length=8, blank=True, null=True, db_column='HORA')
    observation = models.CharField(max_length=255, blank=True, null=True, db_column='OBSERVA')
    origin = models.CharField(max_length=2, choices=AttentionOrigin.choices, blank=True, null=True, db_column='ORIGEN')
    operator = models.CharField(max_length=30, blank=True, null=True, db_column='USUARIO')
    fua_number = models.CharField(max_length=30, blank=True, null=True, db_column='NROFUA')
    service_code = models.CharField(max_length=10, blank=True, null=True, db_column='PRESTA')
    account_id = models.CharField(max_length=20, blank=True, null=True, db_column='CUENTAID')

    class Meta:
        db_table = 'HOSPITALIZA'
        managed = settings.LEGACY_SCHEMA_MANAGED

    def __str__(self) -> str:
        return f"{self.episode_id} (paciente {self.patient_id})"


class BillingAccount(models.Model):
    """A billing account opened by the settlement procedure."""
    account_id = models.CharField(max_length=20, primary_key=True, db_column='CUENTAID')
    patient_id = models.CharField(max_length=20, db_column='PACIENTE')
    status = models.CharField(max_length=1, choices=AccountStatus.choices, default=AccountStatus.ACTIVE, db_column='ESTADO')
    opened_at = models.DateTimeField(db_column='FECHA_APERTURA')

    class Meta:
        db_table = 'CUENTA'
        managed = settings.LEGACY_SCHEMA_MANAGED
        indexes = [
            models.Index(fields=['patient_id', 'status', 'opened_at']),
        ]

    def __str__(self) -> str:
        return f"{self.account_id} ({self.patient_id}, estado {self.status})"
