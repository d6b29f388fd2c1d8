"""
Record store gateway: the only code that touches the hospitalization and
account tables or calls stored procedures.

A :class:`RecordStore` is bound to one database alias. The orchestrator
runs its whole sequence through :meth:`RecordStore.atomic`, and every
component receives the store explicitly, so there is no hidden global
transaction state. Database faults are re-raised as :class:`StorageError`
with the driver exception chained.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeVar

import structlog
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction

from hospitalization.exceptions import StorageError
from hospitalization.models import AccountStatus, BillingAccount, Hospitalization

logger = structlog.get_logger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class EpisodeSnapshot:
    episode_id: str
    patient_id: str
    insurance: Optional[str]


class RecordStore:
    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using

    def atomic(self, fn: Callable[['RecordStore'], T]) -> T:
        """Run ``fn(self)`` in one transaction; any exception rolls it back."""
        try:
            with transaction.atomic(using=self.using):
                return fn(self)
        except DatabaseError as exc:
            raise StorageError() from exc

    @property
    def vendor(self) -> str:
        return connections[self.using].vendor

    def fetch_episode(self, episode_id: str) -> Optional[EpisodeSnapshot]:
        try:
            row = (
                Hospitalization.objects.using(self.using)
                .filter(episode_id=episode_id)
                .values_list('episode_id', 'patient_id', 'insurance')
                .first()
            )
        except DatabaseError as exc:
            raise StorageError() from exc
        if row is None:
            return None
        return EpisodeSnapshot(*row)

    def active_accounts(self, patient_id: str) -> list[BillingAccount]:
        """Active accounts of a patient, most recently opened first."""
        try:
            return list(
                BillingAccount.objects.using(self.using)
                .filter(patient_id=patient_id, status=AccountStatus.ACTIVE)
                .order_by('-opened_at', '-account_id')
            )
        except DatabaseError as exc:
            raise StorageError() from exc

    def link_account(self, episode_id: str, account_id: str, operator: str) -> int:
        try:
            updated = (
                Hospitalization.objects.using(self.using)
                .filter(episode_id=episode_id)
                .update(account_id=account_id, operator=operator)
            )
        except DatabaseError as exc:
            raise StorageError() from exc
        logger.debug('store.episode_linked', episode_id=episode_id, account_id=account_id, rows=updated)
        return updated

    def call_procedure(self, name: str, params: Sequence[tuple[str, Any]]) -> list[dict[str, Any]]:
        """Execute a stored procedure and return its first result set.

        ``params`` keeps the procedure's declared order. SQL Server gets a
        named-parameter ``EXEC``; other backends go through ``callproc``.
        Column names are upper-cased so callers need not care how the
        driver reports them.
        """
        try:
            with connections[self.using].cursor() as cursor:
                if self.vendor == 'microsoft':
                    assignments = ', '.join(f'@{key} = %s' for key, _ in params)
                    cursor.execute(f'EXEC {name} {assignments}', [value for _, value in params])
                else:
                    cursor.callproc(name, [value for _, value in params])
                if cursor.description is None:
                    return []
                columns = [col[0].upper() for col in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
        except DatabaseError as exc:
            raise StorageError() from exc
