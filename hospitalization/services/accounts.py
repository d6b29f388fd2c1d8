from typing import Optional

from hospitalization.models import BillingAccount
from hospitalization.services.store import RecordStore


def resolve_active_account(store: RecordStore, patient_id: str) -> Optional[BillingAccount]:
    """Current active account of a patient: the most recently opened one.

    Ties on the opening timestamp are broken by the highest account ID.
    """
    accounts = store.active_accounts(patient_id)
    return accounts[0] if accounts else None
