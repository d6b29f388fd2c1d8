from typing import NamedTuple, Optional

from hospitalization.models import InsurancePlan


class InsuranceEligibility(NamedTuple):
    requires_settlement: bool
    plan: Optional[InsurancePlan] = None


def classify_insurance(code: Optional[str]) -> InsuranceEligibility:
    # Stored codes are CHAR columns and come back padded with spaces.
    code = (code or '').strip()
    if code in InsurancePlan.values:
        return InsuranceEligibility(True, InsurancePlan(code))
    return InsuranceEligibility(False)
