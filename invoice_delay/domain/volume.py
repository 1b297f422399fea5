"""Gross volume gate - decides whether invoice delay processing runs"""

from decimal import Decimal
from typing import Iterable

from invoice_delay.domain.models import Charge, VolumeSnapshot
from invoice_delay.utils.date_utils import DayRange

SUCCEEDED = "succeeded"


def to_major_units(amount_cents: int) -> Decimal:
    """
    Convert a provider minor-unit amount to a decimal major-unit amount.

    Assumes a two-decimal currency. Zero- and three-decimal currencies are
    rejected when settings load, so this never sees one.
    """
    return Decimal(amount_cents).scaleb(-2)


def evaluate_volume(
    charges: Iterable[Charge],
    target_currency: str,
    threshold: Decimal,
    date_range: DayRange,
    possibly_truncated: bool = False,
) -> VolumeSnapshot:
    """
    Sum successful charges in the target currency.

    Charges in another currency or not in "succeeded" state are left out of
    both the sum and the snapshot's charge list. possibly_truncated carries
    over from the source: a truncated listing gives a lower bound, not the
    full day.
    """
    currency = target_currency.lower()
    counted = [
        charge
        for charge in charges
        if charge.status == SUCCEEDED and charge.currency.lower() == currency
    ]
    volume = sum((to_major_units(charge.amount_cents) for charge in counted), Decimal("0.00"))

    return VolumeSnapshot(
        volume=volume,
        currency=target_currency.upper(),
        threshold=threshold,
        charges=counted,
        date_range=date_range,
        possibly_truncated=possibly_truncated,
    )


def is_gate_open(snapshot: VolumeSnapshot) -> bool:
    """Open iff volume >= threshold (reaching the limit exactly counts)"""
    return snapshot.volume >= snapshot.threshold
