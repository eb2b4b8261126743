"""
Proofs and actions.

Signals become proofs (evidence-backed claims), and proofs map to a fixed set
of operational actions. Claim types without an action are ignored.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

from stock_signals import settings
from stock_signals.schemas import (
    Action,
    ActionType,
    ProofObject,
    Severity,
    Signal,
    SignalType,
)

logger = logging.getLogger(__name__)

STOCKOUT_RISK = "stockout_risk"
VELOCITY_DECLINE = "velocity_decline"
VELOCITY_GROWTH = "velocity_growth"

# claim_type -> (action, urgency)
ACTION_TABLE = {
    STOCKOUT_RISK: (ActionType.REORDER, Severity.HIGH),
    VELOCITY_DECLINE: (ActionType.PROMOTE_OR_DISCOUNT, Severity.MEDIUM),
    VELOCITY_GROWTH: (ActionType.INCREASE_REORDER_QTY, Severity.LOW),
}

# signal type -> claim_type
CLAIM_TYPES = {
    SignalType.CRITICAL_DEPLETION: STOCKOUT_RISK,
    SignalType.URGENT_REORDER: STOCKOUT_RISK,
    SignalType.DECELERATING_SALES: VELOCITY_DECLINE,
    SignalType.ACCELERATING_SALES: VELOCITY_GROWTH,
}


def frame_actions(proofs: Iterable[ProofObject]) -> list[Action]:
    """One action per proof whose claim type has an entry in ACTION_TABLE."""
    actions = []
    for proof in proofs:
        mapping = ACTION_TABLE.get(proof.claim_type)
        if mapping is None:
            logger.debug(f"No action for claim type '{proof.claim_type}', skipping.")
            continue
        action, urgency = mapping
        actions.append(
            Action(
                action=action,
                product_id=proof.product_id,
                urgency=urgency,
                reason=proof.claim_summary,
            )
        )
    return actions


def _proof_id(detected_at: datetime, claim_type: str, product_id: str) -> str:
    # YYYYMMDD_claim_product
    return f"{detected_at:%Y%m%d}_{claim_type}_{product_id}".replace(" ", "_")


def build_proofs(
    signals: Iterable[Signal],
    detected_at: datetime,
    valid_days: Optional[int] = None,
    category: Optional[str] = None,
) -> list[ProofObject]:
    """Turns actionable signals into proofs valid for `valid_days`."""
    days = settings.PROOF_VALID_DAYS if valid_days is None else valid_days
    valid_until = detected_at + timedelta(days=days)

    proofs = []
    for signal in signals:
        claim_type = CLAIM_TYPES.get(signal.type)
        if claim_type is None:
            continue
        product_id = str(signal.key)
        proofs.append(
            ProofObject(
                proof_id=_proof_id(detected_at, claim_type, product_id),
                product_id=product_id,
                category=category,
                claim_type=claim_type,
                claim_summary=signal.message,
                evidence={"signal_type": signal.type.value, **signal.evidence},
                confidence_score=round(signal.confidence.level / 3, 2),
                confidence_level=signal.confidence,
                risk_level=signal.severity,
                detected_at=detected_at,
                valid_until=valid_until,
            )
        )
    return proofs
