from datetime import datetime, timedelta, timezone

import pytest

from stock_signals.analytics.actions import build_proofs, frame_actions
from stock_signals.schemas import (
    ActionType,
    Confidence,
    ProofObject,
    Severity,
    Signal,
    SignalAction,
    SignalType,
)

DETECTED_AT = datetime(2026, 3, 15, 8, 30, tzinfo=timezone.utc)


def _proof(claim_type, summary="Only 2 days of stock remaining", product_id="OG-KUSH|3.5g"):
    return ProofObject(
        proof_id=f"p-{claim_type}",
        product_id=product_id,
        claim_type=claim_type,
        claim_summary=summary,
        confidence_score=0.67,
        risk_level=Severity.HIGH,
        detected_at=DETECTED_AT,
        valid_until=DETECTED_AT + timedelta(days=7),
    )


def _signal(signal_type, confidence=Confidence.HIGH, severity=Severity.CRITICAL, message="msg"):
    return Signal(
        sku="OG-KUSH",
        unit="3.5g",
        type=signal_type,
        severity=severity,
        confidence=confidence,
        message=message,
        action=SignalAction.REORDER_IMMEDIATELY,
        evidence={"days_until_depletion": 2},
    )


@pytest.mark.parametrize(
    "claim_type, action, urgency",
    [
        ("stockout_risk", ActionType.REORDER, Severity.HIGH),
        ("velocity_decline", ActionType.PROMOTE_OR_DISCOUNT, Severity.MEDIUM),
        ("velocity_growth", ActionType.INCREASE_REORDER_QTY, Severity.LOW),
    ],
)
def test_action_table(claim_type, action, urgency):
    [framed] = frame_actions([_proof(claim_type)])

    assert framed.action == action
    assert framed.urgency == urgency
    assert framed.product_id == "OG-KUSH|3.5g"
    assert framed.reason == "Only 2 days of stock remaining"


def test_unknown_claim_types_are_dropped():
    proofs = [_proof("margin_squeeze"), _proof("stockout_risk")]

    actions = frame_actions(proofs)

    assert [a.action for a in actions] == [ActionType.REORDER]


def test_no_proofs_no_actions():
    assert frame_actions([]) == []


def test_build_proofs_maps_signal_types():
    signals = [
        _signal(SignalType.CRITICAL_DEPLETION),
        _signal(SignalType.URGENT_REORDER, severity=Severity.HIGH),
        _signal(SignalType.DECELERATING_SALES, severity=Severity.MEDIUM),
        _signal(SignalType.ACCELERATING_SALES, severity=Severity.MEDIUM),
        _signal(SignalType.AGING_STOCK, severity=Severity.HIGH),
    ]

    proofs = build_proofs(signals, DETECTED_AT)

    assert [p.claim_type for p in proofs] == [
        "stockout_risk",
        "stockout_risk",
        "velocity_decline",
        "velocity_growth",
    ]


def test_proof_fields():
    [proof] = build_proofs(
        [_signal(SignalType.CRITICAL_DEPLETION, confidence=Confidence.MEDIUM, message="Critical!")],
        DETECTED_AT,
        valid_days=3,
    )

    assert proof.product_id == "OG-KUSH|3.5g"
    assert proof.proof_id == "20260315_stockout_risk_OG-KUSH|3.5g"
    assert proof.claim_summary == "Critical!"
    assert proof.confidence_score == pytest.approx(0.67)
    assert proof.confidence_level == Confidence.MEDIUM
    assert proof.risk_level == Severity.CRITICAL
    assert proof.valid_until == DETECTED_AT + timedelta(days=3)
    assert proof.evidence["signal_type"] == "CRITICAL_DEPLETION"
    assert proof.evidence["days_until_depletion"] == 2


def test_signals_to_actions_end_to_end():
    signals = [_signal(SignalType.CRITICAL_DEPLETION, message="Critical: Only 2 days of stock remaining")]

    [action] = frame_actions(build_proofs(signals, DETECTED_AT))

    assert action.action == ActionType.REORDER
    assert action.urgency == Severity.HIGH
    assert action.reason == "Critical: Only 2 days of stock remaining"
