"""
Budget alert dispatcher.

Decides whether a threshold-crossing notification is warranted after a
write that could change a budget's usage. The dispatcher keeps no
"already alerted" state: in ``edge`` mode the caller passes the ledger
computed before the write and an alert fires only when usage moves from
under to over the threshold. ``always`` mode fires on every evaluation
that finds the budget over threshold.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple, Union

from budget_tracker.models.budget import Budget
from budget_tracker.services.ledger_service import LedgerSnapshot
from budget_tracker.services.notification_service import Recipient

logger = logging.getLogger(__name__)

ALERT_MODE_EDGE = "edge"
ALERT_MODE_ALWAYS = "always"


@dataclass(frozen=True)
class Fire:
    """Intent to notify the budget owner about a threshold crossing."""
    owner_id: int
    budget_id: int
    spent_amount: Decimal
    usage_percentage: int


@dataclass(frozen=True)
class Suppress:
    reason: str = "under_threshold"


NotifyDecision = Union[Fire, Suppress]


def evaluate(
    budget: Budget,
    ledger: LedgerSnapshot,
    previous: Optional[LedgerSnapshot] = None,
    mode: str = ALERT_MODE_EDGE
) -> NotifyDecision:
    if not ledger.is_over_threshold:
        return Suppress()
    if mode == ALERT_MODE_EDGE and previous is not None and previous.is_over_threshold:
        return Suppress(reason="already_over_threshold")
    return Fire(
        owner_id=budget.owner_id,
        budget_id=budget.id,
        spent_amount=ledger.spent_amount,
        usage_percentage=ledger.usage_percentage
    )


def build_alert_payload(budget: Budget, ledger: LedgerSnapshot) -> dict:
    """Template payload for a ``budget_alert`` notification."""
    return {
        "budget_id": budget.id,
        "budget_name": budget.name,
        "currency": ledger.currency,
        "amount": Decimal(str(budget.amount)),
        "spent_amount": ledger.spent_amount,
        "remaining_amount": ledger.remaining_amount,
        "usage_percentage": ledger.usage_percentage,
        "alert_threshold": budget.alert_threshold,
    }


def build_notification(
    decision: NotifyDecision,
    budget: Budget,
    ledger: LedgerSnapshot
) -> Optional[Tuple[Recipient, str, dict]]:
    """
    Resolve a decision into ``(recipient, template_kind, payload)`` for the
    notification sender, or None when nothing should be sent. The result
    holds no ORM state, so it can be delivered after the session closes.
    """
    if isinstance(decision, Suppress):
        logger.debug(f"Budget {budget.id} alert suppressed ({decision.reason})")
        return None

    owner = budget.owner
    if owner is None or not owner.email:
        logger.warning(f"Budget {budget.id} crossed its threshold but has no owner email")
        return None

    logger.info(
        f"Budget {budget.id} at {decision.usage_percentage}% "
        f"(threshold {budget.alert_threshold}%), alerting owner {owner.id}"
    )
    return Recipient.from_user(owner), "budget_alert", build_alert_payload(budget, ledger)


def dispatch(decision: NotifyDecision, budget: Budget, ledger: LedgerSnapshot, sender) -> bool:
    """Send the notification for a Fire decision. Suppress is a no-op."""
    notification = build_notification(decision, budget, ledger)
    if notification is None:
        return False
    return sender.send(*notification)
