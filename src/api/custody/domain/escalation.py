"""Overdue reminder escalation tiers."""

from custody.domain.value_objects import EscalationTier

# Upper bound (inclusive) of days overdue for each tier, in ascending order.
_TIER_BOUNDS: tuple[tuple[int, EscalationTier], ...] = (
    (0, EscalationTier.NONE),
    (3, EscalationTier.LOW),
    (7, EscalationTier.MEDIUM),
    (14, EscalationTier.HIGH),
)


def escalation_tier(days_overdue: int) -> EscalationTier:
    """Map days overdue to reminder urgency.

    0 days is none, 1-3 low, 4-7 medium, 8-14 high, anything later critical.
    The tier prioritizes notifications; it never changes assignment state.
    """
    for bound, tier in _TIER_BOUNDS:
        if days_overdue <= bound:
            return tier
    return EscalationTier.CRITICAL
