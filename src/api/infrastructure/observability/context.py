"""Observation context for domain-oriented observability.

Observation contexts collect and manage contextual metadata for instrumentation,
following the Domain Oriented Observability pattern.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ObservationContext:
    """Immutable context containing metadata for observability.

    Captures request-scoped and domain-relevant metadata that should be
    included with all instrumentation events.

    Attributes:
        request_id: Unique identifier for the current request/operation.
        actor_id: Principal performing the operation (if applicable).
        key_id: Key being operated on (if applicable).
        extra: Additional contextual metadata.

    Example:
        context = ObservationContext(request_id="req-123", actor_id="desk-1")
        probe = DefaultAssignmentServiceProbe().with_context(context)
    """

    request_id: str | None = None
    actor_id: str | None = None
    key_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging.

        Only includes non-None values to keep logs clean.
        """
        result: dict[str, Any] = {}
        if self.request_id is not None:
            result["request_id"] = self.request_id
        if self.actor_id is not None:
            result["actor_id"] = self.actor_id
        if self.key_id is not None:
            result["context_key_id"] = self.key_id
        result.update(self.extra)
        return result

    def with_key(self, key_id: str) -> ObservationContext:
        """Create a new context with the key set."""
        return ObservationContext(
            request_id=self.request_id,
            actor_id=self.actor_id,
            key_id=key_id,
            extra=self.extra,
        )

    def with_extra(self, **kwargs: Any) -> ObservationContext:
        """Create a new context with additional metadata."""
        new_extra = {**self.extra, **kwargs}
        return ObservationContext(
            request_id=self.request_id,
            actor_id=self.actor_id,
            key_id=self.key_id,
            extra=new_extra,
        )
