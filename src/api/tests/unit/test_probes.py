"""Unit tests for domain probes.

Tests that domain probes correctly capture domain events
following the Domain Oriented Observability pattern.
"""

from unittest.mock import MagicMock

import structlog

from custody.application.observability import (
    DefaultAssignmentServiceProbe,
    DefaultOverdueServiceProbe,
)
from custody.infrastructure.observability import (
    DefaultAssignmentRepositoryProbe,
    DefaultSweepWorkerProbe,
)
from infrastructure.observability import (
    DefaultConnectionProbe,
    DefaultStartupProbe,
    ObservationContext,
)


class TestConnectionProbe:
    """Tests for ConnectionProbe protocol and implementation."""

    def test_default_probe_creates_with_default_logger(self):
        """Default probe should work without explicit logger."""
        probe = DefaultConnectionProbe()
        assert probe._logger is not None

    def test_engine_created_logs_info(self):
        """engine_created should log host, database and pool size."""
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.engine_created(host="localhost", database="keyward", pool_size=10)

        mock_logger.info.assert_called_once_with(
            "database_engine_created",
            host="localhost",
            database="keyward",
            pool_size=10,
        )

    def test_pool_closed_logs_info(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.pool_closed()

        mock_logger.info.assert_called_once_with("connection_pool_closed")


class TestStartupProbe:
    """Tests for application lifecycle events."""

    def test_application_starting_logs_version(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultStartupProbe(logger=mock_logger)

        probe.application_starting("1.2.3")

        mock_logger.info.assert_called_once_with("application_starting", version="1.2.3")

    def test_sweep_worker_enabled_logs_interval(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultStartupProbe(logger=mock_logger)

        probe.sweep_worker_enabled(300.0)

        mock_logger.info.assert_called_once_with(
            "sweep_worker_enabled", interval_seconds=300.0
        )

    def test_with_context_keeps_logger(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultStartupProbe(logger=mock_logger).with_context(
            ObservationContext(request_id="req-1")
        )

        probe.application_stopped()

        mock_logger.info.assert_called_once_with(
            "application_stopped", request_id="req-1"
        )


class TestObservationContext:
    """Tests for ObservationContext."""

    def test_as_dict_omits_none_values(self):
        context = ObservationContext(actor_id="security-desk")

        assert context.as_dict() == {"actor_id": "security-desk"}

    def test_key_is_namespaced(self):
        context = ObservationContext(request_id="req-1").with_key("01KEY")

        assert context.as_dict() == {"request_id": "req-1", "context_key_id": "01KEY"}

    def test_with_extra_merges(self):
        context = ObservationContext(extra={"a": 1}).with_extra(b=2)

        assert context.extra == {"a": 1, "b": 2}


class TestAssignmentServiceProbe:
    """Tests for assignment service events."""

    def test_transition_includes_context(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultAssignmentServiceProbe(logger=mock_logger).with_context(
            ObservationContext(actor_id="security-desk")
        )

        probe.assignment_transitioned("01A", "01K", "collect", "active")

        mock_logger.info.assert_called_once_with(
            "assignment_transitioned",
            assignment_id="01A",
            key_id="01K",
            operation="collect",
            status="active",
            actor_id="security-desk",
        )

    def test_proof_rejected_logs_warning(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultAssignmentServiceProbe(logger=mock_logger)

        probe.proof_rejected("collection", "ExpiredProofError", "Proof expired")

        mock_logger.warning.assert_called_once_with(
            "proof_rejected",
            action="collection",
            reason="ExpiredProofError",
            error="Proof expired",
        )


class TestOverdueServiceProbe:
    """Tests for overdue monitor events."""

    def test_sweep_completed_logs_counts(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultOverdueServiceProbe(logger=mock_logger)

        probe.sweep_completed(2, 1, 0)

        mock_logger.info.assert_called_once_with(
            "sweep_completed",
            assignments_overdue=2,
            delegations_expired=1,
            reminders_retried=0,
        )

    def test_sweep_item_skipped_logs_warning(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultOverdueServiceProbe(logger=mock_logger)

        probe.sweep_item_skipped("01A", "changed concurrently")

        mock_logger.warning.assert_called_once()


class TestRepositoryProbes:
    """Tests for persistence events."""

    def test_stale_write_logs_warning(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultAssignmentRepositoryProbe(logger=mock_logger)

        probe.stale_assignment_write("01A", expected_version=3)

        mock_logger.warning.assert_called_once_with(
            "stale_assignment_write", assignment_id="01A", expected_version=3
        )

    def test_with_context_preserves_probe_type(self):
        probe = DefaultAssignmentRepositoryProbe(logger=MagicMock())

        bound = probe.with_context(ObservationContext(request_id="req-1"))

        assert isinstance(bound, DefaultAssignmentRepositoryProbe)

    def test_sweep_failure_logs_error(self):
        mock_logger = MagicMock(spec=structlog.stdlib.BoundLogger)
        probe = DefaultSweepWorkerProbe(logger=mock_logger)

        probe.sweep_failed("database unavailable")

        mock_logger.error.assert_called_once_with(
            "sweep_failed", error="database unavailable"
        )
