"""
Tests for self-telemetry resource and provider shutdown.
"""

from unittest.mock import MagicMock, patch

from tracewarden.core import otel_config
from tracewarden.core.config import settings


def test_resource_describes_instance():
    with patch.object(settings, "HOSTNAME", "node-a"):
        attributes = otel_config.build_resource().attributes

    assert attributes["service.name"] == "tracewarden"
    assert attributes["host.name"] == "node-a"
    assert attributes["tracewarden.span_retention_limit"] == settings.SPAN_RETENTION_LIMIT


def test_shutdown_runs_every_provider_in_reverse_order():
    calls = []
    first = MagicMock()
    first.shutdown.side_effect = lambda: calls.append("first")
    second = MagicMock()
    second.shutdown.side_effect = lambda: calls.append("second")
    providers = [first, second]

    with patch.object(otel_config, "_providers", providers):
        assert otel_config.shutdown_otel() == 2

    assert calls == ["second", "first"]
    assert providers == []


def test_failing_provider_does_not_block_the_rest():
    broken = MagicMock()
    broken.shutdown.side_effect = RuntimeError("collector unreachable")
    healthy = MagicMock()

    with patch.object(otel_config, "_providers", [healthy, broken]):
        assert otel_config.shutdown_otel() == 1

    healthy.shutdown.assert_called_once()


def test_shutdown_without_providers_is_a_no_op():
    with patch.object(otel_config, "_providers", []):
        assert otel_config.shutdown_otel() == 0
