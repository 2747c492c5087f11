"""
Tests for procurement_config: YAML loading, validation and the config trace.
"""

from decimal import Decimal

import pytest
import yaml

from procurement_config import ConfigValidationError, EngineConfig, get_active_config
from procurement_config.loader import compute_checksum, parse_engine_config
from procurement_kernel.exceptions import RevisionLimitExceededError
from procurement_services.workflow_coordinator import WorkflowCoordinator


def _write(tmp_path, data) -> str:
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaultConfig:
    def test_defaults(self):
        config = get_active_config()
        assert isinstance(config, EngineConfig)
        assert config.config_id == "default"
        assert config.currency == "VND"
        assert config.max_revision_cycles == 5
        assert config.payment.provider == "MOMO"
        assert config.payment.success_codes == (0,)
        assert config.payment.commission_rate == Decimal("0.01")
        assert config.payment.commission_step == Decimal("1000")
        assert config.notifications.enabled is True

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_emits_config_trace(self, captured_logs):
        config = get_active_config()
        trace = [r for r in captured_logs() if r["message"] == "ENGINE_CONFIG_TRACE"]
        assert trace[-1]["trace_type"] == "ENGINE_CONFIG_TRACE"
        assert trace[-1]["checksum"] == config.checksum
        assert trace[-1]["config_version"] == 1


class TestCustomFile:
    def test_overrides(self, tmp_path):
        path = _write(tmp_path, {
            "config_id": "pilot",
            "version": 3,
            "currency": "usd",
            "workflow": {"max_revision_cycles": None},
            "payment": {
                "provider": "momo",
                "success_codes": [0, 9000],
                "commission_rate": "0.02",
                "commission_step": 5000,
            },
            "notifications": {"enabled": False},
        })
        config = get_active_config(path)

        assert config.config_id == "pilot"
        assert config.version == 3
        assert config.currency == "USD"
        assert config.max_revision_cycles is None
        assert config.payment.provider == "MOMO"
        assert config.payment.is_success(9000)
        assert not config.payment.is_success(1006)
        assert config.payment.commission_rate == Decimal("0.02")
        assert config.payment.commission_step == Decimal("5000")
        assert config.notifications.enabled is False

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = get_active_config(path)
        assert config.max_revision_cycles == 5
        assert config.checksum == compute_checksum({})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")

    def test_checksum_tracks_content(self, tmp_path):
        first = parse_engine_config({"currency": "VND"})
        second = parse_engine_config({"currency": "VND", "version": 2})
        assert first.checksum != second.checksum


@pytest.mark.parametrize("data,key", [
    ({"currency": "XYZ"}, "currency"),
    ({"workflow": {"max_revision_cycles": 0}}, "workflow.max_revision_cycles"),
    ({"workflow": {"max_revision_cycles": "5"}}, "workflow.max_revision_cycles"),
    ({"workflow": {"max_revision_cycles": True}}, "workflow.max_revision_cycles"),
    ({"workflow": ["not", "a", "mapping"]}, "workflow"),
    ({"version": "one"}, "version"),
    ({"payment": {"provider": ""}}, "payment.provider"),
    ({"payment": {"success_codes": []}}, "payment.success_codes"),
    ({"payment": {"success_codes": ["0"]}}, "payment.success_codes"),
    ({"payment": {"commission_rate": "1"}}, "payment.commission_rate"),
    ({"payment": {"commission_rate": "-0.01"}}, "payment.commission_rate"),
    ({"payment": {"commission_rate": 0.01}}, "payment.commission_rate"),
    ({"payment": {"commission_step": 0}}, "payment.commission_step"),
    ({"payment": {"commission_step": "lots"}}, "payment.commission_step"),
    ({"notifications": {"enabled": "yes"}}, "notifications.enabled"),
])
def test_invalid_values(data, key):
    with pytest.raises(ConfigValidationError) as exc_info:
        parse_engine_config(data)
    assert exc_info.value.key == key
    assert isinstance(exc_info.value, ValueError)


def test_revision_cap_flows_into_coordinator(tmp_path, session_factory, deterministic_clock,
                                             homeowner, contractor, submitted_proposal):
    config = get_active_config(_write(tmp_path, {"workflow": {"max_revision_cycles": 1}}))
    coordinator = WorkflowCoordinator(session_factory, config=config, clock=deterministic_clock)

    coordinator.request_revision(homeowner, submitted_proposal.id)
    coordinator.resubmit_proposal(contractor, submitted_proposal.id, [], "1000")
    with pytest.raises(RevisionLimitExceededError):
        coordinator.request_revision(homeowner, submitted_proposal.id)
