"""Tests for workflow configuration loading and validation."""

from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from contentflow.config import (
    RetrySettings,
    WorkflowConfig,
    build_workflow_config,
    load_workflow_config,
)
from contentflow.exceptions import ConfigurationError


class TestBuildWorkflowConfig:
    def test_defaults(self):
        config = build_workflow_config()

        assert config.review_timeout == timedelta(hours=72)
        assert config.projection_retry == RetrySettings()

    def test_hours_shorthand(self):
        config = build_workflow_config({"review_timeout_hours": 1.5})
        assert config.review_timeout == timedelta(minutes=90)

    def test_seconds_shorthand(self):
        config = build_workflow_config({"review_timeout_seconds": 30})
        assert config.review_timeout == timedelta(seconds=30)

    def test_both_shorthands_rejected(self):
        with pytest.raises(ConfigurationError):
            build_workflow_config({"review_timeout_hours": 1, "review_timeout_seconds": 60})

    @pytest.mark.parametrize(
        "raw",
        [
            {"review_timeout_hours": 0},
            {"review_timeout_seconds": -1},
            {"review_timeout_hours": "soon"},
            {"max_revision_count": -1},
            {"projection_retry": {"max_retries": -2}},
        ],
    )
    def test_invalid_values(self, raw):
        with pytest.raises(ConfigurationError) as exc:
            build_workflow_config(raw)
        assert exc.value.error_code == "INVALID_CONFIGURATION"

    def test_revalidates_model_instances(self):
        bypassed = WorkflowConfig.model_construct(review_timeout=timedelta(0))

        with pytest.raises(ConfigurationError):
            build_workflow_config(bypassed)

    def test_round_trips_through_json_snapshot(self):
        config = build_workflow_config({"review_timeout_hours": 48, "max_revision_count": 3})

        restored = WorkflowConfig.model_validate(config.model_dump(mode="json"))

        assert restored == config


class TestLoadWorkflowConfig:
    def test_loads_approval_section(self, tmp_path):
        path = tmp_path / "approval.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "approval": {
                        "review_timeout_hours": 24,
                        "max_revision_count": 2,
                        "validation_enabled": False,
                    }
                }
            )
        )

        config = load_workflow_config(path)

        assert config.review_timeout == timedelta(hours=24)
        assert config.max_revision_count == 2
        assert config.validation_enabled is False

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config not found"):
            load_workflow_config(tmp_path / "nope.yaml")

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "approval.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            load_workflow_config(path)

    def test_bundled_config(self):
        config = load_workflow_config(Path(__file__).parents[2] / "workflows" / "approval.yaml")

        assert config.review_timeout == timedelta(hours=72)
        assert config.max_revision_count == 5
