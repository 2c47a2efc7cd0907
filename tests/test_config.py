"""
Unit tests for environment configuration.
"""

from datetime import datetime, timezone

import pytest

from ado_insights.config import InsightsConfig
from ado_insights.validation import ValidationError

BASE_ENV = {
    "AZURE_DEVOPS_ORG_URL": "https://dev.azure.com/contoso/",
    "AZURE_DEVOPS_PROJECT": "Apollo",
}


class TestInsightsConfig:
    """Test InsightsConfig.from_env."""

    def test_defaults(self):
        config = InsightsConfig.from_env(BASE_ENV)
        assert config.organization_url == "https://dev.azure.com/contoso"
        assert config.project == "Apollo"
        assert config.area_path is None
        assert config.sprint_length_weeks == 2
        assert config.sprint_start_date is None
        assert config.relations_batch_size == 200
        assert config.relations_batch_delay == 0.1

    def test_all_settings(self):
        env = dict(
            BASE_ENV,
            AZURE_DEVOPS_AREA_PATH="Web",
            SPRINT_LENGTH_WEEKS="3",
            SPRINT_START_DATE="2024-01-08",
            RELATIONS_BATCH_SIZE="100",
            RELATIONS_BATCH_DELAY_SECONDS="0",
        )
        config = InsightsConfig.from_env(env)

        assert config.area_path == "Apollo\\Web"
        assert config.sprint_length_weeks == 3
        assert config.sprint_start_date == datetime(2024, 1, 8, tzinfo=timezone.utc)
        assert config.relations_batch_size == 100
        assert config.relations_batch_delay == 0

    def test_sprint_config(self):
        env = dict(BASE_ENV, SPRINT_LENGTH_WEEKS="1", SPRINT_START_DATE="2024-01-08")
        sprint_config = InsightsConfig.from_env(env).sprint_config
        assert sprint_config.length_weeks == 1
        assert sprint_config.is_configured

    def test_blank_values_use_defaults(self):
        env = dict(BASE_ENV, SPRINT_LENGTH_WEEKS="  ", SPRINT_START_DATE="")
        config = InsightsConfig.from_env(env)
        assert config.sprint_length_weeks == 2
        assert config.sprint_start_date is None

    @pytest.mark.parametrize("missing", ["AZURE_DEVOPS_ORG_URL", "AZURE_DEVOPS_PROJECT"])
    def test_missing_required(self, missing):
        env = {k: v for k, v in BASE_ENV.items() if k != missing}
        with pytest.raises(ValidationError, match=missing):
            InsightsConfig.from_env(env)

    def test_invalid_value(self):
        with pytest.raises(ValidationError):
            InsightsConfig.from_env(dict(BASE_ENV, SPRINT_LENGTH_WEEKS="fortnight"))

    def test_reads_process_environment(self, monkeypatch):
        for key, value in BASE_ENV.items():
            monkeypatch.setenv(key, value)
        for key in ("AZURE_DEVOPS_AREA_PATH", "SPRINT_LENGTH_WEEKS", "SPRINT_START_DATE",
                    "RELATIONS_BATCH_SIZE", "RELATIONS_BATCH_DELAY_SECONDS"):
            monkeypatch.delenv(key, raising=False)
        assert InsightsConfig.from_env().project == "Apollo"
