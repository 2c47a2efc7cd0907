"""
Configuration from environment variables.

Variables:
    AZURE_DEVOPS_ORG_URL            Organization URL (required)
    AZURE_DEVOPS_PROJECT            Project name (required)
    AZURE_DEVOPS_AREA_PATH          Area path to scope the snapshot to
    SPRINT_LENGTH_WEEKS             Sprint length in weeks (default 2)
    SPRINT_START_DATE               Start of sprint 1, ISO date
    RELATIONS_BATCH_SIZE            IDs per relations request (default 200)
    RELATIONS_BATCH_DELAY_SECONDS   Pause between relations requests (default 0.1)
"""
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from .constants import QueryLimits, SprintDefaults
from .sprints import SprintConfig
from .validation import (
    ValidationError,
    validate_area_path,
    validate_batch_delay,
    validate_batch_size,
    validate_sprint_length,
    validate_start_date,
)


@dataclass(frozen=True)
class InsightsConfig:
    organization_url: str
    project: str
    area_path: Optional[str] = None
    sprint_length_weeks: int = SprintDefaults.LENGTH_WEEKS
    sprint_start_date: Optional[datetime] = None
    relations_batch_size: int = QueryLimits.BATCH_SIZE
    relations_batch_delay: float = QueryLimits.RELATION_BATCH_DELAY_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InsightsConfig":
        """
        Build and validate configuration from the environment.

        Raises:
            ValidationError: If a required variable is missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(name)
            return value.strip() if value and value.strip() else None

        org_url = get("AZURE_DEVOPS_ORG_URL")
        project = get("AZURE_DEVOPS_PROJECT")
        missing = [
            name for name, value in
            (("AZURE_DEVOPS_ORG_URL", org_url), ("AZURE_DEVOPS_PROJECT", project))
            if not value
        ]
        if missing:
            raise ValidationError(f"Missing required environment variable(s): {', '.join(missing)}")

        length = get("SPRINT_LENGTH_WEEKS")
        batch_size = get("RELATIONS_BATCH_SIZE")
        batch_delay = get("RELATIONS_BATCH_DELAY_SECONDS")

        return cls(
            organization_url=org_url.rstrip('/'),
            project=project,
            area_path=validate_area_path(get("AZURE_DEVOPS_AREA_PATH"), project),
            sprint_length_weeks=(
                validate_sprint_length(length) if length else SprintDefaults.LENGTH_WEEKS
            ),
            sprint_start_date=validate_start_date(get("SPRINT_START_DATE")),
            relations_batch_size=(
                validate_batch_size(batch_size) if batch_size else QueryLimits.BATCH_SIZE
            ),
            relations_batch_delay=(
                validate_batch_delay(batch_delay) if batch_delay
                else QueryLimits.RELATION_BATCH_DELAY_SECONDS
            )
        )

    @property
    def sprint_config(self) -> SprintConfig:
        return SprintConfig(
            length_weeks=self.sprint_length_weeks,
            start_date=self.sprint_start_date
        )
