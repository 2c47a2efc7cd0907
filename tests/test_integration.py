"""
Integration tests against a live Azure DevOps organization.

Requires AZURE_DEVOPS_ORG_URL, AZURE_DEVOPS_PROJECT and working credentials.
Run with: pytest -m integration
"""

import os

import pytest
import pytest_asyncio

from ado_insights.auth import AzureDevOpsAuth
from ado_insights.config import InsightsConfig
from ado_insights.services.metrics_service import MetricsService
from ado_insights.services.workitem_service import WorkItemService

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not (os.getenv("AZURE_DEVOPS_ORG_URL") and os.getenv("AZURE_DEVOPS_PROJECT")),
        reason="Azure DevOps credentials not configured"
    ),
]


@pytest_asyncio.fixture
async def live_service():
    config = InsightsConfig.from_env()
    auth = AzureDevOpsAuth(config.organization_url)
    await auth.initialize()
    workitem_service = WorkItemService(auth, config.project, area_path=config.area_path)
    yield MetricsService.from_config(workitem_service, config)
    await auth.close()


@pytest.mark.asyncio
async def test_load_and_aggregate(live_service):
    dataset = await live_service.load()
    members = await live_service.team_metrics()
    sprints = await live_service.sprint_metrics()

    assert len(dataset) >= 0
    for member in members:
        assert 0 <= member["completion_rate"] <= 100
        assert 0 <= member["bug_ratio"] <= 100
    for bucket in sprints:
        assert bucket["total"] == len(bucket["member_ids"])


@pytest.mark.asyncio
async def test_current_sprint(live_service):
    data = await live_service.current_sprint()
    assert data["current_sprint"] >= 0
    assert data["days_remaining"] >= 0
