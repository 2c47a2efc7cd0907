#!/usr/bin/env python
"""Print team and sprint metrics for the configured project"""
import asyncio
from dotenv import load_dotenv
from ado_insights.auth import AzureDevOpsAuth
from ado_insights.config import InsightsConfig
from ado_insights.services.metrics_service import MetricsService
from ado_insights.services.workitem_service import WorkItemService

async def main():
    load_dotenv()
    config = InsightsConfig.from_env()

    print(f"🔗 Organization: {config.organization_url}")
    print(f"📁 Project: {config.project}\n")

    auth = AzureDevOpsAuth(config.organization_url)
    await auth.initialize()

    workitem_service = WorkItemService(auth, config.project, area_path=config.area_path)
    metrics_service = MetricsService.from_config(workitem_service, config)

    dataset = await metrics_service.load()
    print(f"Loaded {len(dataset)} work items")

    print("=" * 70)
    print("👥 TEAM")
    print("=" * 70)

    for member in await metrics_service.team_metrics():
        print(f"\n{member['assignee']} ({member['performance_level']})")
        print(f"   Velocity: {member['velocity']} pts/sprint")
        print(f"   Completion: {member['completion_rate']}%  Efficiency: {member['efficiency']}%")
        print(f"   Avg Cycle Time: {member['avg_cycle_time']} days")
        print(f"   Bug Ratio: {member['bug_ratio']}% - {member['bug_ratio_explanation']}")

    print(f"\n{'=' * 70}")
    print("🏃 SPRINTS")
    print("=" * 70)

    for sprint in await metrics_service.sprint_metrics():
        print(f"\n{sprint['name']} ({sprint['method']})")
        print(f"   Items: {sprint['completed']}/{sprint['total']} completed, {sprint['blocked']} blocked")
        print(f"   Story Points: {sprint['completed_story_points']}/{sprint['story_points']}")
        print(f"   Bug Ratio: {sprint['bug_ratio']}%  Rework: {sprint['rework_rate']}%  "
              f"Scope Change: {sprint['scope_change']}%")

    current = await metrics_service.current_sprint()
    if current['current_sprint']:
        print(f"\n⏰ Sprint {current['current_sprint']}: {current['days_remaining']} days remaining")

    await auth.close()

if __name__ == '__main__':
    asyncio.run(main())
