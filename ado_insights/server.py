"""
Azure DevOps Team Insights MCP Server
Team and sprint performance metrics computed from Azure DevOps work items
"""
from fastmcp import FastMCP, Context
from typing import Optional, List, Dict, Any
import logging
import os
import sys
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from dotenv import load_dotenv

from .auth import AzureDevOpsAuth
from .config import InsightsConfig
from .services.metrics_service import MetricsService
from .services.workitem_service import WorkItemService

logger = logging.getLogger(__name__)

# Initialized during lifespan startup
_auth = None
_metrics_service = None


@asynccontextmanager
async def lifespan(app):
    """Initialize services on startup"""
    global _auth, _metrics_service

    load_dotenv()
    config = InsightsConfig.from_env()

    _auth = AzureDevOpsAuth(config.organization_url)
    await _auth.initialize()

    workitem_service = WorkItemService(_auth, config.project, area_path=config.area_path)
    _metrics_service = MetricsService.from_config(workitem_service, config)

    yield  # Server runs

    await _auth.close()


mcp = FastMCP(
    name="Azure DevOps Team Insights",
    lifespan=lifespan
)


# ============================================================================
# TOOLS
# ============================================================================

@mcp.tool()
async def refresh_work_items(
    area_path: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Reload the work item snapshot from Azure DevOps.

    All metrics are recomputed from the new snapshot and relation data is
    fetched again on next use.

    Args:
        area_path: Optional area path to scope the snapshot to.
                  If None, uses the configured area path (or the whole project).

    Returns:
        Dictionary with the snapshot version and work item count
    """
    await ctx.info(f"Loading work items from project: {_metrics_service.workitem_service.project}...")
    dataset = await _metrics_service.load(area_path)
    await ctx.info(f"Loaded {len(dataset)} work items")

    return {
        "dataset_version": dataset.version,
        "work_items": len(dataset),
        "loaded_at": datetime.now(timezone.utc).isoformat()
    }


@mcp.tool()
async def get_team_metrics(ctx: Context = None) -> List[Dict[str, Any]]:
    """
    Get per-member performance metrics.

    Includes velocity, completion rate, efficiency, cycle and lead time,
    bug ratio (with the method used to compute it) and a performance level.
    Unassigned work is excluded.

    Returns:
        List of member metrics, highest completed story points first
    """
    members = await _metrics_service.team_metrics()
    await ctx.info(f"Computed metrics for {len(members)} team members")
    return members


@mcp.tool()
async def get_sprint_metrics(
    include_items: bool = False,
    ctx: Context = None
) -> List[Dict[str, Any]]:
    """
    Get per-sprint metrics.

    Args:
        include_items: Include the full work item records of each sprint.
                      If False, only their IDs are returned.

    Returns:
        List of sprints, newest first, with counts, story points, bug
        ratio, rework rate and scope change
    """
    sprints = await _metrics_service.sprint_metrics(include_items=include_items)
    await ctx.info(f"Computed metrics for {len(sprints)} sprints")
    return sprints


@mcp.tool()
async def get_team_overview(ctx: Context = None) -> Dict[str, Any]:
    """
    Get team-wide totals and cycle time percentiles (p50, p70, p85, p95).
    """
    return await _metrics_service.team_overview()


@mcp.tool()
async def get_current_sprint(ctx: Context = None) -> Dict[str, Any]:
    """
    Get the current sprint number, days remaining and cross-sprint averages.

    The sprint number is derived from SPRINT_START_DATE and
    SPRINT_LENGTH_WEEKS; it is 0 when no start date is configured.
    """
    return await _metrics_service.current_sprint()


# ============================================================================
# RESOURCES
# ============================================================================

@mcp.resource("insights://team")
async def team_resource(ctx: Context = None) -> str:
    """Markdown summary of team performance"""
    overview = await _metrics_service.team_overview()
    members = await _metrics_service.team_metrics()

    rows = "\n".join(
        f"| {m['assignee']} | {m['velocity']} | {m['completion_rate']}% | "
        f"{m['avg_cycle_time']}d | {m['bug_ratio']}% | {m['performance_level']} |"
        for m in members
    )
    percentiles = overview['cycle_time_percentiles']

    return f"""# Team Overview
**Project:** {_metrics_service.workitem_service.project}

- Members: {overview['total_members']} ({overview['active_members']} active)
- Work Items: {overview['total_work_items']} ({overview['completed_items']} completed)
- Story Points: {overview['total_story_points']}
- Average Completion Rate: {overview['avg_completion_rate']}%
- Cycle Time p50/p85: {percentiles.get('p50', 0)}d / {percentiles.get('p85', 0)}d

## Members
| Member | Velocity | Completion | Cycle Time | Bug Ratio | Level |
|---|---|---|---|---|---|
{rows}
"""


# ============================================================================
# MONITORING TOOLS
# ============================================================================

@mcp.tool()
async def health_check(ctx: Context = None) -> Dict[str, Any]:
    """
    Get server health status for monitoring.

    Returns:
        Dictionary with health status, authentication info and snapshot state
    """
    auth_info = _auth.get_auth_info() if _auth else None
    return {
        "status": "healthy" if auth_info and auth_info.get("authenticated") else "unhealthy",
        "service": "Azure DevOps Team Insights",
        "authenticated": auth_info.get("authenticated") if auth_info else False,
        "auth_method": auth_info.get("method") if auth_info else None,
        "organization": auth_info.get("organization_url") if auth_info else None,
        "dataset_loaded": _metrics_service.is_loaded if _metrics_service else False
    }


@mcp.tool()
async def get_service_statistics(ctx: Context = None) -> Dict[str, Any]:
    """
    Get snapshot and relation cache statistics.
    """
    if not _metrics_service:
        return {"error": "Metrics service not initialized"}

    return {
        "metrics_service": _metrics_service.get_statistics(),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    transport_mode = os.getenv("MCP_TRANSPORT", "http").lower()

    if transport_mode == "stdio":
        logger.info("Starting MCP server in STDIO mode")
        mcp.run()
    else:
        port = int(os.getenv("PORT", 8000))
        logger.info(f"Starting MCP server with HTTP streaming on port {port} (http://localhost:{port}/mcp)")
        mcp.run(transport="streamable-http", port=port, host="0.0.0.0")
