"""
Constants and field definitions for Azure DevOps analytics.

Defines the canonical fields the analytics core understands, the alias
table that maps them onto the different record schemas Azure DevOps
produces, and the field sets used when loading work items.
"""

from enum import Enum
from typing import Dict, List, Tuple


# ============================================================================
# Field Reference Names
# ============================================================================

class FieldNames:
    """Azure DevOps field reference names."""

    # System fields
    ID = "System.Id"
    TITLE = "System.Title"
    AREA_PATH = "System.AreaPath"
    TEAM_PROJECT = "System.TeamProject"
    ITERATION_PATH = "System.IterationPath"
    WORK_ITEM_TYPE = "System.WorkItemType"
    STATE = "System.State"
    REASON = "System.Reason"
    ASSIGNED_TO = "System.AssignedTo"
    CREATED_DATE = "System.CreatedDate"
    CHANGED_DATE = "System.ChangedDate"
    BOARD_COLUMN = "System.BoardColumn"
    TAGS = "System.Tags"

    # Microsoft.VSTS.Common fields
    STATE_CHANGE_DATE = "Microsoft.VSTS.Common.StateChangeDate"
    ACTIVATED_DATE = "Microsoft.VSTS.Common.ActivatedDate"
    RESOLVED_DATE = "Microsoft.VSTS.Common.ResolvedDate"
    CLOSED_DATE = "Microsoft.VSTS.Common.ClosedDate"
    PRIORITY = "Microsoft.VSTS.Common.Priority"
    SEVERITY = "Microsoft.VSTS.Common.Severity"

    # Microsoft.VSTS.Scheduling fields
    STORY_POINTS = "Microsoft.VSTS.Scheduling.StoryPoints"
    EFFORT = "Microsoft.VSTS.Scheduling.Effort"
    SIZE = "Microsoft.VSTS.Scheduling.Size"

    # CMMI
    BLOCKED = "Microsoft.VSTS.CMMI.Blocked"


# ============================================================================
# Canonical fields and alias resolution
# ============================================================================

class CanonicalField(Enum):
    """Semantic attributes of a work item record."""

    ID = "id"
    TITLE = "title"
    TYPE = "type"
    STATE = "state"
    BOARD_COLUMN = "board_column"
    ASSIGNEE = "assignee"
    STORY_POINTS = "story_points"
    CREATED_DATE = "created_date"
    CHANGED_DATE = "changed_date"
    ACTIVATED_DATE = "activated_date"
    RESOLVED_DATE = "resolved_date"
    CLOSED_DATE = "closed_date"
    STATE_CHANGE_DATE = "state_change_date"
    ITERATION_PATH = "iteration_path"
    TAGS = "tags"
    REASON = "reason"
    BLOCKED = "blocked"


# Ordered alias keys per canonical field. The first key of each list is the
# row-query name, followed by the Analytics (OData) column name and the raw
# REST reference name.
FIELD_ALIASES: Dict[CanonicalField, Tuple[str, ...]] = {
    CanonicalField.ID: ("ID", "Id", "WorkItemId", FieldNames.ID, "id"),
    CanonicalField.TITLE: ("Title", FieldNames.TITLE),
    CanonicalField.TYPE: ("Work Item Type", "WorkItemType", "Type", FieldNames.WORK_ITEM_TYPE),
    CanonicalField.STATE: ("State", "Status", FieldNames.STATE),
    CanonicalField.BOARD_COLUMN: ("Board Column", "BoardColumn", FieldNames.BOARD_COLUMN),
    CanonicalField.ASSIGNEE: (
        "Assigned To", "AssignedTo", "Assignee", "AssignedToUserName", FieldNames.ASSIGNED_TO
    ),
    CanonicalField.STORY_POINTS: (
        "Story Points", "StoryPoints", "Points", "Effort", "Size",
        FieldNames.STORY_POINTS, FieldNames.EFFORT, FieldNames.SIZE
    ),
    CanonicalField.CREATED_DATE: ("Created Date", "CreatedDate", FieldNames.CREATED_DATE),
    CanonicalField.CHANGED_DATE: ("Changed Date", "ChangedDate", FieldNames.CHANGED_DATE),
    CanonicalField.ACTIVATED_DATE: ("Activated Date", "ActivatedDate", FieldNames.ACTIVATED_DATE),
    CanonicalField.RESOLVED_DATE: ("Resolved Date", "ResolvedDate", FieldNames.RESOLVED_DATE),
    CanonicalField.CLOSED_DATE: ("Closed Date", "ClosedDate", FieldNames.CLOSED_DATE),
    CanonicalField.STATE_CHANGE_DATE: (
        "State Change Date", "StateChangeDate", FieldNames.STATE_CHANGE_DATE
    ),
    CanonicalField.ITERATION_PATH: ("Iteration Path", "IterationPath", FieldNames.ITERATION_PATH),
    CanonicalField.TAGS: ("Tags", "Labels", FieldNames.TAGS),
    CanonicalField.REASON: ("Reason", FieldNames.REASON),
    CanonicalField.BLOCKED: ("Blocked", FieldNames.BLOCKED),
}


# ============================================================================
# Field Sets for Work Item Loading
# ============================================================================

# Fields needed to compute team and sprint metrics
ANALYTICS_FIELDS: List[str] = [
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.WORK_ITEM_TYPE,
    FieldNames.STATE,
    FieldNames.REASON,
    FieldNames.ASSIGNED_TO,
    FieldNames.CREATED_DATE,
    FieldNames.CHANGED_DATE,
    FieldNames.ITERATION_PATH,
    FieldNames.AREA_PATH,
    FieldNames.BOARD_COLUMN,
    FieldNames.TAGS,
    FieldNames.STORY_POINTS,
    FieldNames.PRIORITY,
    FieldNames.SEVERITY,
    FieldNames.ACTIVATED_DATE,
    FieldNames.RESOLVED_DATE,
    FieldNames.CLOSED_DATE,
    FieldNames.STATE_CHANGE_DATE,
]

# Fields requested alongside relations
RELATION_FIELDS: List[str] = [
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.WORK_ITEM_TYPE,
    FieldNames.ASSIGNED_TO,
]

# Row-record key for each loaded reference name
ROW_FIELD_NAMES: Dict[str, str] = {
    FieldNames.ID: "ID",
    FieldNames.TITLE: "Title",
    FieldNames.WORK_ITEM_TYPE: "Work Item Type",
    FieldNames.STATE: "State",
    FieldNames.REASON: "Reason",
    FieldNames.ASSIGNED_TO: "Assigned To",
    FieldNames.CREATED_DATE: "Created Date",
    FieldNames.CHANGED_DATE: "Changed Date",
    FieldNames.ITERATION_PATH: "Iteration Path",
    FieldNames.AREA_PATH: "Area Path",
    FieldNames.BOARD_COLUMN: "Board Column",
    FieldNames.TAGS: "Tags",
    FieldNames.STORY_POINTS: "Story Points",
    FieldNames.PRIORITY: "Priority",
    FieldNames.SEVERITY: "Severity",
    FieldNames.ACTIVATED_DATE: "Activated Date",
    FieldNames.RESOLVED_DATE: "Resolved Date",
    FieldNames.CLOSED_DATE: "Closed Date",
    FieldNames.STATE_CHANGE_DATE: "State Change Date",
}


# ============================================================================
# Query Limits
# ============================================================================

class QueryLimits:
    """Limits for work item and relation queries."""

    # Maximum allowed by Azure DevOps API
    MAX_LIMIT = 20000

    # Batch size for work item retrieval
    BATCH_SIZE = 200

    # Pause between sequential relation batches
    RELATION_BATCH_DELAY_SECONDS = 0.1


# ============================================================================
# Expand Options
# ============================================================================

class ExpandOptions:
    """Work item expand options for Azure DevOps API."""

    RELATIONS = "Relations"


# ============================================================================
# Work Item Types
# ============================================================================

class WorkItemTypes:
    """Work item types the metrics distinguish."""

    USER_STORY = "User Story"
    PRODUCT_BACKLOG_ITEM = "Product Backlog Item"
    BUG = "Bug"

    # Types that contribute story points to velocity
    VELOCITY_TYPES = (USER_STORY, PRODUCT_BACKLOG_ITEM)

    # Types whose children are queried for bug ratio
    RELATION_PARENT_TYPES = (USER_STORY,)


# ============================================================================
# Common States
# ============================================================================

class WorkItemStates:
    """Default state taxonomy across the common process templates."""

    ACTIVE = "Active"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    DONE = "Done"
    COMPLETED = "Completed"
    ACCEPTED = "Accepted"
    BLOCKED = "Blocked"
    IN_PROGRESS = "In Progress"
    COMMITTED = "Committed"
    IN_REVIEW = "In Review"

    COMPLETED_STATES = (CLOSED, DONE, COMPLETED, RESOLVED, ACCEPTED)

    DONE_COLUMNS = (DONE, CLOSED, COMPLETED)

    IN_PROGRESS_STATES = (
        ACTIVE, IN_PROGRESS, COMMITTED, "Open", "In Development", IN_REVIEW, "Testing"
    )


# ============================================================================
# Link Types
# ============================================================================

class LinkTypes:
    """Work item link types."""

    HIERARCHY_FORWARD = "System.LinkTypes.Hierarchy-Forward"
    HIERARCHY_REVERSE = "System.LinkTypes.Hierarchy-Reverse"
    RELATED = "System.LinkTypes.Related"


# ============================================================================
# Sprint Defaults
# ============================================================================

class SprintDefaults:
    """Defaults for sprint bucketing."""

    LENGTH_WEEKS = 2
    PRE_SPRINT_NAME = "Pre-Sprint"
    UNASSIGNED = "Unassigned"

    # Sprint length assumed when estimating sprint count from project age
    FALLBACK_LENGTH_WEEKS = 2
