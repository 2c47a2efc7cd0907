"""
Work Item service for Azure DevOps.

Loads the work item snapshot the analytics run on and fetches relation data
for the relationship resolver.
"""
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from azure.devops.v7_1.work_item_tracking.models import (
    Wiql,
    WorkItemBatchGetRequest
)
from azure.devops.v7_1.work.models import TeamContext

from ..constants import (
    ANALYTICS_FIELDS,
    RELATION_FIELDS,
    ROW_FIELD_NAMES,
    ExpandOptions,
    FieldNames,
    QueryLimits,
)
from ..decorators import azure_devops_operation
from ..errors import QueryTooLargeError
from ..validation import sanitize_wiql_string, validate_area_path, validate_wiql

logger = logging.getLogger(__name__)


class WorkItemService:
    """Read-only work item access for one project"""

    def __init__(self, auth, project: str, area_path: Optional[str] = None):
        """
        Initialize work item service

        Args:
            auth: AzureDevOpsAuth instance
            project: Azure DevOps project name
            area_path: Default area path to scope loads to
        """
        self.auth = auth
        self.project = project
        self.area_path = area_path
        self._wit_client = None

    @property
    def wit_client(self):
        """Lazy load work item tracking client"""
        if not self._wit_client:
            self._wit_client = self.auth.get_client('work_item_tracking')
        return self._wit_client

    def build_snapshot_query(self, area_path: Optional[str] = None) -> str:
        """WIQL selecting every work item of the project, optionally under an area path."""
        project = sanitize_wiql_string(self.project)
        wiql_query = f"""SELECT [{FieldNames.ID}]
FROM WorkItems
WHERE [{FieldNames.TEAM_PROJECT}] = '{project}'"""

        area_path = validate_area_path(area_path, self.project)
        if area_path:
            wiql_query += f" AND [{FieldNames.AREA_PATH}] UNDER '{sanitize_wiql_string(area_path)}'"

        wiql_query += f" ORDER BY [{FieldNames.CHANGED_DATE}] DESC"
        return validate_wiql(wiql_query)

    @azure_devops_operation(timeout_seconds=120, max_retries=3)
    async def load_work_items(self, area_path: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Load all work items of the project as row records.

        Args:
            area_path: Area path to scope the load to (defaults to the
                service's area path)

        Returns:
            List of records keyed by row field names ("ID", "State",
            "Assigned To", ...)

        Raises:
            QueryTooLargeError: If the query matches more than MAX_LIMIT items
        """
        wiql = Wiql(query=self.build_snapshot_query(area_path or self.area_path))
        team_context = TeamContext(project=self.project)
        query_result = self.wit_client.query_by_wiql(
            wiql,
            team_context=team_context,
            top=QueryLimits.MAX_LIMIT + 1
        )

        if not query_result.work_items:
            logger.info(f"No work items found in project {self.project}")
            return []

        ids = [item.id for item in query_result.work_items]
        if len(ids) > QueryLimits.MAX_LIMIT:
            raise QueryTooLargeError(
                result_count=len(ids),
                max_results=QueryLimits.MAX_LIMIT
            )

        work_items = await self._batch_get_work_items(ids, fields=ANALYTICS_FIELDS)
        records = [self._format_work_item(wi) for wi in work_items]

        logger.info(f"Loaded {len(records)} work items from project {self.project}")
        return records

    async def _batch_get_work_items(self, ids: List[int], fields: List[str]) -> List[Any]:
        """Fetch work items in chunks of BATCH_SIZE (200)."""
        all_items = []
        for i in range(0, len(ids), QueryLimits.BATCH_SIZE):
            batch_ids = ids[i:i + QueryLimits.BATCH_SIZE]
            batch_items = self.wit_client.get_work_items(
                ids=batch_ids,
                fields=fields,
                error_policy='omit'
            )
            # Omitted (deleted or inaccessible) items come back as None
            all_items.extend(wi for wi in batch_items or [] if wi is not None)
            logger.debug(f"Fetched work items {i + 1}-{i + len(batch_ids)} of {len(ids)}")
        return all_items

    # RelationshipResolver owns the retry policy: one simplified retry per batch
    @azure_devops_operation(timeout_seconds=60, max_retries=0)
    async def fetch_relations_batch(self, ids: List[int], simplified: bool = False) -> List[Dict[str, Any]]:
        """
        Fetch one batch of work items with their relations.

        The full request names the fields it needs; the simplified request
        sends only IDs and the Relations expand, for servers that reject
        the combination.

        Args:
            ids: Up to BATCH_SIZE work item IDs
            simplified: Send the simplified request

        Returns:
            [{"id": int, "fields": {...}, "relations": [{"rel": str, "url": str}]}]
        """
        if simplified:
            request = WorkItemBatchGetRequest(ids=ids, expand=ExpandOptions.RELATIONS)
        else:
            request = WorkItemBatchGetRequest(
                ids=ids,
                fields=RELATION_FIELDS,
                expand=ExpandOptions.RELATIONS
            )

        work_items = self.wit_client.get_work_items_batch(request, project=self.project)
        return [self._format_relations(wi) for wi in work_items or [] if wi is not None]

    def _format_work_item(self, wi) -> Dict[str, Any]:
        """Format a work item as a row record"""
        fields = wi.fields or {}

        record = {}
        for reference_name, row_name in ROW_FIELD_NAMES.items():
            value = fields.get(reference_name)
            if reference_name == FieldNames.ASSIGNED_TO:
                value = self._format_identity(value)
            elif isinstance(value, datetime):
                value = self._format_date(value)
            record[row_name] = value

        record['ID'] = wi.id
        return record

    def _format_relations(self, wi) -> Dict[str, Any]:
        return {
            'id': wi.id,
            'fields': dict(wi.fields or {}),
            'relations': [
                {'rel': relation.rel, 'url': relation.url}
                for relation in wi.relations or []
            ]
        }

    @staticmethod
    def _format_identity(identity) -> Optional[str]:
        """Format identity field"""
        if not identity:
            return None
        if isinstance(identity, dict):
            return identity.get('displayName') or identity.get('uniqueName')
        return str(identity)

    @staticmethod
    def _format_date(date) -> Optional[str]:
        """Format date field"""
        if not date:
            return None
        if isinstance(date, datetime):
            return date.isoformat()
        return str(date)
