"""Storage and database actions, stubbed until real connectors exist."""

from __future__ import annotations

import logging
import time
from typing import Any, TYPE_CHECKING

from .base import BaseActionHandler

if TYPE_CHECKING:
    from ..engine.types import ExecutionResult, WorkflowContext

logger = logging.getLogger(__name__)


class DriveUploadHandler(BaseActionHandler):
    aliases = ("googleDriveUpload", "drive_upload")
    category = "storage"

    @property
    def key(self) -> str:
        return "google_drive_upload"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        file_name = self.get_parameter(config, "fileName", "file_name")
        if not file_name:
            return self.fail("fileName is required")
        logger.info(f"Simulated upload of {file_name}")
        return self.ok(
            {
                "action": "google_drive_upload",
                "fileName": file_name,
                "folderId": self.get_parameter(config, "folderId", "folder_id"),
                "status": "uploaded",
                "fileId": f"file_{int(time.time() * 1000)}",
            }
        )


class DatabaseQueryHandler(BaseActionHandler):
    """Echoes the query back without touching any database."""

    aliases = ("databaseQuery",)
    category = "database"

    @property
    def key(self) -> str:
        return "database_query"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        query = self.get_parameter(config, "query", "sql")
        if not query:
            return self.fail("query is required")
        return self.ok(
            {
                "action": "database_query",
                "query": query,
                "parameters": self.get_parameter(config, "parameters", default={}),
                "status": "not_executed",
                "rows": [],
            }
        )
