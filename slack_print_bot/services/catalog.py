"""Dropdown data for the print request form: projects, printers, materials.

WHY: The modal has to open within Slack's three-second trigger window,
and the project list lives in a separate spreadsheet. Caching the list for
a few minutes keeps modal opens fast without going stale for long.

RULES:
- Projects come from PROJECT_RANGE of the project sheet, cached 5 minutes
- A failed project read logs and returns [] (the modal still opens)
- Printers and materials are static data from config
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

from cachetools import TTLCache

from slack_print_bot.config import ALL_MATERIALS, PRINTER_MATERIALS, PRINTERS
from slack_print_bot.core.errors import UpstreamError

logger = logging.getLogger(__name__)

PROJECT_RANGE = "Project Tracker!A:A"
PROJECT_CACHE_TTL_S = 300


class PrintCatalog:
    def __init__(self, sheet: Any, project_sheet_id: str, cache_ttl: float = PROJECT_CACHE_TTL_S) -> None:
        self.sheet = sheet
        self.project_sheet_id = project_sheet_id
        self._cache = TTLCache(maxsize=1, ttl=cache_ttl)
        self._lock = threading.Lock()

    def list_projects(self) -> List[str]:
        with self._lock:
            cached = self._cache.get("projects")
        if cached is not None:
            return list(cached)

        try:
            projects = self.sheet.list_column_values(self.project_sheet_id, PROJECT_RANGE)
        except UpstreamError:
            logger.exception("Failed to fetch projects from %s", self.project_sheet_id)
            return []

        logger.info("Projects fetched: %d from %s", len(projects), self.project_sheet_id)
        with self._lock:
            self._cache["projects"] = list(projects)
        return list(projects)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def list_printers(self) -> List[str]:
        return list(PRINTERS)

    def list_materials(self, printer: Optional[str] = None) -> List[str]:
        """Materials for one printer, or every material when none is chosen."""
        if printer and printer in PRINTER_MATERIALS:
            return list(PRINTER_MATERIALS[printer])
        return list(ALL_MATERIALS)
