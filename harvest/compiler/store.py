"""
JSON Repository

File-backed Repository used by the CLI and HTTP trigger. Data is kept per
workspace and persisted to ~/.harvest/store.json (or held in memory only
when no path is given).

Layout:
    {
      "<workspace_id>": {
        "sources":   [Source, ...],
        "cases":     [Case, ...],
        "knowledge": [Knowledge, ...]
      }
    }
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..common.errors import RepositoryError
from ..common.schemas import Case, Knowledge, Source, generate_knowledge_id
from .interfaces import Repository

logger = logging.getLogger("harvest.compiler.store")


class JsonRepository(Repository):
    """Workspace-scoped sources, cases and knowledge in one JSON file"""

    def __init__(self, path: Optional[Path] = None):
        """
        Args:
            path: Store file; None keeps everything in memory
        """
        self._path = Path(path) if path else None
        self._data: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        # guards _data and the file; the HTTP trigger runs compiles on a threadpool
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise RepositoryError("failed to load store", path=str(self._path)) from e

        if not isinstance(data, dict):
            raise RepositoryError("store root must be an object", path=str(self._path))
        self._data = data

    def _save(self) -> None:
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(self._data, f, indent=2, default=str)

    def _workspace(self, workspace_id: str) -> Dict[str, List[Dict[str, Any]]]:
        ws = self._data.setdefault(workspace_id, {})
        for key in ("sources", "cases", "knowledge"):
            ws.setdefault(key, [])
        return ws

    def _snapshot(self, workspace_id: str, key: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._workspace(workspace_id)[key])

    # ------------------------------------------------------------------
    # Repository
    # ------------------------------------------------------------------

    def list_sources(self, workspace_id: str) -> List[Source]:
        records = self._snapshot(workspace_id, "sources")
        try:
            return [Source.model_validate(s) for s in records]
        except ValidationError as e:
            raise RepositoryError("invalid source record", workspace_id=workspace_id) from e

    def list_open_cases(self, workspace_id: str) -> List[Case]:
        records = self._snapshot(workspace_id, "cases")
        try:
            cases = [Case.model_validate(c) for c in records]
        except ValidationError as e:
            raise RepositoryError("invalid case record", workspace_id=workspace_id) from e
        return [c for c in cases if c.is_open]

    def create_knowledge(self, workspace_id: str, knowledge: Knowledge) -> Knowledge:
        now = datetime.now(timezone.utc)
        stored = knowledge.model_copy(update={
            "id": knowledge.id or generate_knowledge_id(),
            "created_at": now,
            "updated_at": now,
        })

        with self._lock:
            knowledge_list = self._workspace(workspace_id)["knowledge"]
            knowledge_list.append(stored.model_dump(mode="json"))
            try:
                self._save()
            except (IOError, OSError, TypeError) as e:
                knowledge_list.pop()
                raise RepositoryError("failed to save knowledge", workspace_id=workspace_id) from e

        logger.debug("Stored knowledge %s (workspace=%s, case=%s)", stored.id, workspace_id, stored.case_id)
        return stored

    # ------------------------------------------------------------------
    # Management helpers (not part of the Repository interface)
    # ------------------------------------------------------------------

    def put_source(self, workspace_id: str, source: Source) -> Source:
        """Insert or replace a source by id"""
        record = source.model_dump(mode="json")
        with self._lock:
            _upsert(self._workspace(workspace_id)["sources"], record)
            self._save()
        return source

    def put_case(self, workspace_id: str, case: Case) -> Case:
        """Insert or replace a case by id"""
        record = case.model_dump(mode="json")
        with self._lock:
            _upsert(self._workspace(workspace_id)["cases"], record)
            self._save()
        return case

    def list_knowledge(self, workspace_id: str, case_id: Optional[int] = None) -> List[Knowledge]:
        items = [Knowledge.model_validate(k) for k in self._snapshot(workspace_id, "knowledge")]
        if case_id is not None:
            items = [k for k in items if k.case_id == case_id]
        return items


def _upsert(records: List[Dict[str, Any]], record: Dict[str, Any]) -> None:
    """Replace the record with the same id in place, or append"""
    for i, existing in enumerate(records):
        if existing.get("id") == record["id"]:
            records[i] = record
            return
    records.append(record)
