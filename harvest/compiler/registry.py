"""
Workspace Registry

Holds workspace settings only (identity and compile prompt), in
registration order. Repositories and services are not stored here.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..common.config import HarvestConfig


@dataclass
class Workspace:
    id: str
    name: str = ""


@dataclass
class WorkspaceEntry:
    workspace: Workspace
    compile_prompt: str = ""  # empty means the extractor's default prompt


class WorkspaceRegistry:
    """Ordered collection of workspace entries keyed by workspace id"""

    def __init__(self):
        self._entries: Dict[str, WorkspaceEntry] = {}
        self._order: List[str] = []

    @classmethod
    def from_config(cls, config: HarvestConfig) -> "WorkspaceRegistry":
        registry = cls()
        for ws in config.workspaces:
            registry.register(WorkspaceEntry(
                workspace=Workspace(id=ws.id, name=ws.name),
                compile_prompt=ws.compile_prompt,
            ))
        return registry

    def register(self, entry: WorkspaceEntry) -> None:
        """Add or replace an entry; replacing keeps the original position"""
        ws_id = entry.workspace.id
        if ws_id not in self._entries:
            self._order.append(ws_id)
        self._entries[ws_id] = entry

    def get(self, workspace_id: str) -> Optional[WorkspaceEntry]:
        return self._entries.get(workspace_id)

    def list(self) -> List[WorkspaceEntry]:
        return [self._entries[ws_id] for ws_id in self._order]

    def __len__(self) -> int:
        return len(self._order)
