"""
Compile Results

Counters are accumulated explicitly: each source returns its own SourceStats
and the dispatcher adds it into the workspace result. Nothing is global.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List


@dataclass
class SourceStats:
    """Counters for one source (or one item within it)"""
    pages_processed: int = 0
    knowledge_created: int = 0
    notifications: int = 0
    errors: int = 0

    def merge(self, other: "SourceStats") -> None:
        self.pages_processed += other.pages_processed
        self.knowledge_created += other.knowledge_created
        self.notifications += other.notifications
        self.errors += other.errors


@dataclass
class WorkspaceCompileResult:
    """Per-workspace totals for one compile run"""
    workspace_id: str
    sources_processed: int = 0
    pages_processed: int = 0
    knowledge_created: int = 0
    notifications: int = 0
    errors: int = 0

    def add_source(self, stats: SourceStats) -> None:
        """Count one dispatched source and fold in its counters"""
        self.sources_processed += 1
        self.pages_processed += stats.pages_processed
        self.knowledge_created += stats.knowledge_created
        self.notifications += stats.notifications
        self.errors += stats.errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompileResult:
    """Result of Compiler.compile across all processed workspaces"""
    workspace_results: List[WorkspaceCompileResult] = field(default_factory=list)

    def totals(self) -> Dict[str, int]:
        """Sum of every counter across workspaces"""
        keys = ("sources_processed", "pages_processed", "knowledge_created", "notifications", "errors")
        return {k: sum(getattr(r, k) for r in self.workspace_results) for k in keys}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workspace_results": [r.to_dict() for r in self.workspace_results],
            "totals": self.totals(),
        }
