"""
Harvest Compiler - Knowledge Compilation Pipeline

Fetches new content from each workspace's sources, renders it to markdown,
asks the extraction oracle which open cases it relates to, stores the
resulting knowledge and notifies the case channels.

Key Components:
- Compiler: per-workspace source dispatch and counter aggregation
- KnowledgeRecorder: extract -> persist -> notify for one document
- SlackNotifier: best-effort Block Kit notification
- Source processors: Notion DB / page, Slack, GitHub
"""

from .pipeline import Compiler
from .recorder import CompileContext, KnowledgeRecorder
from .notifier import SlackNotifier
from .registry import Workspace, WorkspaceEntry, WorkspaceRegistry
from .results import CompileResult, SourceStats, WorkspaceCompileResult

__all__ = [
    "Compiler",
    "CompileContext",
    "KnowledgeRecorder",
    "SlackNotifier",
    "Workspace",
    "WorkspaceEntry",
    "WorkspaceRegistry",
    "CompileResult",
    "SourceStats",
    "WorkspaceCompileResult",
]
