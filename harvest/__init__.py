"""
Harvest

Knowledge compilation for case-driven workspaces.

Pulls content from Notion databases and pages, Slack channels and GitHub
repositories, turns each item into a markdown document, asks an LLM which
open cases the document relates to, and stores the answers as Knowledge.

Philosophy:
- One document per item (page, channel window, issue, pull request)
- A failing item never stops its neighbours; it only bumps the error counter
- Notifications are best-effort and never change the outcome of a run
- Counters are the contract: callers read results, not exceptions

Usage:
    from harvest.common import load_config
    from harvest.compiler import Compiler, WorkspaceRegistry
    from harvest.compiler.store import JsonRepository
"""

__version__ = "0.1.0"
