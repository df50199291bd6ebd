"""
Timestables - terminal multiplication drill.

Packages:
- exercises: Exercise catalog and shuffling
- storage: Durable key-value store, record schemas, history and summaries
- engine: Round/session progression and cross-session comparison
- competition: Shared-room races between several players
- cli: Typer application
"""

__version__ = "1.0.0"
