from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def resolve_tasks_db_path() -> Path:
    default_path = Path(__file__).resolve().parent / "db" / "tasks.db"
    configured = os.getenv("SMART_TODO_DB_PATH")
    if not configured:
        default_path.parent.mkdir(parents=True, exist_ok=True)
        return default_path
    configured_path = Path(configured)
    if configured_path.is_absolute():
        configured_path.parent.mkdir(parents=True, exist_ok=True)
        return configured_path
    project_root = Path(__file__).resolve().parents[2]
    relative_parts = [part for part in configured_path.parts if part not in ("..", ".")]
    normalized_relative = Path(*relative_parts) if relative_parts else configured_path
    resolved = (project_root / normalized_relative).resolve()
    logger.info(
        "Resolved relative SMART_TODO_DB_PATH to %s (root=%s)",
        resolved,
        project_root,
    )
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved
