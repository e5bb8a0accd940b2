"""
prdgate Project Session

In-memory state of the open project. Components that change project content
receive the session and call mark_dirty() explicitly.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class ProjectSession:
    project_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = "Untitled Project"
    description: Optional[str] = None
    is_dirty: bool = False
    last_modified: Optional[datetime] = None
    last_saved: Optional[datetime] = None

    def mark_dirty(self) -> None:
        self.is_dirty = True
        self.last_modified = datetime.now(timezone.utc)

    def mark_saved(self) -> None:
        self.is_dirty = False
        self.last_saved = datetime.now(timezone.utc)

    def rename(self, name: str) -> None:
        self.name = name
        self.mark_dirty()
