"""Edit History Manager.

Keeps an append-only list of project snapshots, each taken just before an
edit is applied. Rolling back copies a snapshot forward into the session's
project; no entry is ever removed, so repeated rollbacks never lose the
intermediate states.
"""

from __future__ import annotations

from appgen.models import EditHistoryEntry, Project
from appgen.session import SessionContext
from appgen.store import ProjectStore, save_session_project
from appgen.utils import print_info


class EditHistoryManager:
    """Ordered edit snapshots for one session's project."""

    def __init__(self, store: ProjectStore | None = None) -> None:
        self.store = store
        self._entries: list[EditHistoryEntry] = []

    @property
    def entries(self) -> list[EditHistoryEntry]:
        """A copy of the history, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: str) -> EditHistoryEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def snapshot(self, project: Project, prompt_label: str) -> EditHistoryEntry:
        """Record *project* as the state before the edit named *prompt_label*."""
        entry = EditHistoryEntry(
            prompt=prompt_label,
            files=[f.model_copy() for f in project.files],
            dependencies=dict(project.dependencies),
        )
        self._entries.append(entry)
        return entry

    async def rollback(self, session: SessionContext, entry: EditHistoryEntry) -> Project:
        """Restore *entry*'s files and dependencies into the session's project.

        The pre-rollback state is snapshotted first so the rollback itself can
        be undone. The result is persisted (failures are reported, not
        raised) and any existing publish is marked stale.

        Raises:
            JobStateError: If a job for this session is still in flight.
        """
        session.ensure_idle("rolling back")
        current = session.project or Project()
        self.snapshot(current, f"Before rollback to: {entry.prompt}")

        restored = current.model_copy(deep=True)
        restored.files = [f.model_copy() for f in entry.files]
        restored.dependencies = dict(entry.dependencies)
        session.project = restored

        if self.store is not None:
            await save_session_project(self.store, session)
        session.mark_publish_stale()

        print_info(f"Rolled back to state before '{entry.prompt}' ({len(restored.files)} files)")
        return restored
