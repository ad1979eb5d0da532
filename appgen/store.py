"""Project stores.

Two implementations share the ``ProjectStore`` interface:

* ``JsonProjectStore`` keeps one JSON document per project under a directory.
* ``HttpProjectStore`` calls the hosted ``/api/projects/*`` endpoints.

Writes from a session are fire-and-forget: ``save_session_project`` reports a
failed write and returns, leaving the in-memory project authoritative.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

import httpx

from appgen.errors import PersistenceFailure
from appgen.models import Project, StoredProject
from appgen.session import SessionContext
from appgen.utils import load_json, print_warning, save_json


class ProjectStore(ABC):
    """Interface to the persistent project store."""

    @abstractmethod
    async def create(self, user_id: str, project: Project) -> str:
        """Store a new project and return its id."""

    @abstractmethod
    async def update(self, project_id: str, project: Project) -> None:
        """Overwrite the stored copy of a project."""

    @abstractmethod
    async def get(self, project_id: str) -> StoredProject | None:
        """Return a stored project, or ``None`` if missing or deleted."""

    @abstractmethod
    async def list(self, user_id: str) -> list[StoredProject]:
        """Return a user's projects, most recently updated first."""

    @abstractmethod
    async def delete(self, project_id: str) -> None:
        """Soft-delete a project."""


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class JsonProjectStore(ProjectStore):
    """Stores each project as ``<root>/<id>.json``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, project_id: str) -> Path:
        return self.root / f"{project_id}.json"

    def _read(self, project_id: str) -> StoredProject | None:
        path = self._path(project_id)
        if not path.exists():
            return None
        try:
            return StoredProject.model_validate(load_json(path))
        except ValueError as exc:
            raise PersistenceFailure(f"Stored project {project_id} is unreadable: {exc}") from exc

    async def _write(self, stored: StoredProject) -> None:
        try:
            await save_json(stored.model_dump(mode="json"), self._path(stored.id))
        except OSError as exc:
            raise PersistenceFailure(f"Could not write project {stored.id}: {exc}") from exc

    async def create(self, user_id: str, project: Project) -> str:
        stored = StoredProject(user_id=user_id, project=project)
        await self._write(stored)
        return stored.id

    async def update(self, project_id: str, project: Project) -> None:
        stored = self._read(project_id)
        if stored is None or stored.deleted:
            raise PersistenceFailure(f"Project not found: {project_id}")
        stored.project = project
        stored.updated_at = datetime.now(timezone.utc)
        await self._write(stored)

    async def get(self, project_id: str) -> StoredProject | None:
        stored = self._read(project_id)
        if stored is None or stored.deleted:
            return None
        return stored

    async def list(self, user_id: str) -> list[StoredProject]:
        if not self.root.exists():
            return []
        projects: list[StoredProject] = []
        for path in self.root.glob("*.json"):
            try:
                stored = self._read(path.stem)
            except PersistenceFailure as exc:
                print_warning(f"Skipping {path.name}: {exc}")
                continue
            if stored is not None and stored.user_id == user_id and not stored.deleted:
                projects.append(stored)
        return sorted(projects, key=lambda p: p.updated_at, reverse=True)

    async def delete(self, project_id: str) -> None:
        stored = self._read(project_id)
        if stored is None:
            raise PersistenceFailure(f"Project not found: {project_id}")
        stored.deleted = True
        stored.updated_at = datetime.now(timezone.utc)
        await self._write(stored)


# ---------------------------------------------------------------------------
# HTTP store
# ---------------------------------------------------------------------------


class HttpProjectStore(ProjectStore):
    """Async client for the hosted project API."""

    def __init__(self, base_url: str, api_token: str = "", timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.ConnectError as exc:
            raise PersistenceFailure(f"Cannot connect to the project store at {self.base_url}.") from exc
        except httpx.TimeoutException as exc:
            raise PersistenceFailure(f"Project store request timed out after {self.timeout}s.") from exc
        except httpx.HTTPStatusError as exc:
            raise PersistenceFailure(
                f"Project store returned HTTP {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except ValueError as exc:
            raise PersistenceFailure(f"Project store returned invalid JSON: {exc}") from exc

    async def create(self, user_id: str, project: Project) -> str:
        data = await self._post(
            "/api/projects/create", {"userId": user_id, "project": project.model_dump(mode="json")}
        )
        project_id = data.get("id") or data.get("projectId")
        if not project_id:
            raise PersistenceFailure("Project store did not return an id")
        return str(project_id)

    async def update(self, project_id: str, project: Project) -> None:
        await self._post(
            "/api/projects/update", {"projectId": project_id, "project": project.model_dump(mode="json")}
        )

    async def get(self, project_id: str) -> StoredProject | None:
        data = await self._post("/api/projects/get", {"projectId": project_id})
        if not data.get("project"):
            return None
        return StoredProject.model_validate(data["project"])

    async def list(self, user_id: str) -> list[StoredProject]:
        data = await self._post("/api/projects/list", {"userId": user_id})
        projects = [StoredProject.model_validate(p) for p in data.get("projects", [])]
        return sorted(projects, key=lambda p: p.updated_at, reverse=True)

    async def delete(self, project_id: str) -> None:
        await self._post("/api/projects/delete", {"projectId": project_id})


# ---------------------------------------------------------------------------
# Session persistence
# ---------------------------------------------------------------------------


async def save_session_project(store: ProjectStore, session: SessionContext) -> bool:
    """Create or update the session's project in *store*.

    A failed write is reported and swallowed; the session keeps working from
    its in-memory project.

    Returns:
        ``True`` if the write succeeded.
    """
    if session.project is None:
        return False
    try:
        if session.project_id is None:
            session.project_id = await store.create(session.user_id, session.project)
        else:
            await store.update(session.project_id, session.project)
        return True
    except PersistenceFailure as exc:
        print_warning(f"Project not saved: {exc}")
        return False
