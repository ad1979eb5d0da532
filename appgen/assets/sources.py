"""Replacement sources for the Targeted Asset Editor.

An image can be replaced by a direct upload (the upload service returns a
stable URL) or by an image regenerated from a text description. Both paths
end in ``AssetReplacer._commit``, so persistence and preview refresh behave
the same whichever source produced the new URL.
"""

from __future__ import annotations

import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

import httpx

from appgen.assets.editor import replace
from appgen.errors import AppGenError, JobStateError
from appgen.models import AssetReplacement, Project, SelectionHandle, UploadedAsset
from appgen.session import SessionContext
from appgen.store import ProjectStore, save_session_project
from appgen.utils import print_success


class UploadService(ABC):
    @abstractmethod
    async def upload(self, file_path: Path) -> UploadedAsset:
        """Upload a file and return its public URL."""


class ImageGenerator(ABC):
    @abstractmethod
    async def generate(self, description: str) -> str:
        """Create an image from *description* and return its URL."""


# ---------------------------------------------------------------------------
# HTTP implementations
# ---------------------------------------------------------------------------


class _HttpService:
    def __init__(self, base_url: str, api_token: str = "", timeout: int = 120) -> None:
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

    def _error(self, exc: Exception, action: str) -> AppGenError:
        if isinstance(exc, httpx.ConnectError):
            return AppGenError(f"Cannot connect to {self.base_url} for {action}.")
        if isinstance(exc, httpx.TimeoutException):
            return AppGenError(f"{action.capitalize()} timed out after {self.timeout}s.")
        if isinstance(exc, httpx.HTTPStatusError):
            return AppGenError(
                f"{action.capitalize()} failed with HTTP {exc.response.status_code}: "
                f"{exc.response.text[:500]}"
            )
        return AppGenError(f"Unexpected error during {action}: {exc}")


class HttpUploadService(_HttpService, UploadService):
    """Uploads files with ``POST /api/uploads`` (multipart)."""

    async def upload(self, file_path: Path) -> UploadedAsset:
        file_path = Path(file_path)
        if not file_path.exists():
            raise AppGenError(f"Upload file not found: {file_path}")

        content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/uploads",
                    files={"file": (file_path.name, file_path.read_bytes(), content_type)},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise self._error(exc, "upload") from exc

        url = data.get("url")
        if not url:
            raise AppGenError("Upload service did not return a URL")
        return UploadedAsset(url=url, name=data.get("name", file_path.name))


class HttpImageGenerator(_HttpService, ImageGenerator):
    """Generates images with ``POST /api/images/generate``."""

    async def generate(self, description: str) -> str:
        try:
            async with self._client() as client:
                response = await client.post("/api/images/generate", json={"prompt": description})
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise self._error(exc, "image generation") from exc

        url = data.get("url")
        if not url:
            raise AppGenError("Image generator did not return a URL")
        return url


# ---------------------------------------------------------------------------
# AssetReplacer
# ---------------------------------------------------------------------------


class AssetReplacer:
    """Applies a replacement image to the session's project."""

    def __init__(
        self,
        store: ProjectStore,
        uploads: UploadService | None = None,
        images: ImageGenerator | None = None,
        on_project_changed: Callable[[Project], None] | None = None,
    ) -> None:
        self.store = store
        self.uploads = uploads
        self.images = images
        self.on_project_changed = on_project_changed

    def _check_idle(self, session: SessionContext) -> Project:
        if session.project is None:
            raise JobStateError("There is no project to edit yet.")
        session.ensure_idle("replacing images")
        return session.project

    async def replace_with_upload(
        self, session: SessionContext, selection: SelectionHandle, file_path: Path
    ) -> AssetReplacement:
        self._check_idle(session)
        if self.uploads is None:
            raise AppGenError("No upload service configured")
        uploaded = await self.uploads.upload(file_path)
        return await self._commit(session, selection, uploaded.url)

    async def replace_with_description(
        self, session: SessionContext, selection: SelectionHandle, description: str
    ) -> AssetReplacement:
        self._check_idle(session)
        if self.images is None:
            raise AppGenError("No image generator configured")
        prompt = description.strip()
        if selection.alt and selection.alt.lower() not in prompt.lower():
            prompt = f"{prompt} (replacing an image described as: {selection.alt})"
        url = await self.images.generate(prompt)
        return await self._commit(session, selection, url)

    async def _commit(
        self, session: SessionContext, selection: SelectionHandle, new_src: str
    ) -> AssetReplacement:
        # Re-check: a job may have started while the upload was in flight.
        project = self._check_idle(session)
        result = replace(project, selection, new_src)
        session.project = result.project

        await save_session_project(self.store, session)
        session.mark_publish_stale()
        if self.on_project_changed is not None:
            self.on_project_changed(result.project)

        print_success(f"Replaced image in {result.path}")
        return result
