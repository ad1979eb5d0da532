"""Unit tests for project stores (appgen.store).

Tests cover:
- JsonProjectStore create/get/update/list/delete
- HttpProjectStore request mapping and error conversion
- save_session_project create-then-update and failure reporting
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_response

from appgen.errors import PersistenceFailure
from appgen.models import GeneratedFile, Project
from appgen.store import HttpProjectStore, JsonProjectStore, save_session_project


class TestJsonProjectStore:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_and_get(self, store, sample_project):
        project_id = await store.create("u1", sample_project)
        stored = await store.get(project_id)

        assert stored.user_id == "u1"
        assert stored.project == sample_project
        assert (store.root / f"{project_id}.json").exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("nope") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update(self, store, sample_project):
        project_id = await store.create("u1", sample_project)
        changed = sample_project.model_copy(deep=True)
        changed.files.append(GeneratedFile(path="C", content="3"))

        await store.update(project_id, changed)

        assert (await store.get(project_id)).project.paths() == ["A", "B", "C"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store, sample_project):
        with pytest.raises(PersistenceFailure):
            await store.update("nope", sample_project)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_most_recent_first_and_by_user(self, store):
        first = await store.create("u1", Project(original_prompt="first"))
        await store.create("u2", Project(original_prompt="other user"))
        second = await store.create("u1", Project(original_prompt="second"))
        await store.update(first, Project(original_prompt="first, edited"))

        projects = await store.list("u1")

        assert [p.id for p in projects] == [first, second]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_soft_delete(self, store, sample_project):
        project_id = await store.create("u1", sample_project)
        await store.delete(project_id)

        assert await store.get(project_id) is None
        assert await store.list("u1") == []
        raw = json.loads((store.root / f"{project_id}.json").read_text())
        assert raw["deleted"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_corrupt_file(self, store):
        store.root.mkdir(parents=True)
        (store.root / "bad.json").write_text("{not json")
        with pytest.raises(PersistenceFailure, match="unreadable"):
            await store.get("bad")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_skips_corrupt_file(self, store, sample_project):
        project_id = await store.create("u1", sample_project)
        (store.root / "bad.json").write_text("{not json")

        projects = await store.list("u1")

        assert [p.id for p in projects] == [project_id]


class TestHttpProjectStore:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create(self, mock_http, sample_project):
        client, patcher = mock_http
        client.post.return_value = make_response({"id": "p-1"})
        with patcher:
            project_id = await HttpProjectStore("http://app").create("u1", sample_project)

        assert project_id == "p-1"
        assert client.post.call_args[0][0] == "/api/projects/create"
        assert client.post.call_args[1]["json"]["userId"] == "u1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_without_id(self, mock_http, sample_project):
        client, patcher = mock_http
        client.post.return_value = make_response({})
        with patcher, pytest.raises(PersistenceFailure, match="did not return an id"):
            await HttpProjectStore("http://app").create("u1", sample_project)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_missing(self, mock_http):
        client, patcher = mock_http
        client.post.return_value = make_response({"project": None})
        with patcher:
            assert await HttpProjectStore("http://app").get("p-1") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self, mock_http, sample_project):
        client, patcher = mock_http
        client.post.side_effect = httpx.ConnectError("Connection refused")
        with patcher, pytest.raises(PersistenceFailure, match="Cannot connect"):
            await HttpProjectStore("http://app").update("p-1", sample_project)


class TestSaveSessionProject:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_then_updates(self, store, session, sample_project):
        session.project = sample_project
        assert await save_session_project(store, session) is True
        project_id = session.project_id

        session.project = sample_project.model_copy(update={"original_prompt": "changed"})
        assert await save_session_project(store, session) is True

        assert session.project_id == project_id
        assert (await store.get(project_id)).project.original_prompt == "changed"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_project(self, store, session):
        assert await save_session_project(store, session) is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, store, session, sample_project):
        session.project = sample_project
        store.create = AsyncMock(side_effect=PersistenceFailure("disk full"))
        assert await save_session_project(store, session) is False
        assert session.project_id is None
