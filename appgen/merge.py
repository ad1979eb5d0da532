"""File Merge Engine.

Reconciles the files a job returned with the files the project already has.
Existing paths keep their position (taking the returned content when there
is one) and are never dropped; paths new to the project follow in the order
the backend produced them.
"""

from __future__ import annotations

from typing import Iterable

from appgen.models import GeneratedFile, Project


def merge(existing: Iterable[GeneratedFile], returned: Iterable[GeneratedFile]) -> list[GeneratedFile]:
    """Merge *returned* into *existing*.

    Duplicate paths in *returned* resolve to their last occurrence, but the
    path keeps the position of its first appearance.

    Example::

        merge([A:1, B:2], [B:2b, C:3]) -> [A:1, B:2b, C:3]
    """
    existing = list(existing)
    returned_by_path: dict[str, GeneratedFile] = {}
    for f in returned:
        returned_by_path[f.path] = f

    merged: list[GeneratedFile] = []
    seen: set[str] = set()
    for f in existing:
        if f.path in seen:
            continue
        seen.add(f.path)
        source = returned_by_path.get(f.path, f)
        merged.append(source.model_copy())

    for path, f in returned_by_path.items():
        if path not in seen:
            seen.add(path)
            merged.append(f.model_copy())

    return merged


def merge_dependencies(existing: dict[str, str], returned: dict[str, str]) -> dict[str, str]:
    """Overlay *returned* versions on *existing*; no dependency is removed."""
    return {**existing, **returned}


def merge_project(project: Project, files: list[GeneratedFile], dependencies: dict[str, str]) -> Project:
    """Return a copy of *project* with a job's output merged in."""
    updated = project.model_copy(deep=True)
    updated.files = merge(project.files, files)
    updated.dependencies = merge_dependencies(project.dependencies, dependencies)
    return updated
