"""Targeted Asset Editor.

Replaces exactly one image reference in a project's source. The preview
reports the clicked image's ``src`` plus how many identical images precede it;
the editor scans the project files in order, counts the ``src``-style values
that match the clicked image and rewrites only the one at that position.

The value rendered in the preview often differs from the literal in source
(``/_next/image?url=...`` optimisation URLs, an image proxy, absolute URLs
resolved by the browser), so matching uses a candidate set produced by
``normalize_src``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator
from urllib.parse import parse_qs, quote, unquote, urlsplit

from appgen.errors import AssetReplacementNotFound
from appgen.models import AssetReplacement, GeneratedFile, Project, SelectionHandle
from appgen.utils import print_warning

# Paths of the optimisation proxies that wrap the original URL in ``?url=``.
PROXY_PATHS = ("/_next/image", "/api/image-proxy")

_SRC_ATTR_RE = re.compile(
    r"""\b(?:src|poster|data-src|image|imageUrl|imageSrc|img|logo|logoUrl|avatar|photo)"""
    r"""\s*[:=]\s*\{?\s*(?P<quote>["'`])(?P<value>[^"'`]*)(?P=quote)"""
)
_CSS_URL_RE = re.compile(r"""url\(\s*(?P<quote>["']?)(?P<value>[^"')\s]+)(?P=quote)\s*\)""")


@dataclass(frozen=True)
class AssetMatch:
    """One matching source value inside a file."""

    path: str
    start: int
    end: int
    value: str
    quote: str


# ---------------------------------------------------------------------------
# Source normalisation
# ---------------------------------------------------------------------------


def _pathname(url: str) -> str | None:
    parts = urlsplit(url)
    if not (parts.scheme or parts.netloc or parts.query):
        return None
    if not parts.path or parts.path == "/" or parts.path in PROXY_PATHS:
        return None
    return parts.path


def _unwrap_proxy(url: str) -> str | None:
    parts = urlsplit(url)
    if not parts.path.endswith(PROXY_PATHS):
        return None
    wrapped = parse_qs(parts.query).get("url")
    if not wrapped or not wrapped[0]:
        return None
    return unquote(wrapped[0])


def normalize_src(src: str) -> list[str]:
    """Return the source strings that may have rendered as *src*.

    For ``/_next/image?url=%2Fimg%2Fhero.jpg&w=640`` the candidates are the raw
    value, ``/img/hero.jpg`` and, for absolute URLs, their path-only forms.
    """
    if not src:
        return []

    candidates: list[str] = [src]
    original = _unwrap_proxy(src)
    if original:
        candidates.append(original)
    for value in list(candidates):
        path = _pathname(value)
        if path:
            candidates.append(path)

    return list(dict.fromkeys(candidates))


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def select_occurrence(
    clicked_src: str,
    resolved_src: str = "",
    alt_text: str = "",
    prior_matches: int = 0,
) -> SelectionHandle:
    """Build the handle for a clicked image.

    Args:
        clicked_src: The ``src`` attribute as rendered in the preview.
        resolved_src: The original URL, if the preview already unwrapped it.
        alt_text: The image's ``alt`` (or ``aria-label`` for backgrounds).
        prior_matches: Images with the same source that precede the clicked
            one in render order.
    """
    return SelectionHandle(
        src=clicked_src,
        resolved_src=resolved_src or (_unwrap_proxy(clicked_src) or clicked_src),
        alt=alt_text,
        occurrence_index=max(prior_matches, 0),
    )


def selection_from_preview(payload: dict[str, Any]) -> SelectionHandle:
    """Convert a preview ``image-selected`` message into a handle.

    The preview counts occurrences from 1; the handle counts prior matches.
    """
    occurrence = payload.get("occurrence")
    if not isinstance(occurrence, int) or occurrence < 1:
        occurrence = 1
    resolved = payload.get("resolvedSrc")
    return select_occurrence(
        str(payload.get("src", "")),
        resolved if isinstance(resolved, str) else "",
        str(payload.get("alt", "")),
        occurrence - 1,
    )


def candidate_set(selection: SelectionHandle) -> set[str]:
    return set(normalize_src(selection.src)) | set(normalize_src(selection.resolved_src))


# ---------------------------------------------------------------------------
# Scanning and replacement
# ---------------------------------------------------------------------------


def _file_matches(file: GeneratedFile, candidates: set[str]) -> Iterator[AssetMatch]:
    spans: list[AssetMatch] = []
    for pattern in (_SRC_ATTR_RE, _CSS_URL_RE):
        for m in pattern.finditer(file.content):
            spans.append(
                AssetMatch(
                    path=file.path,
                    start=m.start("value"),
                    end=m.end("value"),
                    value=m.group("value"),
                    quote=m.group("quote"),
                )
            )
    spans.sort(key=lambda s: s.start)

    last_end = -1
    for span in spans:
        if span.start < last_end:
            continue
        last_end = span.end
        if span.value in candidates:
            yield span


def iter_occurrences(files: Iterable[GeneratedFile], candidates: set[str]) -> Iterator[AssetMatch]:
    """Yield matching values file by file, left to right within each file."""
    for f in files:
        yield from _file_matches(f, candidates)


def _escape_for_quote(value: str, quote_char: str) -> str:
    if quote_char and quote_char in value:
        return value.replace(quote_char, quote(quote_char))
    return value


def _apply(project: Project, match: AssetMatch, new_src: str) -> Project:
    updated = project.model_copy(deep=True)
    for f in updated.files:
        if f.path == match.path:
            replacement = _escape_for_quote(new_src, match.quote)
            f.content = f.content[: match.start] + replacement + f.content[match.end :]
            break
    return updated


def replace(project: Project, selection: SelectionHandle, new_src: str) -> AssetReplacement:
    """Replace the selected occurrence of an image source with *new_src*.

    If the project has fewer matches than ``selection.occurrence_index + 1``
    the first match is replaced instead and ``fallback_used`` is set.

    Raises:
        AssetReplacementNotFound: If no file references the image at all.
    """
    candidates = candidate_set(selection)
    first: AssetMatch | None = None
    target: AssetMatch | None = None
    matched_index = 0

    for index, match in enumerate(iter_occurrences(project.files, candidates)):
        if first is None:
            first = match
        if index == selection.occurrence_index:
            target = match
            matched_index = index
            break

    if first is None:
        raise AssetReplacementNotFound(f"Image not found in project source: {selection.src}")

    fallback_used = target is None
    if target is None:
        print_warning(
            f"Occurrence {selection.occurrence_index} of {selection.src} not found; "
            f"replaced the first occurrence in {first.path} instead."
        )
        target = first
        matched_index = 0

    return AssetReplacement(
        project=_apply(project, target, new_src),
        path=target.path,
        old_src=target.value,
        new_src=new_src,
        matched_index=matched_index,
        fallback_used=fallback_used,
    )
