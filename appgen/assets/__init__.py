"""Targeted asset editing.

Key classes:
    SelectionHandle     - The clicked image and its occurrence index
    AssetReplacer       - Upload / regenerate a replacement and commit it
    HttpUploadService   - Upload service client
    HttpImageGenerator  - Image regeneration client
"""

from .editor import (
    AssetMatch,
    iter_occurrences,
    normalize_src,
    replace,
    select_occurrence,
    selection_from_preview,
)
from .sources import (
    AssetReplacer,
    HttpImageGenerator,
    HttpUploadService,
    ImageGenerator,
    UploadService,
)

__all__ = [
    # Editor
    "AssetMatch",
    "normalize_src",
    "select_occurrence",
    "selection_from_preview",
    "iter_occurrences",
    "replace",
    # Sources
    "AssetReplacer",
    "UploadService",
    "ImageGenerator",
    "HttpUploadService",
    "HttpImageGenerator",
]
