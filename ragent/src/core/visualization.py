"""
Ragent - Embedding Projection
==============================
Projects a user's stored embeddings into 3-D for the dashboard scatter
plot.

Pipeline:
    1. Validate → keep vectors of the index dimension with finite values
    2. Classify → document / note / activity (untyped records dropped)
    3. Reduce → L2-normalise, then PCA to 3 components (numpy SVD)
    4. Scale → every axis independently to [-10, 10]
"""

from __future__ import annotations

import math
import time
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
from pydantic import BaseModel

from ragent.config.settings import settings
from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)

_PREVIEW_CHARS = 100
_SCALE = 10.0
_CONTENT_TYPES = ("document", "note", "activity")


class PointMetadata(BaseModel):
    id: str | None = None
    title: str = "Untitled"
    text: str = "No preview available"


class VisualizationPoint(BaseModel):
    x: float
    y: float
    z: float
    type: str
    metadata: PointMetadata


def content_type(metadata: Mapping[str, Any]) -> str | None:
    """``document`` / ``note`` / ``activity`` from ``type`` or a ``<type>Id`` key."""
    for kind in _CONTENT_TYPES:
        if metadata.get("type") == kind or metadata.get(f"{kind}Id"):
            return kind
    return None


def _is_valid(values: Sequence[float] | None, dimension: int) -> bool:
    if not values or len(values) != dimension:
        return False
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


def reduce_to_3d(vectors: np.ndarray) -> np.ndarray:
    """
    Reduce an ``(n, d)`` matrix to ``(n, 3)``.

    One vector sits at the origin, two sit at ±1 on the x axis.  Larger
    sets are L2-normalised and projected onto their first three principal
    components; if the decomposition fails the first three raw
    components are used.
    """
    n = vectors.shape[0]
    if n == 0:
        return np.zeros((0, 3))
    if n == 1:
        return np.zeros((1, 3))
    if n == 2:
        return np.array([[-1.0, 0.0, 0.0], [1.0, 0.0, 0.0]])

    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    normalized = vectors / norms

    try:
        centered = normalized - normalized.mean(axis=0)
        _, _, vt = np.linalg.svd(centered, full_matrices=False)
        reduced = centered @ vt[:3].T
    except np.linalg.LinAlgError:
        logger.exception("[VIZ] PCA failed; falling back to raw components.")
        reduced = vectors[:, :3]

    if reduced.shape[1] < 3:
        reduced = np.pad(reduced, ((0, 0), (0, 3 - reduced.shape[1])))
    return reduced


def scale_axes(points: np.ndarray, bound: float = _SCALE) -> np.ndarray:
    """Min-max scale each column to ``[-bound, bound]``; a flat axis maps to ``-bound``."""
    if points.shape[0] == 0:
        return points
    lo = points.min(axis=0)
    hi = points.max(axis=0)
    hi = np.where(hi == lo, lo + 1.0, hi)
    return (points - lo) / (hi - lo) * (2 * bound) - bound


def project_embeddings(matches: Iterable[tuple[str, Sequence[float], Mapping[str, Any]]], dimension: int | None = None) -> list[VisualizationPoint]:
    """
    Project ``(id, values, metadata)`` records to dashboard points.

    Parameters
    ----------
    matches
        Output of ``AgentVectorStore.fetch_user_vectors``.
    dimension
        Expected vector dimension.  Defaults to ``settings.VECTOR_DIMENSION``.
    """
    t_start = time.perf_counter()
    dim = dimension or settings.VECTOR_DIMENSION

    vectors: list[Sequence[float]] = []
    types: list[str] = []
    details: list[PointMetadata] = []
    skipped = 0

    for _, values, metadata in matches:
        kind = content_type(metadata)
        if kind is None or not _is_valid(values, dim):
            skipped += 1
            continue

        text = metadata.get("text")
        source_id = metadata.get("documentId") or metadata.get("noteId") or metadata.get("activityId")
        vectors.append(values)
        types.append(kind)
        details.append(PointMetadata(
            id=str(source_id) if source_id else None,
            title=str(metadata.get("title") or "Untitled"),
            text=text[:_PREVIEW_CHARS] if isinstance(text, str) else "No preview available",
        ))

    matrix = np.asarray(vectors, dtype=float).reshape(len(vectors), dim)
    coords = scale_axes(reduce_to_3d(matrix))

    logger.info("[VIZ] Projected %d vector(s) (%d skipped) in %.1fms.", len(vectors), skipped, (time.perf_counter() - t_start) * 1000)
    return [VisualizationPoint(x=float(c[0]), y=float(c[1]), z=float(c[2]), type=t, metadata=m) for c, t, m in zip(coords, types, details)]
