"""
Tests for the 3-D embedding projection.
"""

import numpy as np
import pytest

from ragent.src.core import visualization
from ragent.src.core.visualization import content_type, project_embeddings, reduce_to_3d, scale_axes

DIM = 8


def row(i: int, values: list[float], **metadata) -> tuple[str, list[float], dict]:
    return (f"v{i}", values, metadata)


@pytest.fixture
def random_rows() -> list[tuple[str, list[float], dict]]:
    rng = np.random.default_rng(7)
    return [row(i, rng.normal(size=DIM).tolist(), type="document", documentId=f"doc{i}", title=f"Doc {i}", text="t") for i in range(6)]


@pytest.mark.parametrize(
    ("metadata", "expected"),
    [
        ({"type": "document"}, "document"),
        ({"noteId": "n1"}, "note"),
        ({"activityId": "a1", "type": "context"}, "activity"),
        ({"type": "context"}, None),
        ({}, None),
    ],
)
def test_content_type(metadata: dict, expected: str | None) -> None:
    assert content_type(metadata) == expected


def test_no_vectors_gives_no_points() -> None:
    assert project_embeddings([], dimension=DIM) == []


def test_single_vector_sits_at_lower_corner() -> None:
    points = project_embeddings([row(0, [1.0] * DIM, type="note", noteId="n1")], dimension=DIM)

    assert len(points) == 1
    assert (points[0].x, points[0].y, points[0].z) == (-10.0, -10.0, -10.0)
    assert points[0].metadata.id == "n1"


def test_two_vectors_are_spread_on_x_axis() -> None:
    points = project_embeddings([row(0, [1.0] * DIM, type="note"), row(1, [0.5] * DIM, type="activity")], dimension=DIM)

    assert [p.x for p in points] == [-10.0, 10.0]
    assert [p.y for p in points] == [-10.0, -10.0]
    assert [p.type for p in points] == ["note", "activity"]


def test_invalid_and_untyped_vectors_are_skipped() -> None:
    rows = [
        row(0, [1.0] * (DIM - 1), type="note"),
        row(1, [float("nan")] + [1.0] * (DIM - 1), type="note"),
        row(2, [1.0] * DIM, type="context"),
        row(3, [], type="note"),
        row(4, [0.3] * DIM, type="document", title="Kept"),
    ]

    points = project_embeddings(rows, dimension=DIM)

    assert len(points) == 1
    assert points[0].metadata.title == "Kept"


def test_many_vectors_fill_the_cube(random_rows: list) -> None:
    points = project_embeddings(random_rows, dimension=DIM)

    coords = np.array([[p.x, p.y, p.z] for p in points])
    assert coords.shape == (6, 3)
    np.testing.assert_allclose(coords.min(axis=0), [-10.0, -10.0, -10.0])
    np.testing.assert_allclose(coords.max(axis=0), [10.0, 10.0, 10.0])


def test_preview_metadata() -> None:
    rows = [row(0, [1.0] * DIM, type="note", noteId="n1", text="x" * 250), row(1, [0.5] * DIM, activityId="a1", text=7)]

    points = project_embeddings(rows, dimension=DIM)

    assert points[0].metadata.text == "x" * 100
    assert points[0].metadata.title == "Untitled"
    assert points[1].metadata.text == "No preview available"
    assert points[1].metadata.id == "a1"


def test_pca_failure_falls_back_to_raw_components(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args, **kwargs):
        raise np.linalg.LinAlgError("SVD did not converge")

    monkeypatch.setattr(visualization.np.linalg, "svd", _fail)
    vectors = np.arange(3 * DIM, dtype=float).reshape(3, DIM)

    np.testing.assert_array_equal(reduce_to_3d(vectors), vectors[:, :3])


def test_scale_axes_handles_flat_axis() -> None:
    scaled = scale_axes(np.array([[0.0, 5.0, 1.0], [2.0, 5.0, 3.0]]))

    np.testing.assert_allclose(scaled, [[-10.0, -10.0, -10.0], [10.0, -10.0, 10.0]])
