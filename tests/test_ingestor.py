"""
Tests for IngestionPipeline: single-item ingestion and directory runs
with the MD5 hash cache.
"""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import FakeEmbedder, make_match
from ragent.config.settings import settings
from ragent.src.core.ingestor import IngestionPipeline
from ragent.src.database.vector_store import AgentVectorStore


@pytest.fixture
def pipeline(store: AgentVectorStore, tmp_path: Path) -> IngestionPipeline:
    return IngestionPipeline(store, max_workers=2, cache_path=tmp_path / "cache" / "hashes.json")


def _upserted(index: MagicMock) -> list[dict]:
    return [record for call in index.upsert.call_args_list for record in call.kwargs["vectors"]]


class TestIngestText:
    def test_should_store_chunks_with_metadata(self, pipeline: IngestionPipeline, index: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "CHUNK_SIZE", 100)
        content = ("a" * 80) + "\n\n" + ("b" * 80)

        result = pipeline.ingest_text("user-1", content, "note", "Morning run", ["Physical Activity", "fitness", " "], "app", content_id="note_1")

        assert result.content_id == "note_1"
        assert result.chunks == 2
        records = _upserted(index)
        assert [r["id"] for r in records] == ["note_1_chunk_0", "note_1_chunk_1"]
        meta = records[1]["metadata"]
        assert meta["userId"] == "user-1"
        assert meta["type"] == "note"
        assert meta["noteId"] == "note_1"
        assert meta["categories"] == ["Physical Activity", "fitness"]
        assert meta["text"] == "b" * 80
        assert meta["chunkIndex"] == 1
        assert meta["totalChunks"] == 2
        assert meta["title"] == "Morning run"

    def test_should_generate_content_id(self, pipeline: IngestionPipeline) -> None:
        result = pipeline.ingest_text("user-1", "Slept eight hours", "activity")
        assert result.content_id.startswith("activity_")
        assert result.chunks == 1

    def test_uncategorised_content_defaults_to_general(self, pipeline: IngestionPipeline, index: MagicMock) -> None:
        pipeline.ingest_text("user-1", "Read two chapters", "note")
        assert _upserted(index)[0]["metadata"]["categories"] == ["general"]

    def test_ingested_content_is_retrievable_by_agent_category(self, store: AgentVectorStore, index: MagicMock, tmp_path: Path) -> None:
        """Labels written by ingestion match the filter built from the agent's categories."""
        records: list[dict] = []
        index.upsert.side_effect = lambda vectors, namespace: records.extend(vectors)

        def _query(vector, top_k, filter, include_metadata, include_values, namespace):
            wanted = filter.get("categories", {}).get("$in", [])
            owner = filter.get("userId", {}).get("$eq")
            hits = [make_match(r["id"], r["metadata"], score=0.8) for r in records if r["metadata"].get("userId") == owner and set(wanted) & set(r["metadata"].get("categories", []))]
            return SimpleNamespace(matches=hits)

        index.query.side_effect = _query

        agent = store.store_agent("agent-1", {"name": "Coach"}, [" Physical Activity"], "user-1")
        IngestionPipeline(store, cache_path=tmp_path / "h.json").ingest_text("user-1", "Cycled 30 km along the river.", "note", categories=["Physical Activity"])

        docs = store.get_agent_context(agent, "how far did I ride", category=agent.selectedContextIds[0])

        assert agent.selectedContextIds == ["Physical Activity"]
        assert [d.page_content for d in docs] == ["Cycled 30 km along the river."]

    @pytest.mark.parametrize(
        ("user_id", "content", "content_type"),
        [("", "text", "document"), ("user-1", "   ", "document"), ("user-1", "text", "spreadsheet")],
    )
    def test_should_reject_invalid_input(self, pipeline: IngestionPipeline, index: MagicMock, user_id: str, content: str, content_type: str) -> None:
        with pytest.raises(ValueError):
            pipeline.ingest_text(user_id, content, content_type)
        index.upsert.assert_not_called()


class TestIngestDirectory:
    def test_missing_directory_returns_empty_summary(self, pipeline: IngestionPipeline, tmp_path: Path) -> None:
        summary = pipeline.ingest_directory("user-1", tmp_path / "nope")
        assert summary["total_files"] == 0
        assert summary["total_chunks"] == 0

    def test_should_ingest_supported_files_and_skip_unchanged(self, pipeline: IngestionPipeline, store: AgentVectorStore, index: MagicMock, tmp_path: Path) -> None:
        source = tmp_path / "raw"
        source.mkdir()
        (source / "run.txt").write_text("Ran 10k in 50 minutes.", encoding="utf-8")
        (source / "sleep.md").write_text("# Sleep\n\nSlept 7 hours.", encoding="utf-8")
        (source / "empty.txt").write_text("   ", encoding="utf-8")
        (source / "image.png").write_bytes(b"\x89PNG")

        first = pipeline.ingest_directory("user-1", source, ["health"])

        assert first["total_files"] == 3
        assert first["files_processed"] == 3
        assert first["files_skipped"] == 0
        assert first["total_chunks"] == 2
        records = _upserted(index)
        assert {r["metadata"]["source"] for r in records} == {"run.txt", "sleep.md"}
        assert all(r["metadata"]["categories"] == ["health"] for r in records)

        rerun = IngestionPipeline(store, cache_path=pipeline._hash_cache_path)
        second = rerun.ingest_directory("user-1", source, ["health"])

        assert second["files_skipped"] == 2
        assert second["total_chunks"] == 0

    def test_same_file_gets_stable_content_id(self, store: AgentVectorStore, index: MagicMock, tmp_path: Path) -> None:
        source = tmp_path / "raw"
        source.mkdir()
        (source / "run.txt").write_text("Ran 10k.", encoding="utf-8")

        IngestionPipeline(store, cache_path=tmp_path / "a.json").ingest_directory("user-1", source)
        IngestionPipeline(store, cache_path=tmp_path / "b.json").ingest_directory("user-1", source)

        ids = [r["id"] for r in _upserted(index)]
        assert len(ids) == 2
        assert ids[0] == ids[1]

    def test_failed_file_is_logged_and_counted_out(self, tmp_path: Path, index: MagicMock) -> None:
        class BrokenEmbedder(FakeEmbedder):
            def embed_documents(self, texts: list[str]) -> list[list[float]]:
                raise RuntimeError("quota exceeded")

        source = tmp_path / "raw"
        source.mkdir()
        (source / "run.txt").write_text("Ran 10k.", encoding="utf-8")
        pipeline = IngestionPipeline(AgentVectorStore(BrokenEmbedder(), index=index, namespace=""), cache_path=tmp_path / "c.json")

        summary = pipeline.ingest_directory("user-1", source)

        assert summary["files_processed"] == 0
        assert summary["total_chunks"] == 0

    def test_purge_cache_forces_reingestion(self, pipeline: IngestionPipeline, tmp_path: Path) -> None:
        source = tmp_path / "raw"
        source.mkdir()
        (source / "run.txt").write_text("Ran 10k.", encoding="utf-8")

        pipeline.ingest_directory("user-1", source)
        pipeline.purge_cache()

        assert not pipeline._hash_cache_path.exists()
        assert pipeline.ingest_directory("user-1", source)["files_processed"] == 1
