"""
Тесты семантического поиска по дневнику
"""
import pytest

from diaria.errors import ConfigurationMissing, InvalidQuery
from diaria.models import EmbeddingRecord, compute_content_hash


class TestSimilaritySearch:
    """Тесты для SimilaritySearch"""

    @pytest.mark.asyncio
    async def test_beach_ranked_above_hiking(self, index_manager, similarity_search, journal_store):
        """Запись про пляж ближе к запросу про поездку на пляж"""
        hiking = journal_store.save_entry("owner-1", "hiking in the hills", "2024-05-01")
        beach = journal_store.save_entry("owner-1", "beach day", "2024-04-01", mood="happy", weather="sunny")
        await index_manager.build_all("owner-1")

        results = await similarity_search.query_similar("owner-1", "beach trip", 2)

        assert [r.entry_id for r in results] == [beach.id, hiking.id]
        assert results[0].score > results[1].score
        assert results[0].mood == "happy"
        assert results[0].weather == "sunny"

    @pytest.mark.asyncio
    async def test_empty_index(self, similarity_search, journal_store):
        journal_store.save_entry("owner-1", "beach day", "2024-04-01")

        assert await similarity_search.query_similar("owner-1", "beach", 5) == []

    @pytest.mark.asyncio
    async def test_equal_scores_prefer_recent(self, index_manager, similarity_search, journal_store):
        older = journal_store.save_entry("owner-1", "cat", "2024-01-01")
        newer = journal_store.save_entry("owner-1", "cat", "2024-06-01")
        await index_manager.build_all("owner-1")

        results = await similarity_search.query_similar("owner-1", "cat", 5)

        assert [r.entry_id for r in results] == [newer.id, older.id]
        assert results[0].score == pytest.approx(results[1].score)

    @pytest.mark.asyncio
    async def test_vanished_entries_dropped_before_limit(self, index_manager, similarity_search, journal_store):
        """Удаленная запись не занимает место в выдаче"""
        best = journal_store.save_entry("owner-1", "beach trip", "2024-01-01")
        second = journal_store.save_entry("owner-1", "beach beach trip", "2024-01-02")
        third = journal_store.save_entry("owner-1", "beach", "2024-01-03")
        await index_manager.build_all("owner-1")
        journal_store.delete_entry("owner-1", best.id)

        results = await similarity_search.query_similar("owner-1", "beach trip", 2)

        assert [r.entry_id for r in results] == [second.id, third.id]

    @pytest.mark.asyncio
    async def test_other_model_records_ignored(self, similarity_search, journal_store, vector_store):
        entry = journal_store.save_entry("owner-1", "beach", "2024-01-01")
        vector_store.upsert(EmbeddingRecord(
            owner="owner-1",
            entry_id=entry.id,
            vector=[1.0, 0.0],
            content_hash=compute_content_hash("beach"),
            model_id="old-embed",
        ))

        assert await similarity_search.query_similar("owner-1", "beach", 5) == []

    @pytest.mark.asyncio
    async def test_invalid_query(self, similarity_search, provider):
        with pytest.raises(InvalidQuery):
            await similarity_search.query_similar("owner-1", "   ", 5)

        with pytest.raises(InvalidQuery):
            await similarity_search.query_similar("owner-1", "beach", 0)

        assert provider.embed_calls == []

    @pytest.mark.asyncio
    async def test_missing_embedding_model(self, similarity_search, ai_settings, provider):
        ai_settings.embedding_model = ""

        with pytest.raises(ConfigurationMissing):
            await similarity_search.query_similar("owner-1", "beach", 5)

        assert provider.embed_calls == []
