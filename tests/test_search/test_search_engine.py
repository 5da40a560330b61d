"""Tests for SearchEngine ranking, filtering and perturbation modes."""

from unittest.mock import AsyncMock

import pytest

from novel_search.errors import EmbeddingUnavailable, InvalidQuery, ModelLoadError
from novel_search.search import (
    SearchEngine,
    SearchMode,
    SearchOptions,
    perturb,
    seeded_noise,
)
from novel_search.vector import EntityType, SQLiteVectorStore, VectorCache


@pytest.fixture
def engine(keyword_provider, memory_store: SQLiteVectorStore) -> SearchEngine:
    return SearchEngine(keyword_provider, memory_store, cache=VectorCache(100))


async def _index_animals(engine: SearchEngine) -> None:
    await engine.index_document(EntityType.KNOWLEDGE, "cat", 1, "Cats are independent")
    await engine.index_document(EntityType.KNOWLEDGE, "dog", 1, "Dogs are loyal companions.")
    await engine.index_document(
        EntityType.CHAPTER, "ch1", 1, "The kitten chased a feline"
    )
    await engine.index_document(EntityType.CHAPTER, "ch2", 1, "The ship crossed the sea")
    await engine.index_document(EntityType.KNOWLEDGE, "cat-p2", 2, "Cats in project two")


@pytest.mark.anyio
async def test_search_ranks_related_document_first(engine: SearchEngine) -> None:
    await _index_animals(engine)

    results = await engine.search(1, "feline behavior", SearchOptions(min_similarity=0.3))

    assert [result.entity_id for result in results] == ["ch1", "cat"]
    assert results[0].similarity >= results[1].similarity


@pytest.mark.anyio
async def test_cat_and_dog_scenario(engine: SearchEngine) -> None:
    await engine.index_document(EntityType.KNOWLEDGE, "cat", 1, "Cats are independent")
    await engine.index_document(EntityType.KNOWLEDGE, "dog", 1, "Dogs are loyal companions.")
    options = SearchOptions.model_validate({"minSimilarity": 0.3})

    results = await engine.search(1, "feline behavior", options)
    ranked = [result.entity_id for result in results]
    assert ranked[0] == "cat"
    if "dog" in ranked:
        assert ranked.index("cat") < ranked.index("dog")

    await engine.remove_document(EntityType.KNOWLEDGE, "cat", 1)

    results = await engine.search(1, "feline behavior", options)
    assert [result.entity_id for result in results] in ([], ["dog"])


@pytest.mark.anyio
async def test_project_isolation(engine: SearchEngine) -> None:
    await _index_animals(engine)

    for project_id in (1, 2, 3):
        results = await engine.search(
            project_id, "cats", SearchOptions(min_similarity=-1.0, limit=100)
        )
        documents = await engine.vector_store.query_by_project(project_id)
        assert {result.id for result in results} <= {doc.id for doc in documents}

    assert await engine.search(3, "cats", SearchOptions(min_similarity=-1.0)) == []


@pytest.mark.anyio
async def test_exact_mode_is_deterministic(engine: SearchEngine) -> None:
    await _index_animals(engine)
    options = SearchOptions(min_similarity=-1.0, search_mode=SearchMode.EXACT)

    first = await engine.search(1, "a kitten at sea", options)
    second = await engine.search(1, "a kitten at sea", options)

    assert first == second


@pytest.mark.anyio
async def test_threshold_monotonicity(engine: SearchEngine) -> None:
    await _index_animals(engine)

    previous: set[str] | None = None
    for threshold in (-1.0, 0.0, 0.2, 0.5, 0.8, 0.95, 1.0):
        results = await engine.search(
            1, "feline cats", SearchOptions(min_similarity=threshold, limit=100)
        )
        ids = {result.id for result in results}
        assert all(result.similarity >= threshold for result in results)
        if previous is not None:
            assert ids <= previous
        previous = ids


@pytest.mark.anyio
async def test_limit_and_entity_type_filter(engine: SearchEngine) -> None:
    await _index_animals(engine)

    limited = await engine.search(1, "cats", SearchOptions(min_similarity=-1.0, limit=2))
    assert len(limited) == 2

    chapters = await engine.search(
        1,
        "cats",
        SearchOptions(min_similarity=-1.0, entity_types=[EntityType.CHAPTER]),
    )
    assert {result.entity_type for result in chapters} == {EntityType.CHAPTER}


@pytest.mark.anyio
async def test_exclude_ids(engine: SearchEngine) -> None:
    await _index_animals(engine)
    cat = await engine.vector_store.get_by_entity(EntityType.KNOWLEDGE, "cat", 1)
    assert cat is not None

    results = await engine.search(
        1, "cats", SearchOptions(min_similarity=-1.0, exclude_ids=[cat.id])
    )

    assert cat.id not in {result.id for result in results}


@pytest.mark.anyio
async def test_find_similar_excludes_self(engine: SearchEngine) -> None:
    await _index_animals(engine)

    results = await engine.find_similar(
        1, EntityType.KNOWLEDGE, "cat", SearchOptions(min_similarity=-1.0, limit=100)
    )

    pairs = {(result.entity_type, result.entity_id) for result in results}
    assert (EntityType.KNOWLEDGE, "cat") not in pairs
    assert results[0].entity_id == "ch1"
    assert len(results) == 3


@pytest.mark.anyio
async def test_find_similar_does_not_reembed(engine: SearchEngine, keyword_provider) -> None:
    await _index_animals(engine)
    embedded_before = len(keyword_provider.embedded)

    await engine.find_similar(1, EntityType.KNOWLEDGE, "dog")

    assert len(keyword_provider.embedded) == embedded_before


@pytest.mark.anyio
async def test_find_similar_unindexed_entity_is_empty(engine: SearchEngine) -> None:
    await _index_animals(engine)

    assert await engine.find_similar(1, EntityType.KNOWLEDGE, "missing") == []


@pytest.mark.anyio
async def test_cache_transparency(engine: SearchEngine) -> None:
    """Cold and warm caches produce identical rankings."""
    await _index_animals(engine)
    options = SearchOptions(min_similarity=-1.0, limit=100)

    warm = await engine.search(1, "feline sea", options)
    engine.cache.clear()
    cold = await engine.search(1, "feline sea", options)
    rewarmed = await engine.search(1, "feline sea", options)

    assert warm == cold == rewarmed


@pytest.mark.anyio
async def test_index_document_refreshes_cache(engine: SearchEngine) -> None:
    document = await engine.index_document(EntityType.KNOWLEDGE, "k", 1, "cats")
    assert engine.cache.get(document.id) == document.vector

    updated = await engine.index_document(EntityType.KNOWLEDGE, "k", 1, "dogs")

    assert updated.id == document.id
    assert engine.cache.get(document.id) == updated.vector
    results = await engine.search(1, "dogs", SearchOptions(min_similarity=0.9))
    assert [result.content for result in results] == ["dogs"]


@pytest.mark.anyio
async def test_clear_project_invalidates_cache(engine: SearchEngine) -> None:
    await _index_animals(engine)

    removed = await engine.clear_project(1)

    assert removed == 4
    assert len(engine.cache) == 1
    assert await engine.vector_store.count(2) == 1


@pytest.mark.anyio
async def test_missing_arguments_raise_invalid_query(engine: SearchEngine) -> None:
    with pytest.raises(InvalidQuery):
        await engine.search(None, "cats")  # type: ignore[arg-type]
    with pytest.raises(InvalidQuery):
        await engine.search(1, "   ")
    with pytest.raises(InvalidQuery):
        await engine.find_similar(1, EntityType.KNOWLEDGE, "")


@pytest.mark.anyio
async def test_model_load_failure_surfaces_as_embedding_unavailable(
    memory_store: SQLiteVectorStore,
) -> None:
    provider = AsyncMock()
    provider.embed.side_effect = ModelLoadError("weights missing")
    engine = SearchEngine(provider, memory_store)

    with pytest.raises(EmbeddingUnavailable):
        await engine.search(1, "cats")


@pytest.mark.anyio
async def test_serendipity_mode_with_seeded_noise(
    keyword_provider, memory_store: SQLiteVectorStore
) -> None:
    engine_a = SearchEngine(keyword_provider, memory_store, noise=seeded_noise(7))
    engine_b = SearchEngine(keyword_provider, memory_store, noise=seeded_noise(7))
    await _index_animals(engine_a)
    options = SearchOptions(min_similarity=-1.0, search_mode=SearchMode.SERENDIPITY)

    first = await engine_a.search(1, "cats", options)
    second = await engine_b.search(1, "cats", options)

    assert [result.id for result in first] == [result.id for result in second]
    assert [result.similarity for result in first] == pytest.approx(
        [result.similarity for result in second]
    )


def test_perturb_exact_returns_copy() -> None:
    vector = [0.5, 0.5]
    perturbed = perturb(vector, SearchMode.EXACT)
    assert perturbed == vector
    assert perturbed is not vector


@pytest.mark.parametrize(
    ("mode", "amplitude"),
    [(SearchMode.SIMILAR, 0.05), (SearchMode.SERENDIPITY, 0.15)],
)
def test_perturb_bounded_by_amplitude(mode: SearchMode, amplitude: float) -> None:
    vector = [0.0] * 50
    perturbed = perturb(vector, mode, seeded_noise(3))
    assert any(value != 0.0 for value in perturbed)
    assert all(abs(value) <= amplitude for value in perturbed)


def test_search_options_accept_camel_case() -> None:
    options = SearchOptions.model_validate(
        {
            "limit": 5,
            "minSimilarity": 0.2,
            "entityTypes": ["chapter"],
            "excludeIds": ["vec_1"],
            "searchMode": "similar",
        }
    )

    assert options.limit == 5
    assert options.min_similarity == 0.2
    assert options.entity_types == [EntityType.CHAPTER]
    assert options.exclude_ids == ["vec_1"]
    assert options.search_mode is SearchMode.SIMILAR


def test_search_options_defaults() -> None:
    options = SearchOptions()
    assert options.limit == 10
    assert options.min_similarity == 0.5
    assert options.entity_types is None
    assert options.exclude_ids == []
    assert options.search_mode is SearchMode.EXACT
