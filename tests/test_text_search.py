"""Tests for keyword retrieval."""

import pytest

from libs.vector_store.base import IndexPoint, IndexUnavailable, ScrollPage
from libs.vector_store.filters import Filter, MatchText, MatchValue
from search_service.intelligence.query_variants import GermanQueryVariants, fold_umlauts
from search_service.models import MatchType
from search_service.retrievers.text import TextRetriever, calculate_text_search_score

from tests.conftest import FakeIndexClient, make_point


def test_text_score_two_occurrences_at_rank_zero():
    """Term found twice at merge rank 0 scores 0.2."""
    text = "Klimaschutz ist Pflicht. Mehr Klimaschutz im Verkehr."

    assert calculate_text_search_score("Klimaschutz", text, 0) == pytest.approx(0.2)


def test_text_score_bounds():
    assert calculate_text_search_score("wasser", None, 0) == 0.1
    assert calculate_text_search_score("", "wasser", 0) == 0.1
    # no literal occurrence still scores the floor
    assert calculate_text_search_score("muell", "Müll", 0) == 0.1
    # eight occurrences reach the 0.8 frequency cap
    text = "Klimaschutz " * 12
    assert calculate_text_search_score("Klimaschutz", text, 0) == pytest.approx(0.8)


def test_text_score_decays_with_position_and_short_terms():
    text = "Radverkehr Radverkehr Radverkehr"
    assert calculate_text_search_score("Radverkehr", text, 2) == pytest.approx(0.3 * 0.8)
    assert calculate_text_search_score("Rad", text, 0) == pytest.approx(0.3 * 0.3)


def test_german_variants():
    generator = GermanQueryVariants()

    assert generator.generate_query_variants("Müll") == ["müll", "muell"]
    assert generator.generate_query_variants("E-Bike") == ["e-bike", "e bike", "ebike"]
    assert generator.generate_query_variants("   ") == []
    assert fold_umlauts("straße über öl") == "strasse ueber oel"


def test_german_variants_synonyms():
    generator = GermanQueryVariants(synonyms={"Kita": ["Kindertagesstätte"]})

    assert generator.generate_query_variants("Kita") == ["kita", "kindertagesstätte"]


def test_normalize_and_tokenize():
    generator = GermanQueryVariants()

    assert generator.normalize_query("  Erneuerbare,  Energien! ") == "erneuerbare energien"
    assert generator.tokenize_query("Förderung für E-Autos") == ["förderung", "für", "e", "autos"]


@pytest.mark.asyncio
async def test_exact_match_scores_by_term():
    index = FakeIndexClient([
        make_point(1, "Klimaschutz ist Pflicht. Mehr Klimaschutz im Verkehr."),
        make_point(2, "Nichts zum Thema."),
    ])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "Klimaschutz")

    assert len(hits) == 1
    hit = hits[0]
    assert hit.id == 1
    assert hit.score == pytest.approx(0.2)
    assert hit.match_type == MatchType.EXACT
    assert hit.matched_variant == "klimaschutz"
    assert hit.search_term == "Klimaschutz"
    assert hit.search_method.value == "text"


@pytest.mark.asyncio
async def test_variants_merge_first_writer_wins():
    """A point found by several variants keeps the first variant's label."""
    index = FakeIndexClient([
        make_point("both", "Müll und Muell"),
        make_point("folded", "Muelltrennung"),
    ])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "Müll")

    by_id = {h.id: h for h in hits}
    assert set(by_id) == {"both", "folded"}
    assert by_id["both"].matched_variant == "müll"
    assert by_id["folded"].matched_variant == "muell"
    # every hit carries the overall match type
    assert {h.match_type for h in hits} == {MatchType.EXACT}


@pytest.mark.asyncio
async def test_failed_variant_contributes_nothing():
    index = FakeIndexClient([make_point("folded", "Muelltrennung")])
    index.failing_texts = {"müll"}
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "Müll")

    assert [h.id for h in hits] == ["folded"]
    assert hits[0].match_type == MatchType.VARIANT


@pytest.mark.asyncio
async def test_per_variant_limit():
    index = FakeIndexClient([make_point("a", "müll")])
    retriever = TextRetriever(index)

    await retriever.perform_text_search("docs", "Müll", limit=10)

    # two variants: ceil(10 / 2) + 5
    assert [c["limit"] for c in index.scroll_calls] == [10, 10]


@pytest.mark.asyncio
async def test_token_fallback_when_no_variant_matches():
    index = FakeIndexClient([
        make_point("e", "Neue Energien im Landkreis"),
        make_point("f", "Förderung beantragen"),
        make_point("x", "Ganz anderes Thema"),
    ])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "erneuerbare Energien Förderung", limit=10)

    assert {h.id for h in hits} == {"e", "f"}
    assert all(h.match_type == MatchType.TOKEN_FALLBACK for h in hits)
    assert all(h.matched_variant == "token" for h in hits)
    token_calls = index.scroll_calls[-3:]
    assert [c["filter"].must[-1].text for c in token_calls] == ["erneuerbare", "energien", "förderung"]
    # three tokens: ceil(10 / 3) + 3
    assert {c["limit"] for c in token_calls} == {7}


@pytest.mark.asyncio
async def test_token_fallback_not_used_when_variants_hit():
    index = FakeIndexClient([make_point("a", "Erneuerbare Energien Förderung 2024")])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "erneuerbare Energien Förderung")

    assert [h.match_type for h in hits] == [MatchType.EXACT]
    variants = GermanQueryVariants().generate_query_variants("erneuerbare Energien Förderung")
    assert len(index.scroll_calls) == len(variants)


@pytest.mark.asyncio
async def test_single_short_token_has_no_fallback():
    index = FakeIndexClient([make_point("a", "Radweg")])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "Bus Bahn")

    assert hits == []


@pytest.mark.asyncio
async def test_all_queries_failing_returns_empty():
    index = FakeIndexClient([make_point("a", "Müll")])
    index.scroll_error = IndexUnavailable("down")
    retriever = TextRetriever(index)

    assert await retriever.perform_text_search("docs", "Müll") == []


@pytest.mark.asyncio
async def test_generator_failure_returns_empty():
    class BrokenGenerator(GermanQueryVariants):
        def generate_query_variants(self, term):
            raise RuntimeError("boom")

    retriever = TextRetriever(FakeIndexClient([make_point("a", "Müll")]), variant_generator=BrokenGenerator())

    assert await retriever.perform_text_search("docs", "Müll") == []


@pytest.mark.asyncio
async def test_base_filter_hard_constraints_apply():
    """Text queries keep must clauses of the base filter but not should preferences."""
    index = FakeIndexClient([
        make_point("mine", "Müll", user_id="u1", lang="en"),
        make_point("other", "Müll", user_id="u2", lang="de"),
    ])
    retriever = TextRetriever(index)
    base = Filter(must=(MatchValue("user_id", "u1"),), should=(MatchValue("lang", "de"),))

    hits = await retriever.perform_text_search("docs", "Müll", base)

    assert [h.id for h in hits] == ["mine"]
    first = index.scroll_calls[0]["filter"]
    assert first.should == ()
    assert first.must == (MatchValue("user_id", "u1"), MatchText("chunk_text", "müll"))


@pytest.mark.asyncio
async def test_results_sorted_and_truncated():
    index = FakeIndexClient([
        make_point(i, "Radverkehr " * (i + 1)) for i in range(6)
    ])
    retriever = TextRetriever(index)

    hits = await retriever.perform_text_search("docs", "Radverkehr", limit=3)

    assert len(hits) == 3
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)


class NonTextPayloadIndex(FakeIndexClient):
    """Answers every scroll with a point whose ``chunk_text`` is not a string."""

    async def scroll(self, collection, filter=None, limit=10, offset=None, with_payload=True, with_vector=False):
        self.scroll_calls.append({"collection": collection, "filter": filter, "limit": limit, "offset": offset})
        return ScrollPage(points=[IndexPoint(id="n", payload={"chunk_text": 12345})])


def test_score_of_non_string_text_is_floor():
    assert calculate_text_search_score("Klimaschutz", 12345, 0) == 0.1
    assert calculate_text_search_score("Klimaschutz", ["Klimaschutz"], 0) == 0.1


@pytest.mark.asyncio
async def test_non_string_chunk_text_is_scored_not_raised():
    retriever = TextRetriever(NonTextPayloadIndex())

    hits = await retriever.perform_text_search("docs", "Klimaschutz")

    assert [h.id for h in hits] == ["n"]
    assert hits[0].score == 0.1
    assert hits[0].match_type == MatchType.EXACT


@pytest.mark.asyncio
async def test_exact_match_ignores_surrounding_whitespace():
    retriever = TextRetriever(FakeIndexClient([make_point("a", "Klimaschutz")]))

    hits = await retriever.perform_text_search("docs", " Klimaschutz ")

    assert [h.id for h in hits] == ["a"]
    assert hits[0].match_type == MatchType.EXACT


@pytest.mark.asyncio
async def test_exact_match_ignores_unicode_composition():
    retriever = TextRetriever(FakeIndexClient([make_point("a", "Müll")]))

    hits = await retriever.perform_text_search("docs", "Mu\u0308ll")

    assert [h.id for h in hits] == ["a"]
    assert hits[0].match_type == MatchType.EXACT
