from __future__ import annotations

"""Sentence segmentation and semantic chunking tests."""

import random
from dataclasses import dataclass, field

import pytest

from contextrag.loaders.chunking import (
    chunk_text_tokens,
    cosine_similarity,
    semantic_chunks,
    split_sentences,
)
from contextrag.rag.embeddings import EmbeddingClient

pytestmark = pytest.mark.anyio

TOPICS = {
    "mammal": [1.0, 0.0],
    "otter": [0.8, 0.6],
    "trader": [0.6, 0.8],
    "market": [0.0, 1.0],
}


@dataclass
class TopicEmbedder:
    """Maps each sentence to a fixed vector by the first topic keyword it mentions."""
    dimension: int = 2
    calls: list[list[str]] = field(default_factory=list)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        for keyword, vector in TOPICS.items():
            if keyword in lowered:
                return list(vector)
        return [0.0, 0.0]


def test_split_sentences_on_terminators() -> None:
    text = "Hello world. How are you? Fine!"
    assert split_sentences(text) == ["Hello world.", "How are you?", "Fine!"]


def test_split_sentences_keeps_trailing_text() -> None:
    assert split_sentences("First one.  Then a fragment") == ["First one.", "Then a fragment"]


def test_split_sentences_groups_repeated_terminators() -> None:
    assert split_sentences("Wait... what?! Really.") == ["Wait...", "what?!", "Really."]


def test_split_sentences_empty_and_whitespace() -> None:
    assert split_sentences("") == []
    assert split_sentences("   \n\t ") == []


def test_split_sentences_preserves_all_characters() -> None:
    text = "Alpha beta. Gamma?  Delta!\nEpsilon zeta"
    sentences = split_sentences(text)
    assert "".join(sentences).replace(" ", "") == "".join(text.split())


def test_cosine_similarity_properties() -> None:
    assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.3, 0.4], [0.5, 0.1]) == pytest.approx(
        cosine_similarity([0.5, 0.1], [0.3, 0.4])
    )


def test_cosine_similarity_zero_vector_is_undefined() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) is None


def test_cosine_similarity_rejects_mismatched_lengths() -> None:
    with pytest.raises(ValueError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_cosine_similarity_is_exactly_one_for_identical_vectors() -> None:
    rng = random.Random(7)
    for _ in range(50):
        vector = [rng.uniform(-1.0, 1.0) for _ in range(384)]
        assert cosine_similarity(vector, vector) == 1.0
        assert cosine_similarity(vector, [-value for value in vector]) == -1.0


async def test_semantic_chunks_threshold_one_merges_identical_embeddings() -> None:
    rng = random.Random(11)
    vector = [rng.gauss(0.0, 1.0) for _ in range(384)]

    @dataclass
    class RepeatingEmbedder:
        dimension: int = 384

        def embed_batch(self, texts: list[str]) -> list[list[float]]:
            return [list(vector) for _ in texts]

    client = EmbeddingClient(provider=RepeatingEmbedder())

    assert await semantic_chunks(["Yes.", "Yes.", "Yes."], client, 1.0) == ["Yes. Yes. Yes."]


async def test_semantic_chunks_groups_related_sentences() -> None:
    provider = TopicEmbedder()
    sentences = split_sentences(
        "Cats are mammals. Dogs are mammals too. The stock market crashed today."
    )

    chunks = await semantic_chunks(sentences, EmbeddingClient(provider=provider), 0.75)

    assert chunks == [
        "Cats are mammals. Dogs are mammals too.",
        "The stock market crashed today.",
    ]
    assert len(provider.calls) == 1


async def test_semantic_chunks_compare_against_first_sentence_of_run() -> None:
    # otter is close to mammal (0.8), trader is close to otter (0.96) but not to mammal (0.6)
    sentences = ["Cats are mammals.", "An otter swims.", "A trader waits."]

    chunks = await semantic_chunks(sentences, EmbeddingClient(provider=TopicEmbedder()), 0.75)

    assert chunks == ["Cats are mammals. An otter swims.", "A trader waits."]


async def test_semantic_chunks_threshold_one_only_merges_identical_directions() -> None:
    sentences = ["Cats are mammals.", "Dogs are mammals.", "An otter swims.", "Markets rose."]

    chunks = await semantic_chunks(sentences, EmbeddingClient(provider=TopicEmbedder()), 1.0)

    assert chunks == ["Cats are mammals. Dogs are mammals.", "An otter swims.", "Markets rose."]


async def test_semantic_chunks_threshold_zero_merges_non_negative_similarity() -> None:
    sentences = ["Cats are mammals.", "The stock market fell.", "An otter swims."]

    chunks = await semantic_chunks(sentences, EmbeddingClient(provider=TopicEmbedder()), 0.0)

    assert chunks == [" ".join(sentences)]


async def test_semantic_chunks_zero_vector_forces_boundary() -> None:
    sentences = ["Cats are mammals.", "Nothing relevant here.", "Dogs are mammals."]

    chunks = await semantic_chunks(sentences, EmbeddingClient(provider=TopicEmbedder()), 0.0)

    assert chunks == ["Cats are mammals.", "Nothing relevant here.", "Dogs are mammals."]


async def test_semantic_chunks_single_and_empty_input() -> None:
    provider = TopicEmbedder()
    client = EmbeddingClient(provider=provider)

    assert await semantic_chunks([], client, 0.75) == []
    assert await semantic_chunks(["Only one."], client, 0.75) == ["Only one."]
    assert len(provider.calls) == 1


def test_chunk_text_tokens_short_circuits_without_tokenizer() -> None:
    assert chunk_text_tokens("   ", max_tokens=10, overlap=2) == []
    assert chunk_text_tokens("Some  text\r\nhere", max_tokens=0, overlap=0) == ["Some text here"]
