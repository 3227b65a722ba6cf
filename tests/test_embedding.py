import asyncio
from types import SimpleNamespace

import pytest

from conftest import make_settings
from ftc_assistant.core.errors import ConfigurationError, EmbeddingDimensionError
from ftc_assistant.services.embedding import (
    OpenAIEmbedder,
    build_embedder,
    iter_embedding_batches,
    normalize_embedding,
)


class TestNormalizeEmbedding:
    def test_same_length_unchanged(self):
        assert normalize_embedding([1.0, 2.0, 3.0], 3) == [1.0, 2.0, 3.0]

    def test_integer_multiple_is_bucket_mean(self):
        vector = [1.0, 3.0, 5.0, 7.0, 0.0, 2.0]
        assert normalize_embedding(vector, 3) == pytest.approx([2.0, 6.0, 1.0])

    def test_non_multiple_is_truncated(self):
        assert normalize_embedding([1.0, 2.0, 3.0, 4.0, 5.0], 3) == [1.0, 2.0, 3.0]

    def test_shorter_is_zero_padded(self):
        assert normalize_embedding([1.0, 2.0], 4) == [1.0, 2.0, 0.0, 0.0]

    @pytest.mark.parametrize("length", [1, 383, 384, 385, 768, 1536, 3072])
    def test_output_always_has_target_length(self, length):
        assert len(normalize_embedding([0.5] * length, 384)) == 384

    def test_rejects_non_positive_target(self):
        with pytest.raises(ValueError):
            normalize_embedding([1.0], 0)


class TestEmbeddingBatches:
    def test_bounded_by_count(self):
        batches = list(iter_embedding_batches(["a"] * 45, batch_size=20, max_chars=10_000))
        assert [len(b) for b in batches] == [20, 20, 5]

    def test_bounded_by_characters(self):
        texts = ["x" * 10] * 5
        batches = list(iter_embedding_batches(texts, batch_size=20, max_chars=25))
        assert [len(b) for b in batches] == [2, 2, 1]

    def test_oversized_item_goes_alone(self):
        texts = ["small", "y" * 100, "small"]
        batches = list(iter_embedding_batches(texts, batch_size=20, max_chars=50))
        assert batches == [["small"], ["y" * 100], ["small"]]

    def test_order_preserved(self):
        texts = [str(i) for i in range(50)]
        flat = [t for b in iter_embedding_batches(texts, 7, 12) for t in b]
        assert flat == texts


def _fake_openai(vectors, calls):
    async def create(**kwargs):
        calls.append(kwargs)
        # return rows out of order; the embedder must sort by index
        rows = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
        return SimpleNamespace(data=list(reversed(rows)))

    return SimpleNamespace(embeddings=SimpleNamespace(create=create))


class TestOpenAIEmbedder:
    def test_missing_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            OpenAIEmbedder(make_settings(openai_api_key=None))

    def test_normalizes_and_keeps_order(self):
        calls = []
        client = _fake_openai([[1.0] * 768, [2.0] * 768], calls)
        embedder = OpenAIEmbedder(make_settings(), client=client)

        vectors = asyncio.run(embedder.embed(["first", "second"]))

        assert [len(v) for v in vectors] == [384, 384]
        assert vectors[0][0] == pytest.approx(1.0)
        assert vectors[1][0] == pytest.approx(2.0)
        assert "dimensions" not in calls[0]

    def test_dimension_mismatch_raises(self):
        calls = []
        client = _fake_openai([[0.1] * 1536], calls)
        embedder = OpenAIEmbedder(make_settings(openai_embedding_dimensions=768), client=client)

        with pytest.raises(EmbeddingDimensionError) as excinfo:
            asyncio.run(embedder.embed(["q"]))

        assert excinfo.value.expected == 768
        assert excinfo.value.actual == 1536
        assert calls[0]["dimensions"] == 768

    def test_empty_input_skips_provider(self):
        calls = []
        embedder = OpenAIEmbedder(make_settings(), client=_fake_openai([], calls))
        assert asyncio.run(embedder.embed([])) == []
        assert calls == []


def test_unknown_provider_rejected():
    with pytest.raises(ConfigurationError):
        build_embedder(make_settings(embedding_provider="nope"))
