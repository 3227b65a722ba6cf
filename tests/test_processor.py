import asyncio
import json
from pathlib import Path

import pytest

from conftest import FakeEmbedder, FakeVectorStore, make_settings
from ftc_assistant.core.errors import IngestionError
from ftc_assistant.vector_logic.extraction import UnsupportedFormatError, html_to_text
from ftc_assistant.vector_logic.processor import (
    embed_texts,
    get_source_info,
    ingest_directory,
    ingest_file,
    list_source_files,
    load_sources_manifest,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _manifest(data_dir: Path, entries: dict) -> None:
    _write(data_dir / "sources.json", json.dumps(entries))


class TestManifest:
    def test_missing_manifest_required(self, tmp_path):
        with pytest.raises(IngestionError, match="Missing"):
            load_sources_manifest(tmp_path / "sources.json", require_source_url=True)

    def test_missing_manifest_optional(self, tmp_path):
        assert load_sources_manifest(tmp_path / "sources.json", require_source_url=False) == {}

    def test_manifest_must_be_object(self, tmp_path):
        _write(tmp_path / "sources.json", "[1, 2]")
        with pytest.raises(IngestionError, match="JSON object"):
            load_sources_manifest(tmp_path / "sources.json", require_source_url=False)

    def test_source_info_trims_and_defaults_title(self):
        manifest = {"rules/gm.md": {"url": " https://x/gm ", "title": "  "}}
        info = get_source_info("rules/gm.md", manifest)
        assert info.url == "https://x/gm"
        assert info.title == "rules/gm.md"

    def test_missing_entry_or_url(self):
        with pytest.raises(IngestionError, match="Missing source entry"):
            get_source_info("a.md", {})
        with pytest.raises(IngestionError, match="Missing URL"):
            get_source_info("a.md", {"a.md": {"title": "A"}})

    def test_optional_urls(self):
        info = get_source_info("a.md", {}, require_source_url=False)
        assert info.url is None
        assert info.title == "a.md"


def test_embed_texts_batches_and_preserves_order():
    embedder = FakeEmbedder()
    texts = [f"text {i}" for i in range(45)]

    vectors = asyncio.run(embed_texts(texts, embedder, batch_size=20, max_chars=24000))

    assert [len(call) for call in embedder.calls] == [20, 20, 5]
    assert [embedder.text_for(v) for v in vectors] == texts


def test_ingest_file_builds_rows_and_replaces_source(tmp_path):
    settings = make_settings(rag_chunk_size=100, rag_chunk_overlap=20)
    data_dir = tmp_path / "data"
    doc = _write(data_dir / "rules" / "manual.md", "R" * 250)
    manifest = {"rules/manual.md": {"url": "https://example.org/manual", "title": "Game Manual"}}
    embedder = FakeEmbedder()
    store = FakeVectorStore(embedder)

    count = asyncio.run(ingest_file(
        doc, data_dir, manifest, embedder=embedder, vector_store=store, settings=settings,
    ))

    assert count == 3
    rows = store.replaced["rules/manual.md"]
    assert [r.chunk_index for r in rows] == [0, 1, 2]
    assert rows[0].metadata == {
        "source": "rules/manual.md",
        "source_url": "https://example.org/manual",
        "source_title": "Game Manual",
        "chunk_index": 0,
    }
    assert all(r.source == "rules/manual.md" for r in rows)


def test_ingest_file_checks_manifest_before_embedding(tmp_path):
    doc = _write(tmp_path / "orphan.md", "content")
    embedder = FakeEmbedder()

    with pytest.raises(IngestionError):
        asyncio.run(ingest_file(
            doc, tmp_path, {}, embedder=embedder,
            vector_store=FakeVectorStore(embedder), settings=make_settings(),
        ))
    assert embedder.calls == []


def test_ingest_directory(tmp_path):
    _write(tmp_path / "a.md", "alpha " * 10)
    _write(tmp_path / "sub" / "b.txt", "beta " * 10)
    _write(tmp_path / "empty.txt", "   ")
    _write(tmp_path / "image.png", "not text")
    _manifest(tmp_path, {
        "a.md": {"url": "https://x/a"},
        "sub/b.txt": {"url": "https://x/b"},
        "empty.txt": {"url": "https://x/empty"},
    })
    embedder = FakeEmbedder()
    store = FakeVectorStore(embedder)

    summary = asyncio.run(ingest_directory(
        tmp_path, embedder=embedder, vector_store=store, settings=make_settings(),
    ))

    assert summary.files == 3
    assert summary.chunks == 2
    assert set(store.replaced) == {"a.md", "sub/b.txt"}
    assert "sources.json" not in [p.name for p in list_source_files(tmp_path)]


def test_ingest_directory_skips_unsupported_formats(tmp_path):
    _write(tmp_path / "a.md", "alpha")
    _manifest(tmp_path, {"a.md": {"url": "https://x/a"}})

    def extractor(path: Path) -> str:
        raise UnsupportedFormatError(path.name)

    embedder = FakeEmbedder()
    summary = asyncio.run(ingest_directory(
        tmp_path, embedder=embedder, vector_store=FakeVectorStore(embedder),
        settings=make_settings(), extractor=extractor,
    ))
    assert summary.files == 0
    assert summary.skipped == ["a.md"]


def test_pdf_with_no_text_falls_back_to_html_sibling(tmp_path):
    _write(tmp_path / "scan.pdf", "")
    _write(tmp_path / "scan.html", "<p>Scanned rules</p>")
    _manifest(tmp_path, {"scan.pdf": {"url": "https://x/scan"}, "scan.html": {"url": "https://x/scan"}})

    def extractor(path: Path) -> str:
        return "" if path.suffix == ".pdf" else html_to_text(path.read_text())

    embedder = FakeEmbedder()
    store = FakeVectorStore(embedder)
    asyncio.run(ingest_file(
        tmp_path / "scan.pdf", tmp_path, json.loads((tmp_path / "sources.json").read_text()),
        embedder=embedder, vector_store=store, settings=make_settings(), extractor=extractor,
    ))
    assert store.replaced["scan.pdf"][0].content == "Scanned rules"


def test_missing_data_dir_is_empty_summary(tmp_path):
    embedder = FakeEmbedder()
    summary = asyncio.run(ingest_directory(
        tmp_path / "nope", embedder=embedder, vector_store=FakeVectorStore(embedder),
        settings=make_settings(),
    ))
    assert (summary.files, summary.chunks) == (0, 0)


def test_html_to_text():
    html = "<html><style>p{}</style><script>x()</script><p>A &amp; B&nbsp;&lt;C&gt;</p></html>"
    assert html_to_text(html) == "A & B <C>"
