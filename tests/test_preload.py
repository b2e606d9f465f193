"""Tests for the preload orchestrator."""

from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from embedding_service.errors import (
    DownloadError,
    ModelLoadError,
    UnsupportedFormatError,
    VocabularyError,
)
from embedding_service.loaders.preload import (
    ModelDescriptor,
    ModelFormat,
    PreloadOrchestrator,
    ResolvedFiles,
)
from embedding_service.runtime.model_cache import ModelCache
from libs.common.metrics import MetricsCollector
from libs.common.config import EmbeddingConfig

from .conftest import VOCAB_TOKENS, CountingEmbedder


class FakeClient:
    """Records downloads and writes placeholder files."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.downloads = []

    async def download_file(self, model_id, remote_filename, local_path):
        self.downloads.append((model_id, remote_filename, Path(local_path)))
        if not self.succeed:
            return False
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        if remote_filename.endswith(".txt"):
            Path(local_path).write_text("\n".join(VOCAB_TOKENS), encoding="utf-8")
        else:
            Path(local_path).write_bytes(b"weights")
        return True


@pytest.fixture
def config(tmp_path):
    return EmbeddingConfig(ml_model_storage_path=str(tmp_path))


@pytest.fixture
def client():
    return FakeClient()


def make_orchestrator(config, cache, client, loader=None, api_keys=None):
    def factory(api_key):
        if api_keys is not None:
            api_keys.append(api_key)
        return client

    built = []

    def default_loader(files: ResolvedFiles):
        built.append(files)
        return CountingEmbedder()

    loaders = {
        ModelFormat.GGUF: loader or default_loader,
        ModelFormat.ONNX: loader or default_loader,
    }
    orchestrator = PreloadOrchestrator(config, cache, client_factory=factory, loaders=loaders)
    orchestrator.built = built
    return orchestrator


@pytest.mark.parametrize("value", ["gguf", "GGUF", " Onnx "])
def test_model_format_parse(value):
    assert ModelFormat.parse(value).value == value.strip().lower()


@pytest.mark.parametrize("value", ["xyz", "", None])
def test_model_format_parse_rejects(value):
    with pytest.raises(UnsupportedFormatError):
        ModelFormat.parse(value)


@pytest.mark.asyncio
async def test_unsupported_format_skips_download(config, client):
    cache = ModelCache()
    orchestrator = make_orchestrator(config, cache, client)

    with pytest.raises(UnsupportedFormatError):
        await orchestrator.preload(ModelDescriptor(model_id="org/m", model_format="xyz", source_filename="m.bin"))

    assert client.downloads == []
    assert cache.is_loaded() is False


@pytest.mark.asyncio
async def test_gguf_downloads_missing_file(config, client, tmp_path):
    cache = ModelCache()
    api_keys = []
    orchestrator = make_orchestrator(config, cache, client, api_keys=api_keys)

    info = await orchestrator.preload(ModelDescriptor(
        model_id="org/model-GGUF",
        model_format="gguf",
        source_filename="model.Q4.gguf",
        output_filename="local.gguf",
        api_key="secret",
    ))

    assert client.downloads == [("org/model-GGUF", "model.Q4.gguf", tmp_path / "local.gguf")]
    assert api_keys == ["secret"]
    assert orchestrator.built[0].model_path == tmp_path / "local.gguf"
    assert orchestrator.built[0].vocabulary_path is None
    assert cache.is_loaded() is True
    assert info.model_format == "gguf"
    assert cache.info() is info


@pytest.mark.asyncio
async def test_existing_file_is_not_downloaded(config, client, tmp_path):
    (tmp_path / "local.gguf").write_bytes(b"weights")
    cache = ModelCache()
    orchestrator = make_orchestrator(config, cache, client)

    await orchestrator.preload(ModelDescriptor(model_format="gguf", output_filename="local.gguf"))

    assert client.downloads == []
    assert cache.is_loaded() is True


@pytest.mark.asyncio
async def test_gguf_without_any_filename_fails(config, client):
    orchestrator = make_orchestrator(config, ModelCache(), client)
    with pytest.raises(DownloadError):
        await orchestrator.preload(ModelDescriptor(model_id="org/m", model_format="gguf"))


@pytest.mark.asyncio
async def test_missing_file_without_model_id_fails(config, client):
    orchestrator = make_orchestrator(config, ModelCache(), client)
    with pytest.raises(DownloadError):
        await orchestrator.preload(ModelDescriptor(model_format="gguf", source_filename="m.gguf"))
    assert client.downloads == []


@pytest.mark.asyncio
async def test_onnx_uses_defaults_and_fetches_vocabulary(config, client, tmp_path):
    cache = ModelCache()
    orchestrator = make_orchestrator(config, cache, client)

    info = await orchestrator.preload(ModelDescriptor(model_format="onnx"))

    assert client.downloads == [
        ("onnx-models/all-MiniLM-L6-v2-onnx", "model.onnx", tmp_path / "model.onnx"),
        ("onnx-models/all-MiniLM-L6-v2-onnx", "vocab.txt", tmp_path / "vocab.txt"),
    ]
    assert orchestrator.built[0].vocabulary_path == tmp_path / "vocab.txt"
    assert info.model_id == "onnx-models/all-MiniLM-L6-v2-onnx"


@pytest.mark.asyncio
async def test_download_failure_leaves_cache_unchanged(config, tmp_path):
    cache = ModelCache()
    previous = CountingEmbedder()
    await cache.install(previous)
    orchestrator = make_orchestrator(config, cache, FakeClient(succeed=False))

    with pytest.raises(DownloadError):
        await orchestrator.preload(ModelDescriptor(model_id="org/m", model_format="gguf", source_filename="m.gguf"))

    assert cache.current() is previous
    assert previous.released is False


@pytest.mark.asyncio
async def test_loader_failure_is_model_load_error(config, client, tmp_path):
    cache = ModelCache()
    previous = CountingEmbedder()
    await cache.install(previous)

    def broken_loader(files):
        raise RuntimeError("corrupt weights")

    orchestrator = make_orchestrator(config, cache, client, loader=broken_loader)

    with pytest.raises(ModelLoadError, match="corrupt weights") as excinfo:
        await orchestrator.preload(ModelDescriptor(model_id="org/m", model_format="gguf", source_filename="m.gguf"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert cache.current() is previous


@pytest.mark.asyncio
async def test_vocabulary_error_passes_through(config, client):
    def vocab_loader(files):
        raise VocabularyError("missing [UNK]")

    cache = ModelCache()
    orchestrator = make_orchestrator(config, cache, client, loader=vocab_loader)

    with pytest.raises(VocabularyError):
        await orchestrator.preload(ModelDescriptor(model_format="onnx"))
    assert cache.is_loaded() is False


@pytest.mark.asyncio
async def test_successful_preload_replaces_previous_model(config, client, tmp_path):
    cache = ModelCache()
    previous = CountingEmbedder()
    await cache.install(previous)
    orchestrator = make_orchestrator(config, cache, client)

    await orchestrator.preload(ModelDescriptor(model_format="onnx"))

    assert cache.current() is not previous
    assert previous.released is True


@pytest.mark.asyncio
async def test_default_onnx_loader_builds_tokenizer(config, tmp_path, vocab_file, monkeypatch):
    import embedding_service.encoders.onnx_embedder as onnx_module

    class StubSession:
        def __init__(self, path, providers=None):
            self.path = path
            self.providers = providers

        def get_inputs(self):
            return []

    monkeypatch.setattr(onnx_module.ort, "InferenceSession", StubSession)
    orchestrator = PreloadOrchestrator(config, ModelCache())

    embedder = orchestrator._load_onnx(ResolvedFiles(model_path=tmp_path / "model.onnx", vocabulary_path=vocab_file))

    assert embedder.session.providers == ["CPUExecutionProvider"]
    assert embedder.tokenizer.max_length == 256


def test_default_gguf_loader_passes_pooling(tmp_path, monkeypatch):
    from embedding_service.encoders.llama_embedder import LlamaEmbedder

    calls = []

    def fake_from_file(path, n_ctx, n_gpu_layers, pooling):
        calls.append((Path(path), n_ctx, n_gpu_layers, pooling))
        return CountingEmbedder()

    monkeypatch.setattr(LlamaEmbedder, "from_file", fake_from_file)
    config = EmbeddingConfig(ml_model_storage_path=str(tmp_path), ml_gguf_pooling_type="last")
    orchestrator = PreloadOrchestrator(config, ModelCache())

    orchestrator._load_gguf(ResolvedFiles(model_path=tmp_path / "m.gguf"))

    assert calls == [(tmp_path / "m.gguf", 2048, 0, "last")]


@pytest.mark.asyncio
async def test_rejected_formats_share_one_metric_label(config, client):
    metrics = MetricsCollector("test", registry=CollectorRegistry())
    cache = ModelCache()
    orchestrator = PreloadOrchestrator(config, cache, client_factory=lambda api_key: client, metrics=metrics)

    for i in range(20):
        with pytest.raises(UnsupportedFormatError):
            await orchestrator.preload(ModelDescriptor(model_id="org/m", model_format=f"junk{i}"))
    with pytest.raises(UnsupportedFormatError):
        await orchestrator.preload(ModelDescriptor(model_id="org/m"))

    samples = [
        sample
        for family in metrics.registry.collect()
        if family.name == "ml_preload_requests"
        for sample in family.samples
        if sample.name == "ml_preload_requests_total"
    ]
    assert len(samples) == 1
    assert samples[0].labels["model_format"] == "unsupported"
    assert samples[0].value == 21
