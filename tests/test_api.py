"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from embedding_service.clients.huggingface import GgufFileDetails
from embedding_service.loaders.preload import ModelFormat, PreloadOrchestrator
from embedding_service.main import create_app
from libs.common.config import EmbeddingConfig

from .conftest import CountingEmbedder, FailingEmbedder
from .test_preload import FakeClient


class ListingClient(FakeClient):
    async def list_gguf_files(self, model_id):
        return [GgufFileDetails(filename="model.Q4.gguf", content_length=42, object_id="abc")]


@pytest.fixture
def config(tmp_path):
    return EmbeddingConfig(ml_model_storage_path=str(tmp_path), ml_log_format="console")


@pytest.fixture
def client(config):
    app = create_app(config)
    with TestClient(app) as test_client:
        fake_repo = ListingClient()
        app.state.fake_repo = fake_repo
        app.state.preload_orchestrator = PreloadOrchestrator(
            config,
            app.state.model_cache,
            client_factory=lambda api_key: fake_repo,
            loaders={
                ModelFormat.GGUF: lambda files: CountingEmbedder(),
                ModelFormat.ONNX: lambda files: CountingEmbedder(),
            },
        )
        yield test_client


def test_health_always_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["model_loaded"] is False


def test_embeddings_before_preload_is_bad_request(client):
    response = client.post("/embeddings", json={"Texts": ["hello"]})
    assert response.status_code == 400
    assert "not loaded" in response.json()["detail"]


def test_preload_then_embed(client):
    response = client.post("/preload", json={
        "ModelId": "org/model-GGUF",
        "ModelFormat": "gguf",
        "SourceFilename": "model.Q4.gguf",
        "OutputFilename": "model.gguf",
    })
    assert response.status_code == 200
    assert response.json()["status"] == "loaded"
    assert response.json()["model_format"] == "gguf"

    response = client.post("/embeddings", json={"Texts": ["a", "b", "c"]})
    assert response.status_code == 200
    assert response.json() == {"Embeddings": [[0.0], [1.0], [2.0]]}

    status = client.get("/status").json()
    assert status["model_loaded"] is True
    assert status["model"]["model_id"] == "org/model-GGUF"


def test_preload_unsupported_format(client):
    response = client.post("/preload", json={"ModelId": "org/m", "ModelFormat": "xyz"})
    assert response.status_code == 400
    assert "Invalid model format" in response.json()["detail"]
    assert client.app.state.fake_repo.downloads == []


def test_failed_embedding_keeps_model(client):
    cache = client.app.state.model_cache
    embedder = FailingEmbedder(fail_on=0)
    client.portal.call(cache.install, embedder)

    response = client.post("/embeddings", json={"Texts": ["boom", "fine"]})
    assert response.status_code == 400
    assert "backend exploded" in response.json()["detail"]

    response = client.post("/embeddings", json={"Texts": ["fine"]})
    assert response.status_code == 200
    assert response.json() == {"Embeddings": [[0.0, 1.0]]}


def test_embeddings_requires_texts(client):
    response = client.post("/embeddings", json={})
    assert response.status_code == 422


def test_list_gguf_files(client):
    response = client.get("/models/gguf", params={"ModelId": "org/model-GGUF"})
    assert response.status_code == 200
    assert response.json() == [
        {"Filename": "model.Q4.gguf", "ContentLength": 42, "ObjectIdentifier": "abc"}
    ]


def test_metrics_endpoint(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "X-Process-Time" in client.get("/health").headers
