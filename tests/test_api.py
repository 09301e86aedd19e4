import json

import httpx
from fastapi.testclient import TestClient

from gateway.config import GatewaySettings
from gateway.context import ModelContext
from gateway.server import create_app

from conftest import VOCAB, build_word_tokenizer

SCORES_BY_TOKEN = {VOCAB["d1"]: 0.1, VOCAB["d2"]: 0.9, VOCAB["d3"]: 0.5}


class FakeTriton:
    """Routes /v2 calls to canned behaviour and records infer payloads."""

    def __init__(self, live=True, ready=True, infer_status=200):
        self.live = live
        self.ready = ready
        self.infer_status = infer_status
        self.infer_calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v2/health/live":
            if self.live is None:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200 if self.live else 503)
        if path.endswith("/ready"):
            return httpx.Response(200 if self.ready else 400)
        if path.endswith("/infer"):
            body = json.loads(request.content)
            self.infer_calls.append((path, body))
            if self.infer_status != 200:
                return httpx.Response(self.infer_status, text="backend exploded")
            if path == "/v2/models/jina-embeddings-v3/infer":
                return self._embeddings(body)
            return self._scores(body)
        return httpx.Response(404)

    @staticmethod
    def _embeddings(body):
        ids = body["inputs"][0]
        rows, cols = ids["shape"]
        data = []
        for row in range(rows):
            data.extend([float(ids["data"][row * cols + 1]), 0.0, 1.0])
        return httpx.Response(
            200, json={"outputs": [{"name": "13049", "shape": [rows, 3], "datatype": "FP32", "data": data}]}
        )

    @staticmethod
    def _scores(body):
        ids = body["inputs"][0]
        rows, cols = ids["shape"]
        # rows look like [CLS] q [SEP] <doc> [SEP] ...
        data = [SCORES_BY_TOKEN.get(ids["data"][row * cols + 3], 0.0) for row in range(rows)]
        return httpx.Response(
            200, json={"outputs": [{"name": "scores", "shape": [rows, 1], "datatype": "FP32", "data": data}]}
        )


def build_test_client(backend: FakeTriton, **overrides) -> TestClient:
    options = dict(
        triton_url="triton:8000",
        max_sequence_length=16,
        reranker_max_sequence_length=16,
        embedding_client_max_batch=2,
    )
    options.update(overrides)
    settings = GatewaySettings(**options)
    tokenizer = build_word_tokenizer()
    context = ModelContext(embedding_tokenizer=tokenizer, reranker_tokenizer=tokenizer)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    app = create_app(settings, context=context, http_client=http_client)
    return TestClient(app)


def test_health_endpoint_reports_both_pipelines():
    with build_test_client(FakeTriton()) as client:
        response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["embedding_service"] == {"ready": True}
    assert payload["reranking_service"] == {"ready": True}
    assert payload["queue_active"] == 0
    assert "X-Process-Time-ms" in response.headers


def test_health_degrades_when_backend_unreachable():
    with build_test_client(FakeTriton(live=None)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["embedding_service"] == {"ready": False}
    assert response.json()["reranking_service"] == {"ready": False}


def test_readiness_endpoint_is_503_when_model_not_ready():
    with build_test_client(FakeTriton(ready=False)) as client:
        response = client.get("/health/ready")

    assert response.status_code == 503
    assert "not ready" in response.json()["error"]


def test_embeddings_endpoint_single_string():
    backend = FakeTriton()
    with build_test_client(backend) as client:
        response = client.post("/v1/embeddings", json={"input": "hello", "model": "my-model"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["object"] == "list"
    assert payload["model"] == "my-model"
    assert payload["usage"] == {"prompt_tokens": 0, "total_tokens": 0}
    assert payload["data"] == [{"object": "embedding", "embedding": [float(VOCAB["hello"]), 0.0, 1.0], "index": 0}]
    task_tensor = backend.infer_calls[0][1]["inputs"][2]
    assert task_tensor["data"] == [0]


def test_embeddings_endpoint_chunks_and_keeps_order():
    backend = FakeTriton()
    texts = ["a", "b", "c", "d", "e"]
    with build_test_client(backend) as client:
        response = client.post("/v1/embeddings", json={"input": texts, "task": "text-matching"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert [item["index"] for item in data] == [0, 1, 2, 3, 4]
    assert [item["embedding"][0] for item in data] == [float(VOCAB[t]) for t in texts]
    assert len(backend.infer_calls) == 3
    assert all(call[1]["inputs"][2]["data"][0] == 4 for call in backend.infer_calls)


def test_embeddings_endpoint_rejects_empty_input():
    backend = FakeTriton()
    with build_test_client(backend) as client:
        response = client.post("/v1/embeddings", json={"input": []})

    assert response.status_code == 400
    assert "cannot be empty" in response.json()["error"]
    assert backend.infer_calls == []


def test_embeddings_endpoint_backend_failure_is_500():
    backend = FakeTriton(infer_status=500)
    with build_test_client(backend) as client:
        response = client.post("/v1/embeddings", json={"input": ["a", "b", "c"]})

    assert response.status_code == 500
    assert "backend exploded" in response.json()["error"]
    assert len(backend.infer_calls) == 1


def test_rerank_endpoint_top_n():
    with build_test_client(FakeTriton()) as client:
        response = client.post(
            "/v1/rerank", json={"query": "q", "documents": ["d1", "d2", "d3"], "top_n": 2}
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["object"] == "list"
    assert payload["model"] == "jina-reranker-v2"
    assert payload["usage"] == {"total_tokens": 0}
    assert payload["data"] == [
        {"index": 1, "relevance_score": 0.9, "document": "d2"},
        {"index": 2, "relevance_score": 0.5, "document": "d3"},
    ]


def test_rerank_endpoint_omits_documents_when_not_requested():
    with build_test_client(FakeTriton()) as client:
        response = client.post(
            "/v1/rerank",
            json={"query": "q", "documents": ["d1", "d2"], "return_documents": False},
        )

    assert response.status_code == 200
    assert all("document" not in item for item in response.json()["data"])


def test_rerank_endpoint_serialises_structured_documents():
    with build_test_client(FakeTriton()) as client:
        response = client.post(
            "/v1/rerank",
            json={"query": "q", "documents": [{"title": "x", "body": "y"}, "d2"]},
        )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data[0]["index"] == 1
    assert data[1] == {"index": 0, "relevance_score": 0.0, "document": '{"body":"y","title":"x"}'}


def test_rerank_endpoint_rejects_empty_documents():
    backend = FakeTriton()
    with build_test_client(backend) as client:
        response = client.post("/v1/rerank", json={"query": "q", "documents": []})

    assert response.status_code == 400
    assert backend.infer_calls == []


def test_malformed_body_is_422_with_error_message():
    with build_test_client(FakeTriton()) as client:
        response = client.post("/v1/rerank", json={"documents": ["d1"]})

    assert response.status_code == 422
    assert "query" in response.json()["error"]


def test_api_key_guard():
    with build_test_client(FakeTriton(), require_api_key=True, api_key="secret") as client:
        missing = client.post("/v1/embeddings", json={"input": "hello"})
        wrong = client.post(
            "/v1/embeddings", json={"input": "hello"}, headers={"Authorization": "Bearer nope"}
        )
        ok = client.post(
            "/v1/embeddings", json={"input": "hello"}, headers={"Authorization": "Bearer secret"}
        )
        raw = client.post("/v1/embeddings", json={"input": "hello"}, headers={"Authorization": "secret"})
        health = client.get("/health")

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert raw.status_code == 200
    assert health.status_code == 200


def test_api_key_required_but_not_configured_is_500():
    with build_test_client(FakeTriton(), require_api_key=True) as client:
        response = client.post("/v1/embeddings", json={"input": "hello"})

    assert response.status_code == 500
