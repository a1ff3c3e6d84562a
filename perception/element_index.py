# perception/element_index.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse
from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointIdsList, PointStruct, VectorParams
from agent_runtime import config
from agent_runtime.errors import ElementIndexConnectionError, ElementIndexError
from agent_runtime.logger import log
from agent_runtime.retry import RetryPolicy, retry

HTTPS_PORT = 443
QDRANT_HTTP_PORT = 6333
IN_MEMORY = ":memory:"


@dataclass(frozen=True)
class IndexMatch:
    id: str
    score: float
    payload: Dict[str, Any]


class ElementIndex(ABC):
    """Vector store holding one point per UI element, keyed by the element id."""

    @abstractmethod
    def upsert(self, point_id: str, vector: Sequence[float], payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def search(self, vector: Sequence[float], min_score: float, max_results: int) -> List[IndexMatch]:
        ...

    @abstractmethod
    def delete(self, point_id: str) -> None:
        ...


class QdrantElementIndex(ElementIndex):
    """
    ElementIndex backed by Qdrant, cosine distance.

    Connecting happens in the constructor. By default a connection failure is
    fatal right away; `startup_policy` allows a bounded number of reconnects
    for deployments where Qdrant may come up after the agent.
    """

    def __init__(self, url: Optional[str] = None, vector_size: int = 384,
                 collection_name: Optional[str] = None, api_key: Optional[str] = None,
                 startup_policy: Optional[RetryPolicy] = None, timeout: int = 10):
        self.url = url or config.VECTOR_DB_URL
        if not self.url or not self.url.strip():
            raise ValueError("Vector DB URL must not be blank")
        self.collection_name = collection_name or config.VECTOR_DB_COLLECTION
        self.vector_size = vector_size
        api_key = api_key if api_key is not None else config.VECTOR_DB_KEY
        policy = startup_policy or config.vector_db_startup_policy()

        @retry(policy, allowed_exceptions=(Exception,))
        def connect() -> QdrantClient:
            client = self._create_client(self.url, api_key or None, timeout)
            self._ensure_collection(client)
            return client

        try:
            self._client = connect()
        except Exception as e:
            log("ERROR", "vector_db_connect_failed", f"Failed to connect to Qdrant at URL: {self.url}", error=str(e))
            raise ElementIndexConnectionError(f"Failed to connect to Qdrant at URL: {self.url}. Root cause: {e}") from e

    @staticmethod
    def _create_client(url: str, api_key: Optional[str], timeout: int) -> QdrantClient:
        if url == IN_MEMORY:
            log("INFO", "vector_db_local", "Using in-process Qdrant storage")
            return QdrantClient(location=IN_MEMORY)
        full_url = url if "://" in url else f"http://{url}"
        parsed = urlparse(full_url)
        use_tls = parsed.scheme.lower() == "https"
        port = parsed.port or (HTTPS_PORT if use_tls else QDRANT_HTTP_PORT)
        log("INFO", "vector_db_connect", f"Connecting to Qdrant at {parsed.hostname}:{port}", tls=use_tls)
        return QdrantClient(host=parsed.hostname, port=port, https=use_tls, api_key=api_key, timeout=timeout)

    def _ensure_collection(self, client: QdrantClient):
        collections = client.get_collections()
        names = [c.name for c in collections.collections]
        if self.collection_name not in names:
            client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.vector_size, distance=Distance.COSINE),
            )
            log("INFO", "vector_db_collection_created", f"Created collection '{self.collection_name}' in Qdrant",
                size=self.vector_size)

    def upsert(self, point_id: str, vector: Sequence[float], payload: Dict[str, Any]) -> None:
        try:
            self._client.upsert(
                collection_name=self.collection_name,
                points=[PointStruct(id=point_id, vector=list(vector), payload=payload)],
            )
        except Exception as e:
            log("ERROR", "vector_db_upsert_failed", "Failed to upsert point", point_id=point_id, error=str(e))
            raise ElementIndexError(f"Failed to upsert point {point_id}: {e}") from e

    def search(self, vector: Sequence[float], min_score: float, max_results: int) -> List[IndexMatch]:
        try:
            response = self._client.query_points(
                collection_name=self.collection_name,
                query=list(vector),
                limit=max_results,
                score_threshold=min_score,
                with_payload=True,
            )
        except Exception as e:
            log("ERROR", "vector_db_search_failed", "Vector search failed", error=str(e))
            raise ElementIndexError(f"Vector search failed: {e}") from e
        return [IndexMatch(str(p.id), float(p.score), p.payload or {}) for p in response.points]

    def delete(self, point_id: str) -> None:
        try:
            self._client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[point_id]),
            )
        except Exception as e:
            log("ERROR", "vector_db_delete_failed", "Failed to delete point", point_id=point_id, error=str(e))
            raise ElementIndexError(f"Failed to delete point {point_id}: {e}") from e

    def close(self):
        self._client.close()
