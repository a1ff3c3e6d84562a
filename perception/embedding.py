"""
Text embeddings for semantic element retrieval.

Uses a sentence-transformers model (BAAI/bge-small-en-v1.5 by default, 384
dimensions), loaded lazily on first use and run on CPU.
"""
import threading
from typing import List, Optional, Sequence
import numpy as np
from agent_runtime import config
from agent_runtime.logger import log


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class SentenceTransformerEmbedder:
    """Embeds text into fixed-dimension, L2-normalized vectors."""

    def __init__(self, model_name: Optional[str] = None, device: str = "cpu"):
        self.model_name = model_name or config.EMBEDDING_MODEL_NAME
        self.device = device
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer
                log("INFO", "embedding_model_loading", "Loading embedding model",
                    model=self.model_name, device=self.device)
                self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    @property
    def dimension(self) -> int:
        return int(self._load_model().get_sentence_embedding_dimension())

    def embed(self, text: str) -> List[float]:
        vector = self._load_model().encode(text, normalize_embeddings=True, convert_to_numpy=True)
        return vector.astype(np.float32).tolist()
