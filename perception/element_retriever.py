# perception/element_retriever.py
from typing import Dict, List, Optional, Protocol, Sequence
from agent_runtime.logger import log
from .element_index import ElementIndex
from .embedding import cosine_similarity
from .ui_element import RetrievedElement, UiElement


class Embedder(Protocol):
    def embed(self, text: str) -> Sequence[float]:
        ...


class SemanticElementRetriever:
    """
    Stores UI elements in a vector index and ranks them against text queries.

    No retries and no locking here: transient store failures surface to the
    caller, concurrent access relies on the index client.
    """

    def __init__(self, index: ElementIndex, embedder: Embedder):
        self.index = index
        self.embedder = embedder

    def store(self, element: UiElement) -> None:
        vector = self.embedder.embed(element.description)
        self.index.upsert(str(element.id), vector, element.to_payload())
        log("INFO", "element_stored", f"Inserted UiElement '{element.name}' into the vector DB",
            element_id=str(element.id))

    def retrieve(self, query_text: str, top_n: int, min_score: float,
                 page_description: Optional[str] = None) -> List[RetrievedElement]:
        if top_n <= 0:
            return []
        query_vector = self.embedder.embed(query_text)
        matches = self.index.search(query_vector, min_score, top_n)

        best: Dict[str, RetrievedElement] = {}
        for match in matches:
            if match.score < min_score:
                continue
            element = UiElement.from_payload(match.payload)
            key = str(element.id)
            if key not in best or match.score > best[key].score:
                best[key] = RetrievedElement(element=element, score=match.score)

        ranked = sorted(best.values(), key=lambda item: (-item.score, str(item.element.id)))[:top_n]
        if page_description and page_description.strip():
            page_vector = self.embedder.embed(page_description)
            for item in ranked:
                item.page_relevance_score = self._page_relevance(page_vector, item.element)

        for item in ranked:
            log("INFO", "element_retrieved", "Retrieved UI element from DB", name=item.element.name,
                score=round(item.score, 4), page_relevance_score=round(item.page_relevance_score, 4))
        log("INFO", "element_retrieval_done",
            f"Retrieved {len(ranked)} most matching results to the query '{query_text}'")
        return ranked

    def _page_relevance(self, page_vector: Sequence[float], element: UiElement) -> float:
        element_vector = self.embedder.embed(element.overall_description())
        # cosine in [-1, 1] mapped onto [0, 1]
        return (cosine_similarity(page_vector, element_vector) + 1) / 2

    def update(self, old: UiElement, new: UiElement) -> None:
        # Not atomic: a failure in store() leaves the element removed.
        self.remove(old)
        self.store(new)

    def remove(self, element: UiElement) -> None:
        self.index.delete(str(element.id))
        log("INFO", "element_removed", f"Removed UiElement '{element.name}' from the vector DB",
            element_id=str(element.id))
