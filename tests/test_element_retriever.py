import re
from uuid import UUID
import pytest
from agent_runtime.errors import ElementIndexConnectionError
from agent_runtime.retry import RetryPolicy
from perception.element_index import IndexMatch, QdrantElementIndex
from perception.element_retriever import SemanticElementRetriever
from perception.ui_element import UiElement

VOCABULARY = ["login", "button", "search", "field", "checkout", "cart", "header", "footer", "page", "settings"]

class BagOfWordsEmbedder:
    """Deterministic stand-in for the sentence-transformers model."""

    dimension = len(VOCABULARY) + 1

    def embed(self, text):
        words = re.findall(r"[a-z]+", text.lower())
        vector = [float(words.count(w)) for w in VOCABULARY]
        vector.append(0.01)
        return vector

@pytest.fixture
def retriever():
    index = QdrantElementIndex(":memory:", vector_size=BagOfWordsEmbedder.dimension, collection_name="test_elements")
    yield SemanticElementRetriever(index, BagOfWordsEmbedder())
    index.close()

def element(name, description, **kwargs):
    return UiElement(name=name, description=description, **kwargs)

def test_store_and_retrieve_best_match_first(retriever):
    login = element("Login", "login button")
    checkout = element("Checkout", "checkout button")
    search = element("Search", "search field")
    for e in (login, checkout, search):
        retriever.store(e)

    results = retriever.retrieve("login button", top_n=5, min_score=0.3)
    assert [r.element.name for r in results] == ["Login", "Checkout"]
    assert results[0].score > 0.99
    assert results[0].element.id == login.id
    assert results[0].page_relevance_score == 0.0

def test_matches_below_min_score_are_excluded(retriever):
    retriever.store(element("Login", "login button"))
    retriever.store(element("Checkout", "checkout button"))
    results = retriever.retrieve("login button", top_n=5, min_score=0.9)
    assert [r.element.name for r in results] == ["Login"]
    assert all(r.score >= 0.9 for r in results)

def test_top_n_limits_results(retriever):
    for i in range(4):
        retriever.store(element(f"Button {i}", "button"))
    assert len(retriever.retrieve("button", top_n=2, min_score=0.5)) == 2
    assert retriever.retrieve("button", top_n=0, min_score=0.5) == []

def test_storing_same_id_overwrites(retriever):
    login = element("Login", "login button")
    retriever.store(login)
    retriever.store(login)
    results = retriever.retrieve("login button", top_n=5, min_score=0.5)
    assert len(results) == 1

def test_equal_scores_ordered_by_id(retriever):
    second = element("Second", "cart button", id=UUID("00000000-0000-0000-0000-000000000002"))
    first = element("First", "cart button", id=UUID("00000000-0000-0000-0000-000000000001"))
    retriever.store(second)
    retriever.store(first)
    results = retriever.retrieve("cart button", top_n=5, min_score=0.5)
    assert [r.element.name for r in results] == ["First", "Second"]

def test_remove_and_remove_absent(retriever):
    login = element("Login", "login button")
    retriever.store(login)
    retriever.remove(login)
    assert retriever.retrieve("login button", top_n=5, min_score=0.5) == []
    retriever.remove(element("Never stored", "settings button"))

def test_update_replaces_description(retriever):
    old = element("Search", "login button")
    retriever.store(old)
    new = old.model_copy(update={"description": "search field"})
    retriever.update(old, new)
    assert retriever.retrieve("login button", top_n=5, min_score=0.5) == []
    results = retriever.retrieve("search field", top_n=5, min_score=0.5)
    assert [r.element.id for r in results] == [old.id]

def test_page_relevance_prefers_elements_of_that_page(retriever):
    retriever.store(element("Checkout", "checkout button", location_details="checkout page footer"))
    retriever.store(element("Cart", "cart button", location_details="settings header"))
    results = retriever.retrieve("button", top_n=5, min_score=0.3, page_description="checkout page")
    scores = {r.element.name: r.page_relevance_score for r in results}
    assert set(scores) == {"Checkout", "Cart"}
    assert all(0.0 <= s <= 1.0 for s in scores.values())
    assert scores["Checkout"] > scores["Cart"]

class DuplicatingIndex:
    def __init__(self, matches):
        self.matches = matches

    def upsert(self, point_id, vector, payload):
        pass

    def search(self, vector, min_score, max_results):
        return self.matches

    def delete(self, point_id):
        pass

def test_duplicate_matches_keep_highest_score():
    login = element("Login", "login button")
    weak = element("Weak", "footer")
    index = DuplicatingIndex([
        IndexMatch(str(login.id), 0.91, login.to_payload()),
        IndexMatch(str(login.id), 0.97, login.to_payload()),
        IndexMatch(str(weak.id), 0.2, weak.to_payload()),
    ])
    results = SemanticElementRetriever(index, BagOfWordsEmbedder()).retrieve("login", top_n=5, min_score=0.5)
    assert len(results) == 1
    assert results[0].score == 0.97

def test_unreachable_vector_db_fails_fast():
    with pytest.raises(ElementIndexConnectionError, match="Failed to connect to Qdrant"):
        QdrantElementIndex("http://127.0.0.1:1", vector_size=4, timeout=1,
                           startup_policy=RetryPolicy(max_retries=0, base_delay_millis=0, timeout_millis=0))

def test_blank_url_rejected():
    with pytest.raises(ValueError):
        QdrantElementIndex("   ", vector_size=4)
