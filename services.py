# services.py
from dataclasses import dataclass
from typing import Optional
from agent_runtime import config, metrics
from agent_runtime.budget_manager import BudgetManager
from agent_runtime.logger import log
from agent_runtime.verification_manager import VerificationManager
from agent_tools.element_tools import ElementTools
from agent_tools.registry import ToolRegistry
from agent_tools.verification_tools import VerificationTools
from perception.coordinates import CoordinateMapper
from perception.element_index import ElementIndex, QdrantElementIndex
from perception.element_locator import ElementLocator
from perception.element_retriever import Embedder, SemanticElementRetriever
from perception.embedding import SentenceTransformerEmbedder
from perception.screen_capture import ScreenCapture
from perception.template_matcher import TemplateImageMatcher


@dataclass
class AgentServices:
    budget: BudgetManager
    mapper: CoordinateMapper
    screen: ScreenCapture
    retriever: SemanticElementRetriever
    locator: ElementLocator
    verification: VerificationManager
    tools: ToolRegistry

    def close(self):
        self.verification.close()
        log("INFO", "services_closed", "Agent services closed")


def build_services(embedder: Optional[Embedder] = None, index: Optional[ElementIndex] = None,
                   screen: Optional[ScreenCapture] = None) -> AgentServices:
    """
    Wires one test run's components from configuration.
    Fails fast when the vector DB cannot be reached.
    """
    try:
        metrics.start_metrics_server(config.PROMETHEUS_METRICS_PORT)
    except OSError as e:
        log("WARN", "metrics_start_failed", "Could not start Prometheus metrics server; continuing without metrics",
            error=str(e))

    budget = BudgetManager()
    mapper = CoordinateMapper.from_config()
    screen = screen or ScreenCapture(mapper)
    embedder = embedder or SentenceTransformerEmbedder()
    if index is None:
        index = QdrantElementIndex(vector_size=len(embedder.embed("dimension probe")))
    retriever = SemanticElementRetriever(index, embedder)
    locator = ElementLocator(retriever, TemplateImageMatcher(), mapper, screen.capture)
    verification = VerificationManager(screen.capture, config.verification_retry_policy(), budget)
    tools = ToolRegistry(policy=config.action_retry_policy(), budget=budget)
    tools.register(ElementTools(locator)).register(VerificationTools(verification))
    log("INFO", "services_ready", "Agent services initialized", tools=tools.names,
        scale=(mapper.scale_x, mapper.scale_y))
    return AgentServices(budget, mapper, screen, retriever, locator, verification, tools)
