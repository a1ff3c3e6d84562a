# perception/element_locator.py
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional
import cv2
from agent_runtime import config
from agent_runtime.logger import log
from .coordinates import CoordinateMapper
from .element_retriever import SemanticElementRetriever
from .geometry import Rect
from .template_matcher import TemplateImageMatcher, as_bgr_array
from .ui_element import RetrievedElement, UiElement


@dataclass
class ElementLocationResult:
    success: bool
    message: str
    element: Optional[UiElement] = None
    bounding_box: Optional[Rect] = None  # logical coordinates
    score: float = 0.0
    candidates: List[RetrievedElement] = field(default_factory=list)
    screenshot: Any = None


def load_template(path: str):
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Template image could not be read: {path}")
    return img


class ElementLocator:
    """
    Finds a described element on screen: semantic retrieval picks candidate
    elements, their stored templates are matched against a physical screenshot
    and the winning rectangle is returned in logical coordinates.
    """

    def __init__(self, retriever: SemanticElementRetriever, matcher: TemplateImageMatcher,
                 mapper: CoordinateMapper, capture: Callable[[], Any],
                 top_n: Optional[int] = None, min_score: Optional[float] = None,
                 template_loader: Callable[[str], Any] = load_template):
        self.retriever = retriever
        self.matcher = matcher
        self.mapper = mapper
        self.capture = capture
        self.top_n = config.RETRIEVER_TOP_N if top_n is None else top_n
        self.min_score = config.ELEMENT_RETRIEVAL_MIN_TARGET_SCORE if min_score is None else min_score
        self.template_loader = template_loader

    def locate(self, description: str, screenshot: Any = None,
               page_description: Optional[str] = None) -> ElementLocationResult:
        candidates = self.retriever.retrieve(description, self.top_n, self.min_score, page_description)
        if not candidates:
            log("INFO", "element_locate_no_candidates", "No stored element matches the description",
                description=description, min_score=self.min_score)
            return ElementLocationResult(False, f"No UI element in the index matches '{description}'")

        if screenshot is None:
            screenshot = self.capture()
        screen = as_bgr_array(screenshot)

        best_element, best_match = None, None
        for candidate in candidates:
            element = candidate.element
            if not element.template_path:
                continue
            try:
                template = self.template_loader(element.template_path)
            except FileNotFoundError as e:
                log("WARN", "element_template_missing", "Skipping candidate without readable template",
                    element=element.name, error=str(e))
                continue
            match = self.matcher.find_best_match(screen, template)
            if match is not None and (best_match is None or match.score > best_match.score):
                best_element, best_match = element, match

        if best_match is None:
            log("INFO", "element_locate_no_visual_match", "Candidates found but none is visible on screen",
                description=description, candidates=[c.element.name for c in candidates])
            return ElementLocationResult(False, f"None of the {len(candidates)} candidate element(s) for "
                                                f"'{description}' was found on the screen",
                                         candidates=candidates, screenshot=screenshot)

        logical = self.mapper.to_logical_rect(best_match.rect)
        log("INFO", "element_located", f"Located '{best_element.name}'", bounding_box=logical.to_dict(),
            score=round(best_match.score, 4))
        return ElementLocationResult(True, f"Element '{best_element.name}' located", best_element, logical,
                                     best_match.score, candidates, screenshot)
