# perception/template_matcher.py
import time
from dataclasses import dataclass
from typing import Any, List, Optional
import cv2
import numpy as np
from PIL import Image
from agent_runtime import config, metrics
from agent_runtime.logger import log
from .geometry import Rect

# Below this per-channel standard deviation a template is treated as flat:
# normalized correlation divides by it.
MIN_TEMPLATE_STDDEV = 0.5
MAX_CANDIDATES = 1000


@dataclass(frozen=True)
class TemplateMatch:
    rect: Rect
    score: float


def as_bgr_array(image: Any) -> np.ndarray:
    """Converts a PIL image or numpy array into an OpenCV-style uint8 array (BGR or grayscale)."""
    if isinstance(image, Image.Image):
        if image.mode in ('RGBA', 'P', 'LA', 'CMYK'):
            image = image.convert('RGB')
        arr = np.asarray(image)
        if arr.ndim == 3:
            arr = cv2.cvtColor(arr, cv2.COLOR_RGB2BGR)
    elif isinstance(image, np.ndarray):
        arr = image
        if arr.ndim == 3 and arr.shape[2] == 4:
            arr = cv2.cvtColor(arr, cv2.COLOR_BGRA2BGR)
        elif arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[:, :, 0]
    else:
        raise TypeError(f"Unsupported image type: {type(image).__name__}")
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(arr)


def _same_channels(screen: np.ndarray, template: np.ndarray):
    if screen.ndim == template.ndim:
        return screen, template
    if screen.ndim == 3:
        screen = cv2.cvtColor(screen, cv2.COLOR_BGR2GRAY)
    if template.ndim == 3:
        template = cv2.cvtColor(template, cv2.COLOR_BGR2GRAY)
    return screen, template


def is_degenerate(template: np.ndarray) -> bool:
    channels = 1 if template.ndim == 2 else template.shape[2]
    stddev = template.reshape(-1, channels).astype(np.float64).std(axis=0)
    return float(stddev.max()) < MIN_TEMPLATE_STDDEV


class TemplateImageMatcher:
    """
    Locates a template image inside a screenshot using normalized cross-correlation.

    Only offsets scoring above `threshold` qualify. Qualifying rectangles that
    overlap by more than `merge_threshold` (IoU) are collapsed to the best one.
    Stateless, instances can be shared between threads.
    """

    def __init__(self, threshold: Optional[float] = None, merge_threshold: Optional[float] = None):
        self.threshold = config.VISUAL_SIMILARITY_THRESHOLD if threshold is None else threshold
        self.merge_threshold = config.TEMPLATE_MATCH_MERGE_THRESHOLD if merge_threshold is None else merge_threshold

    def find_matches(self, screen: Any, template: Any) -> List[Rect]:
        return [m.rect for m in self.find_scored_matches(screen, template)]

    def find_best_match(self, screen: Any, template: Any) -> Optional[TemplateMatch]:
        matches = self.find_scored_matches(screen, template)
        return matches[0] if matches else None

    def find_scored_matches(self, screen: Any, template: Any) -> List[TemplateMatch]:
        """Qualifying matches after non-max suppression, best score first."""
        screen_arr, template_arr = _same_channels(as_bgr_array(screen), as_bgr_array(template))
        th, tw = template_arr.shape[:2]
        sh, sw = screen_arr.shape[:2]
        if th == 0 or tw == 0 or sh == 0 or sw == 0:
            return []
        if th > sh or tw > sw:
            log("DEBUG", "template_larger_than_screen", "Template is larger than the screen, nothing to match",
                template=(tw, th), screen=(sw, sh))
            return []
        if is_degenerate(template_arr):
            log("WARN", "template_degenerate", "Template has near-zero pixel variance and cannot be matched",
                template=(tw, th))
            return []

        start = time.time()
        result = cv2.matchTemplate(screen_arr, template_arr, cv2.TM_CCOEFF_NORMED)
        result = np.nan_to_num(result, nan=0.0, posinf=0.0, neginf=0.0)
        ys, xs = np.nonzero(result > self.threshold)
        scores = result[ys, xs]
        if len(scores) > MAX_CANDIDATES:
            top = np.argpartition(-scores, MAX_CANDIDATES)[:MAX_CANDIDATES]
            ys, xs, scores = ys[top], xs[top], scores[top]

        order = np.argsort(-scores, kind="stable")
        kept: List[TemplateMatch] = []
        for i in order:
            rect = Rect(int(xs[i]), int(ys[i]), tw, th)
            if all(rect.overlap_ratio(k.rect) <= self.merge_threshold for k in kept):
                kept.append(TemplateMatch(rect, float(scores[i])))

        duration = time.time() - start
        metrics.TEMPLATE_MATCH_SECONDS.observe(duration)
        log("DEBUG", "template_match_done", "Template matching complete",
            candidates=int(len(scores)), matches=len(kept), duration_ms=int(duration * 1000))
        return kept
