import base64
import io
from typing import Optional
import numpy as np
from PIL import Image, ImageGrab
from agent_runtime.logger import log
from .coordinates import CoordinateMapper
from .geometry import Rect
from .template_matcher import as_bgr_array

class ScreenCapture:
    """
    Captures the physical screen and prepares screenshots for vision models and matching.
    """

    def __init__(self, mapper: Optional[CoordinateMapper] = None, max_width: int = 1920,
                 max_height: int = 1080, quality: int = 80, all_screens: bool = False):
        self.mapper = mapper or CoordinateMapper.from_config()
        self.max_width = max_width
        self.max_height = max_height
        self.quality = quality
        self.all_screens = all_screens

    def capture(self, region: Optional[Rect] = None) -> Image.Image:
        """
        Grabs the screen at device resolution. `region` is in logical coordinates.
        """
        bbox = None
        if region is not None:
            physical = self.mapper.to_physical_rect(region)
            bbox = (physical.x, physical.y, physical.right, physical.bottom)
        try:
            img = ImageGrab.grab(bbox=bbox, all_screens=self.all_screens)
        except OSError as e:
            log("ERROR", "screen_capture_failed", "Failed to capture screen", region=bbox, error=str(e))
            raise
        if img.mode != 'RGB':
            img = img.convert('RGB')
        log("DEBUG", "screen_captured", f"Captured screen: {img.size[0]}x{img.size[1]}", region=bbox)
        return img

    def capture_array(self, region: Optional[Rect] = None) -> np.ndarray:
        return as_bgr_array(self.capture(region))

    def to_base64(self, img: Image.Image) -> str:
        """
        Resizes and JPEG-compresses a screenshot for a vision model, returns base64 string.
        """
        if img.mode in ('RGBA', 'P'):
            img = img.convert('RGB')
        img = self._resize_image(img)
        buffered = io.BytesIO()
        img.save(buffered, format="JPEG", quality=self.quality, optimize=True)
        return base64.b64encode(buffered.getvalue()).decode('utf-8')

    def save(self, img: Image.Image, path: str) -> str:
        img.save(path, format="PNG")
        log("DEBUG", "screenshot_saved", f"Saved screenshot to {path} ({img.size[0]}x{img.size[1]})")
        return path

    def _resize_image(self, img: Image.Image) -> Image.Image:
        """
        Resizes image to fit within max dimensions while maintaining aspect ratio.
        """
        width, height = img.size
        if width <= self.max_width and height <= self.max_height:
            return img

        aspect_ratio = width / height
        if width > self.max_width:
            width = self.max_width
            height = int(width / aspect_ratio)
        if height > self.max_height:
            height = self.max_height
            width = int(height * aspect_ratio)

        return img.resize((width, height), Image.Resampling.LANCZOS)
