"""Image conditioning ahead of local OCR.

Screenshots arrive at any size and colour depth. ``ImageConditioner``
rescales them towards a working width, converts to grayscale and applies
a mild contrast/brightness stretch. Conditioning is best effort: when the
image cannot be decoded or processed, the original bytes are returned.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

log = logging.getLogger(__name__)


class ImageConditioner:
    """Resize, grayscale and contrast-stretch an image for text recognition.

    Args:
        max_width: Target working width in pixels.
        upscale: Factor applied to images narrower than ``max_width``.
            The upscaled width is capped at ``max_width``.
        contrast: Multiplier applied around mid-gray (128).
        brightness: Offset added after the contrast stretch.
    """

    MIDPOINT = 128.0

    def __init__(
        self,
        max_width: int = 1800,
        upscale: float = 1.5,
        contrast: float = 1.2,
        brightness: float = 10.0,
    ):
        if max_width <= 0:
            raise ValueError(f"max_width must be positive, got {max_width}")
        if upscale < 1.0:
            raise ValueError(f"upscale must be >= 1.0, got {upscale}")
        self.max_width = max_width
        self.upscale = upscale
        self.contrast = contrast
        self.brightness = brightness

    def scale_factor(self, width: int) -> float:
        """Scale that brings ``width`` to the working width."""
        if width > self.max_width:
            return self.max_width / width
        return min(self.upscale, self.max_width / width)

    def target_size(self, width: int, height: int) -> Tuple[int, int]:
        scale = self.scale_factor(width)
        return max(1, round(width * scale)), max(1, round(height * scale))

    def condition_array(self, image: np.ndarray) -> np.ndarray:
        """
        Condition a decoded image.

        Args:
            image: 2-D grayscale or 3/4-channel BGR(A) array, 8 or 16 bit

        Returns:
            Single-channel uint8 array at the working size
        """
        if image is None or image.ndim not in (2, 3) or image.size == 0:
            raise ValueError("expected a non-empty 2-D or 3-D image array")

        if image.dtype == np.uint16:
            image = (image / 257).astype(np.uint8)
        elif image.dtype != np.uint8:
            image = np.clip(image, 0, 255).astype(np.uint8)

        h, w = image.shape[:2]
        new_w, new_h = self.target_size(w, h)
        if (new_w, new_h) != (w, h):
            interp = cv2.INTER_AREA if new_w < w else cv2.INTER_CUBIC
            image = cv2.resize(image, (new_w, new_h), interpolation=interp)

        # cvtColor uses the 0.299/0.587/0.114 luma weights
        if image.ndim == 3 and image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.ndim == 3 and image.shape[2] == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.ndim == 3 and image.shape[2] == 1:
            gray = image[:, :, 0]
        elif image.ndim == 2:
            gray = image
        else:
            raise ValueError(f"unsupported channel count: {image.shape[2]}")

        stretched = (gray.astype(np.float32) - self.MIDPOINT) * self.contrast
        stretched += self.MIDPOINT + self.brightness
        return np.clip(np.rint(stretched), 0, 255).astype(np.uint8)

    def condition(self, data: bytes) -> bytes:
        """
        Condition encoded image bytes.

        Args:
            data: Encoded image (PNG, JPEG, ...)

        Returns:
            PNG-encoded conditioned image, or ``data`` unchanged when any
            step fails
        """
        try:
            buf = np.frombuffer(data, dtype=np.uint8)
            image = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
            if image is None:
                raise ValueError("image could not be decoded")
            conditioned = self.condition_array(image)
            ok, encoded = cv2.imencode(".png", conditioned)
            if not ok:
                raise ValueError("PNG encoding failed")
        except (cv2.error, ValueError, TypeError) as e:
            log.warning("Conditioning skipped, using original image: %s", e)
            return data

        log.debug(
            "Conditioned image %dx%d -> %dx%d",
            image.shape[1],
            image.shape[0],
            conditioned.shape[1],
            conditioned.shape[0],
        )
        return encoded.tobytes()
