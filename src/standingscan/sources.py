"""Recognition sources: remote standings service and local EasyOCR.

Classes:
    RemoteRecognitionClient - POSTs the screenshot to a recognition endpoint
    EasyOCREngine           - Local OCR returning newline-separated text

Both are best effort. The remote client never raises for transport or
payload problems; it returns a degraded ``StageResult`` instead.

Usage:
    from standingscan.sources import EasyOCREngine, RemoteRecognitionClient

    remote = RemoteRecognitionClient("http://localhost:5050/api/analyze-standings")
    result = remote.analyze(image_bytes, season="2025")

    ocr = EasyOCREngine(languages=["en"])
    text = ocr(conditioned_png_bytes)
"""

from __future__ import annotations

import http.client
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

import requests

from standingscan.standings import (
    MAX_LEAGUE_SIZE,
    Stage,
    StageResult,
    normalize_rankings,
)

log = logging.getLogger(__name__)

DEFAULT_REMOTE_URL = "http://localhost:5050/api/analyze-standings"
USER_AGENT = "StandingScan/0.1"


# ---------------------------------------------------------------------------
# Remote recognition service
# ---------------------------------------------------------------------------


def guess_image_type(data: bytes) -> str:
    """Content type from the leading magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


class RemoteRecognitionClient:
    """Client for a remote standings recognition endpoint.

    The endpoint takes a multipart form with an ``image`` file and a
    ``year`` field and answers ``{"rankings": [{rank, team, record}, ...]}``.

    Args:
        url: Endpoint URL.
        timeout: Request timeout in seconds.
        filename: Filename reported for the uploaded image.
        max_entries: Maximum league size kept from the response.
        session: ``requests`` session to send through (a new one by default).
    """

    def __init__(
        self,
        url: str = DEFAULT_REMOTE_URL,
        timeout: float = 30.0,
        filename: str = "standings",
        max_entries: int = MAX_LEAGUE_SIZE,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.filename = filename
        self.max_entries = max_entries
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": USER_AGENT})

    def analyze(
        self,
        image: bytes,
        season: str = "",
        timeout: Optional[float] = None,
    ) -> StageResult:
        """
        Submit an image for recognition.

        Args:
            image: Original (unconditioned) image bytes
            season: Season/year tag forwarded as the ``year`` field
            timeout: Overrides the client timeout for this call

        Returns:
            Success with normalized entries, or a degraded result
        """
        try:
            resp = self.session.post(
                self.url,
                data={"year": season},
                files={"image": (self.filename, image, guess_image_type(image))},
                timeout=timeout if timeout is not None else self.timeout,
            )
        except (requests.RequestException, http.client.HTTPException) as e:
            return StageResult.degraded(Stage.REMOTE, f"request failed: {e}")

        if not 200 <= resp.status_code < 300:
            return StageResult.degraded(Stage.REMOTE, f"server {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            return StageResult.degraded(Stage.REMOTE, f"invalid JSON: {e}")

        problem = self.check_payload(payload)
        if problem:
            return StageResult.degraded(Stage.REMOTE, problem)

        rankings = payload["rankings"]
        log.info("Remote returned %d rankings", len(rankings))
        return StageResult.success(
            Stage.REMOTE, normalize_rankings(rankings, self.max_entries)
        )

    @staticmethod
    def check_payload(payload: Any) -> Optional[str]:
        """Describe what is wrong with a response body, or ``None``."""
        if not isinstance(payload, dict):
            return "bad payload: not an object"
        rankings = payload.get("rankings")
        if not isinstance(rankings, list):
            return "bad payload: rankings is not a list"
        if not rankings:
            return "bad payload: empty rankings"
        if not all(isinstance(r, dict) for r in rankings):
            return "bad payload: ranking items must be objects"
        return None


# ---------------------------------------------------------------------------
# Local OCR (EasyOCR)
# ---------------------------------------------------------------------------

Detection = Tuple[Sequence[Sequence[float]], str, float]


def assemble_lines(
    detections: Sequence[Detection],
    min_confidence: float = 0.0,
) -> List[str]:
    """
    Join EasyOCR boxes into text lines.

    A box joins the current line when its vertical centre falls inside
    the line's vertical span. Boxes on a line are read left to right.

    Args:
        detections: ``(bbox_points, text, confidence)`` from ``readtext``
        min_confidence: Boxes below this confidence are ignored

    Returns:
        Text lines, top to bottom
    """
    boxes = []
    for bbox, text, conf in detections:
        text = (text or "").strip()
        if not text or conf < min_confidence:
            continue
        xs = [float(p[0]) for p in bbox]
        ys = [float(p[1]) for p in bbox]
        top, bottom = min(ys), max(ys)
        boxes.append((min(xs), top, bottom, (top + bottom) / 2.0, text))

    boxes.sort(key=lambda b: (b[3], b[0]))

    lines: List[List[Tuple[float, str]]] = []
    span: Optional[Tuple[float, float]] = None
    for left, top, bottom, center, text in boxes:
        if span is not None and span[0] <= center <= span[1]:
            lines[-1].append((left, text))
            span = (min(span[0], top), max(span[1], bottom))
        else:
            lines.append([(left, text)])
            span = (top, bottom)

    return [" ".join(t for _, t in sorted(line, key=lambda p: p[0])) for line in lines]


class EasyOCREngine:
    """EasyOCR wrapper producing plain text, one recognized line per row.

    The EasyOCR reader is created on first use; model loading is slow.

    Args:
        languages: EasyOCR language codes.
        gpu: Run on GPU when available.
        min_confidence: Boxes below this confidence are dropped.
        reader: Pre-built reader (anything with ``readtext``).
        on_progress: Optional ``(status, progress)`` callback, informational.
    """

    def __init__(
        self,
        languages: Sequence[str] = ("en",),
        gpu: bool = False,
        min_confidence: float = 0.0,
        reader: Any = None,
        on_progress: Optional[Callable[[str, float], None]] = None,
    ):
        self.languages = list(languages)
        self.gpu = gpu
        self.min_confidence = min_confidence
        self._reader = reader
        self.on_progress = on_progress

    def _progress(self, status: str, progress: float) -> None:
        log.debug("OCR %s: %.0f%%", status, progress * 100)
        if self.on_progress is not None:
            self.on_progress(status, progress)

    @property
    def reader(self) -> Any:
        if self._reader is None:
            import easyocr

            self._progress("loading model", 0.0)
            self._reader = easyocr.Reader(self.languages, gpu=self.gpu, verbose=False)
        return self._reader

    def __call__(self, image: bytes) -> str:
        """Recognize text in an encoded image."""
        reader = self.reader
        self._progress("recognizing text", 0.5)
        detections = reader.readtext(image, detail=1, paragraph=False)
        text = "\n".join(assemble_lines(detections, self.min_confidence))
        self._progress("done", 1.0)
        log.info("OCR text length: %d", len(text))
        return text
