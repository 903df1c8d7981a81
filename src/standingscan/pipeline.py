"""
Standings extraction pipeline.

Sources are tried one after another until one is good enough:

1. REMOTE     - remote recognition service (original image + season tag)
2. LOCAL_OCR  - conditioned image -> OCR -> grammar parser -> ranking
3. MOCK       - synthetic roster, cannot fail

Recognition problems are absorbed and recorded on the result. The only
error a caller sees is ``NoImageError`` when there is no image to read.
"""

from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union
import json
import logging
import random
import threading
import time

from standingscan.conditioning import ImageConditioner
from standingscan.sources import DEFAULT_REMOTE_URL, EasyOCREngine, RemoteRecognitionClient
from standingscan.standings import (
    MAX_LEAGUE_SIZE,
    RANK_ORDER_THRESHOLD,
    ExtractionResult,
    Stage,
    StageResult,
    generate_mock_rankings,
    parse_standings,
)

log = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, str, Path, None]
OCRFunc = Callable[[bytes], str]


class NoImageError(ValueError):
    """No source image was supplied."""


class ConfigError(ValueError):
    """Invalid extractor configuration."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class ExtractorConfig:
    """Tunables for ``StandingsExtractor``.

    ``min_ocr_entries`` and ``rank_order_threshold`` are empirical
    heuristics; adjust them for the OCR output you actually see.
    """

    remote_url: Optional[str] = DEFAULT_REMOTE_URL  # None disables REMOTE
    remote_timeout: float = 30.0
    ocr_timeout: float = 120.0
    deadline: Optional[float] = None  # Overall budget in seconds

    # Conditioning
    max_width: int = 1800
    upscale: float = 1.5
    contrast: float = 1.2
    brightness: float = 10.0

    # Parsing / ranking
    min_ocr_entries: int = 4
    rank_order_threshold: int = RANK_ORDER_THRESHOLD
    max_entries: int = MAX_LEAGUE_SIZE

    # EasyOCR
    languages: List[str] = field(default_factory=lambda: ["en"])
    use_gpu: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        self._check_types()
        if self.remote_timeout <= 0 or self.ocr_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.deadline is not None and self.deadline <= 0:
            raise ConfigError(f"deadline must be positive, got {self.deadline}")
        if self.max_width <= 0:
            raise ConfigError(f"max_width must be positive, got {self.max_width}")
        if self.upscale < 1.0:
            raise ConfigError(f"upscale must be >= 1.0, got {self.upscale}")
        if not 1 <= self.max_entries <= MAX_LEAGUE_SIZE:
            raise ConfigError(
                f"max_entries must be in 1..{MAX_LEAGUE_SIZE}, got {self.max_entries}"
            )
        if self.min_ocr_entries < 1:
            raise ConfigError(f"min_ocr_entries must be >= 1, got {self.min_ocr_entries}")
        if self.rank_order_threshold < 1:
            raise ConfigError(
                f"rank_order_threshold must be >= 1, got {self.rank_order_threshold}"
            )
        if not self.languages:
            raise ConfigError("languages must not be empty")

    def _check_types(self) -> None:
        def is_int(value):
            return isinstance(value, int) and not isinstance(value, bool)

        def is_number(value):
            return isinstance(value, (int, float)) and not isinstance(value, bool)

        for name in ("max_width", "min_ocr_entries", "rank_order_threshold", "max_entries"):
            value = getattr(self, name)
            if not is_int(value):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in ("remote_timeout", "ocr_timeout", "upscale", "contrast", "brightness"):
            value = getattr(self, name)
            if not is_number(value):
                raise ConfigError(f"{name} must be a number, got {value!r}")
        if self.deadline is not None and not is_number(self.deadline):
            raise ConfigError(f"deadline must be a number, got {self.deadline!r}")
        if self.remote_url is not None and not isinstance(self.remote_url, str):
            raise ConfigError(f"remote_url must be a string, got {self.remote_url!r}")
        if not isinstance(self.languages, list) or not all(
            isinstance(lang, str) for lang in self.languages
        ):
            raise ConfigError(f"languages must be a list of strings, got {self.languages!r}")
        if not isinstance(self.use_gpu, bool):
            raise ConfigError(f"use_gpu must be true or false, got {self.use_gpu!r}")

    @classmethod
    def from_file(cls, filepath: Union[str, Path], **overrides) -> "ExtractorConfig":
        """
        Load configuration from a JSON object file.

        Args:
            filepath: Path to JSON file
            **overrides: Values that take precedence over the file

        Returns:
            ExtractorConfig instance
        """
        with open(filepath, "r") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise ConfigError(f"{filepath}: invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{filepath}: expected a JSON object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"{filepath}: unknown keys {', '.join(unknown)}")

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


def load_image(image: ImageSource) -> bytes:
    """Read image bytes from bytes or a path; raise ``NoImageError`` if absent."""
    if image is None:
        raise NoImageError("Please select an image file first")
    if isinstance(image, (bytes, bytearray)):
        data = bytes(image)
    else:
        path = Path(image)
        if not path.is_file():
            raise NoImageError(f"Image file not found: {path}")
        data = path.read_bytes()
    if not data:
        raise NoImageError("Image is empty")
    return data


class _Deadline:
    """Remaining-time bookkeeping for one extraction."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self.start = clock()

    def remaining(self) -> Optional[float]:
        if self.seconds is None:
            return None
        return self.seconds - (self.clock() - self.start)

    def bound(self, timeout: float) -> Optional[float]:
        """``timeout`` clipped to the remaining budget, ``None`` if spent."""
        left = self.remaining()
        if left is None:
            return timeout
        if left <= 0:
            return None
        return min(timeout, left)


class StandingsExtractor:
    """
    Extract a ranked standings table from a screenshot.

    Collaborators are injectable; defaults are built from ``config``.
    At most one OCR pass runs at a time. A pass that times out keeps
    running on its daemon thread, and LOCAL_OCR reports busy until it ends.

    Args:
        config: Extractor configuration
        remote: Remote recognition client (``None`` builds one from
            ``config.remote_url``; disabled when that is ``None`` too)
        ocr: OCR function ``image_bytes -> text``
        conditioner: Image conditioner
        rng: Random source for the mock roster
    """

    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        remote: Optional[RemoteRecognitionClient] = None,
        ocr: Optional[OCRFunc] = None,
        conditioner: Optional[ImageConditioner] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or ExtractorConfig()
        cfg = self.config

        if remote is None and cfg.remote_url:
            remote = RemoteRecognitionClient(
                cfg.remote_url, timeout=cfg.remote_timeout, max_entries=cfg.max_entries
            )
        self.remote = remote
        self.ocr = ocr or EasyOCREngine(cfg.languages, gpu=cfg.use_gpu)
        self.conditioner = conditioner or ImageConditioner(
            max_width=cfg.max_width,
            upscale=cfg.upscale,
            contrast=cfg.contrast,
            brightness=cfg.brightness,
        )
        self.rng = rng
        self.clock: Callable[[], float] = time.monotonic
        self._pending: Optional["Future[str]"] = None

    def extract(self, image: ImageSource, season: Any = "") -> ExtractionResult:
        """
        Run the source cascade on one image.

        Args:
            image: Image bytes or path to an image file
            season: Season/year tag forwarded to the remote service

        Returns:
            Non-empty ExtractionResult

        Raises:
            NoImageError: No image (or an empty one) was supplied
        """
        data = load_image(image)
        season = "" if season is None else str(season)
        deadline = _Deadline(self.config.deadline, self.clock)
        degraded: List[Tuple[Stage, str]] = []

        for stage_fn in (self._run_remote, self._run_local_ocr):
            result = stage_fn(data, season, deadline)
            if result.ok:
                log.info("%s produced %d teams", result.stage.value, len(result.entries))
                return ExtractionResult(
                    entries=result.entries,
                    source=result.stage,
                    season=season,
                    degraded=degraded,
                )
            log.warning("%s degraded: %s", result.stage.value, result.reason)
            degraded.append((result.stage, result.reason))

        log.warning("Both remote and OCR weak, using mock rankings")
        mock = self._run_mock()
        return ExtractionResult(
            entries=mock.entries, source=Stage.MOCK, season=season, degraded=degraded
        )

    def _run_remote(self, data: bytes, season: str, deadline: _Deadline) -> StageResult:
        if self.remote is None:
            return StageResult.degraded(Stage.REMOTE, "disabled")
        timeout = deadline.bound(self.remote.timeout)
        if timeout is None:
            return StageResult.degraded(Stage.REMOTE, "deadline exceeded")
        return self.remote.analyze(data, season, timeout=timeout)

    def _run_local_ocr(self, data: bytes, season: str, deadline: _Deadline) -> StageResult:
        timeout = deadline.bound(self.config.ocr_timeout)
        if timeout is None:
            return StageResult.degraded(Stage.LOCAL_OCR, "deadline exceeded")

        if self._pending is not None and not self._pending.done():
            return StageResult.degraded(Stage.LOCAL_OCR, "OCR busy with an earlier pass")
        self._pending = None

        conditioned = self.conditioner.condition(data)
        future = self._start_ocr(conditioned)
        try:
            text = future.result(timeout=timeout)
        except FutureTimeoutError:
            # Left running; later calls see it through self._pending
            self._pending = future
            return StageResult.degraded(Stage.LOCAL_OCR, f"OCR timed out after {timeout:.1f}s")
        except Exception as e:
            log.debug("OCR failed", exc_info=True)
            return StageResult.degraded(Stage.LOCAL_OCR, f"OCR failed: {e}")

        log.debug("OCR text sample: %r", (text or "")[:200])
        entries = parse_standings(
            text or "",
            rank_order_threshold=self.config.rank_order_threshold,
            max_entries=self.config.max_entries,
        )
        if len(entries) < self.config.min_ocr_entries:
            return StageResult.degraded(
                Stage.LOCAL_OCR,
                f"only {len(entries)} teams parsed (need {self.config.min_ocr_entries})",
            )
        return StageResult.success(Stage.LOCAL_OCR, entries)

    def _start_ocr(self, image: bytes) -> "Future[str]":
        """Run one OCR pass on a daemon thread."""
        future: "Future[str]" = Future()
        future.set_running_or_notify_cancel()

        def work():
            try:
                future.set_result(self.ocr(image))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=work, name="standingscan-ocr", daemon=True).start()
        return future

    def _run_mock(self) -> StageResult:
        entries = generate_mock_rankings(self.rng)
        return StageResult.success(Stage.MOCK, entries[: self.config.max_entries])


def extract_standings(
    image: ImageSource,
    season: Any = "",
    config: Optional[ExtractorConfig] = None,
) -> ExtractionResult:
    """Convenience wrapper: build an extractor and run it once."""
    return StandingsExtractor(config).extract(image, season)
