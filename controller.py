"""
Orchestration controller.

One AnalysisController per browser session drives a single upload through

    IDLE → DIMENSION_PROBING → INFERRING → SUCCESS | FAILED

and a new upload from any state starts the cycle again with clean result
slots. Every upload gets a generation number; transitions carrying an older
generation are dropped, so a superseded upload that finishes late can never
overwrite the results of a newer one.

The three gateway calls of an upload run concurrently on a thread pool of
their own, so a hung call only ever stalls the upload that made it. The join
is fail-fast: the first call to raise fails the whole upload and the calls
that have not started yet are cancelled. Starting a new upload cancels the
queued calls of the one it supersedes.
"""
import concurrent.futures
import os
import threading
from enum import Enum
from typing import Callable

from cachetools import LRUCache
from pydantic import BaseModel, ConfigDict

from errors import (
    FileReadFailed, FoggyVisionError, ImageDecodeFailed, InferenceFailed, log_error,
    MSG_BAD_DIMENSIONS, MSG_EMPTY_DATA, MSG_INFERENCE_FAILED, MSG_LOAD_FAILED, MSG_READ_FAILED,
)
from handlers.detection import Detection, DetectObjectsInput, detect_objects
from handlers.enhance import EnhanceFoggyImageInput, enhance_foggy_image
from handlers.fog_density import AnalyzeFogDensityInput, AnalyzeFogDensityOutput, analyze_fog_density
from image_processor import ImageDimensions, probe_dimensions, to_data_uri
from logging_utils import get_logger
from metrics import DetectionSummary, MetricsProvider, SimulatedMetricsProvider, summarize

logger = get_logger(__name__)

# One worker per gateway call
INFERENCE_CALLS = 3

MSG_SUPERSEDED = "Superseded by a newer upload."


def _inference_timeout() -> float | None:
    value = os.environ.get("INFERENCE_TIMEOUT", "")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring INFERENCE_TIMEOUT=%r, not a number", value)
        return None


class AnalysisState(str, Enum):
    IDLE              = "idle"
    DIMENSION_PROBING = "dimension_probing"
    INFERRING         = "inferring"
    SUCCESS           = "success"
    FAILED            = "failed"


class InferenceResults(BaseModel):
    model_config = ConfigDict(frozen=True)

    fog_analysis:       AnalyzeFogDensityOutput
    enhanced_image_uri: str
    detections:         list[Detection]


class ControllerSnapshot(BaseModel):
    """Read-only view of the controller for rendering."""
    model_config = ConfigDict(frozen=True)

    generation:         int = 0
    state:              AnalysisState = AnalysisState.IDLE
    original_image_uri: str | None = None
    image_dimensions:   ImageDimensions | None = None
    fog_analysis:       AnalyzeFogDensityOutput | None = None
    enhanced_image_uri: str | None = None
    detections:         list[Detection] | None = None
    summary:            DetectionSummary | None = None
    metrics_label:      str = ""
    error:              str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state in (AnalysisState.DIMENSION_PROBING, AnalysisState.INFERRING)

    @property
    def unique_labels(self) -> list[str]:
        return list(dict.fromkeys(d.label for d in self.detections or []))


def run_inference(data_uri: str, executor: concurrent.futures.Executor | None = None,
                  timeout: float | None = None,
                  on_submit: Callable[[list[concurrent.futures.Future]], None] | None = None,
                  ) -> InferenceResults:
    """Run fog scoring, enhancement and detection concurrently.

    Without an `executor` the calls get a pool of their own, shut down
    without waiting once the join is over. `on_submit` receives the three
    futures as soon as they are queued.

    Raises InferenceFailed with the message of the first call to fail, when
    a call is cancelled, or when `timeout` seconds pass before all three
    have finished.
    """
    own_pool = executor is None
    if own_pool:
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=INFERENCE_CALLS, thread_name_prefix="inference",
        )

    try:
        futures = {
            executor.submit(analyze_fog_density, AnalyzeFogDensityInput(photo_data_uri=data_uri)): "fog",
            executor.submit(enhance_foggy_image, EnhanceFoggyImageInput(foggy_photo_data_uri=data_uri)): "enhance",
            executor.submit(detect_objects, DetectObjectsInput(photo_data_uri=data_uri)): "detect",
        }
        if on_submit is not None:
            on_submit(list(futures))

        try:
            for future in concurrent.futures.as_completed(futures, timeout=timeout):
                if future.cancelled():
                    _cancel_all(futures)
                    raise InferenceFailed(MSG_SUPERSEDED)
                exc = future.exception()
                if exc is not None:
                    _cancel_all(futures)
                    log_error(f"inference task={futures[future]}", exc)
                    raise InferenceFailed(str(exc) or MSG_INFERENCE_FAILED) from exc
        except concurrent.futures.TimeoutError as e:
            _cancel_all(futures)
            raise InferenceFailed(f"AI processing did not finish within {timeout:g} seconds.") from e

        results = {name: future.result() for future, name in futures.items()}
    finally:
        if own_pool:
            executor.shutdown(wait=False, cancel_futures=True)

    return InferenceResults(
        fog_analysis=results["fog"],
        enhanced_image_uri=results["enhance"].enhanced_photo_data_uri,
        detections=results["detect"].detections,
    )


def _cancel_all(futures) -> None:
    for future in futures:
        future.cancel()


class AnalysisController:
    """Explicit state holder for one browser session's current upload."""

    def __init__(self, metrics_provider: MetricsProvider | None = None,
                 executor: concurrent.futures.Executor | None = None,
                 timeout: float | None = None):
        self._metrics_provider = metrics_provider or SimulatedMetricsProvider()
        self._executor = executor
        self._timeout  = timeout if timeout is not None else _inference_timeout()
        self._lock     = threading.Lock()
        self._snapshot = ControllerSnapshot(metrics_label=self._metrics_provider.label)
        self._inflight: list[concurrent.futures.Future] = []
        # Latest snapshot of each recent generation, for uploads that were superseded
        self._history: LRUCache = LRUCache(maxsize=8)

    @property
    def state(self) -> AnalysisState:
        return self._snapshot.state

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    def snapshot(self) -> ControllerSnapshot:
        return self._snapshot

    def _commit(self, snapshot: ControllerSnapshot) -> None:
        self._snapshot = snapshot
        self._history[snapshot.generation] = snapshot

    def _is_current(self, generation: int, transition: str) -> bool:
        if generation != self._snapshot.generation:
            logger.warning("Dropping %s for superseded upload #%d (current #%d)",
                           transition, generation, self._snapshot.generation)
            return False
        return True

    # ── Transitions ──────────────────────────────────────────────────────────

    def on_upload_start(self, original_data_uri: str | None = None) -> int:
        """Reset every result slot and start probing a new upload."""
        with self._lock:
            for future in self._inflight:
                future.cancel()
            self._inflight = []
            generation = self._snapshot.generation + 1
            self._commit(ControllerSnapshot(
                generation=generation,
                state=AnalysisState.DIMENSION_PROBING,
                original_image_uri=original_data_uri,
                metrics_label=self._metrics_provider.label,
            ))
        logger.info("Upload #%d started", generation)
        return generation

    def on_dimensions_ready(self, generation: int, dims: ImageDimensions) -> bool:
        with self._lock:
            if not self._is_current(generation, "dimensions"):
                return False
            if not dims.is_valid:
                self._fail(MSG_BAD_DIMENSIONS)
                return False
            self._commit(self._snapshot.model_copy(update={
                "state": AnalysisState.INFERRING,
                "image_dimensions": dims,
            }))
        logger.info("Upload #%d is %dx%d, running inference", generation, dims.width, dims.height)
        return True

    def on_inference_settled(self, generation: int, results: InferenceResults | None = None,
                             error: str | None = None) -> bool:
        """Store the fan-in of the three calls, or fail the upload without partial results."""
        with self._lock:
            if not self._is_current(generation, "inference results"):
                return False
            if error is not None or results is None:
                self._fail(error or MSG_INFERENCE_FAILED)
                return True
            self._commit(self._snapshot.model_copy(update={
                "state": AnalysisState.SUCCESS,
                "fog_analysis": results.fog_analysis,
                "enhanced_image_uri": results.enhanced_image_uri,
                "detections": list(results.detections),
                "summary": summarize(results.detections, self._metrics_provider),
                "error": None,
            }))
        logger.info("Upload #%d finished with %d detections", generation, len(results.detections))
        return True

    def on_failure(self, generation: int, message: str) -> bool:
        with self._lock:
            if not self._is_current(generation, "failure"):
                return False
            self._fail(message)
        return True

    def _fail(self, message: str) -> None:
        self._commit(ControllerSnapshot(
            generation=self._snapshot.generation,
            state=AnalysisState.FAILED,
            metrics_label=self._metrics_provider.label,
            error=message,
        ))
        logger.info("Upload #%d failed: %s", self._snapshot.generation, message)

    def _track(self, generation: int, futures: list[concurrent.futures.Future]) -> None:
        with self._lock:
            if generation == self._snapshot.generation:
                self._inflight = futures
                return
        for future in futures:
            future.cancel()

    def _own_snapshot(self, generation: int) -> ControllerSnapshot:
        with self._lock:
            return self._history.get(generation) or self._snapshot

    # ── Pipeline ─────────────────────────────────────────────────────────────

    def process(self, stream, mime_type: str) -> ControllerSnapshot:
        """Run one upload end to end: read, probe dimensions, infer.

        Returns the last snapshot of this upload's own generation, even when
        a newer upload has taken over the controller in the meantime.
        """
        try:
            data_uri = _read_upload(stream, mime_type)
        except FileReadFailed as e:
            generation = self.on_upload_start()
            self.on_failure(generation, e.message)
            return self._own_snapshot(generation)

        generation = self.on_upload_start(data_uri)
        try:
            dims = _probe(data_uri)
        except ImageDecodeFailed as e:
            self.on_failure(generation, e.message)
            return self._own_snapshot(generation)

        if not self.on_dimensions_ready(generation, dims):
            return self._own_snapshot(generation)

        try:
            results = run_inference(
                data_uri, self._executor, self._timeout,
                on_submit=lambda futures: self._track(generation, futures),
            )
        except FoggyVisionError as e:
            self.on_inference_settled(generation, error=e.message)
        else:
            self.on_inference_settled(generation, results=results)
        finally:
            with self._lock:
                if generation == self._snapshot.generation:
                    self._inflight = []
        return self._own_snapshot(generation)


def _read_upload(stream, mime_type: str) -> str:
    try:
        data = stream.read()
    except OSError as e:
        log_error("read upload", e)
        raise FileReadFailed(MSG_READ_FAILED) from e
    if not data:
        raise FileReadFailed(MSG_EMPTY_DATA)
    return to_data_uri(data, mime_type)


def _probe(data_uri: str) -> ImageDimensions:
    try:
        return probe_dimensions(data_uri)
    except ValueError as e:
        log_error("probe dimensions", e)
        raise ImageDecodeFailed(MSG_LOAD_FAILED) from e


class ControllerRegistry:
    """In-process controllers keyed by session id, least recently used evicted first."""

    def __init__(self, maxsize: int | None = None, factory=AnalysisController):
        if maxsize is None:
            maxsize = int(os.environ.get("MAX_SESSIONS", "256"))
        self._controllers: LRUCache = LRUCache(maxsize=maxsize)
        self._factory = factory
        self._lock    = threading.Lock()

    def get(self, session_id: str) -> AnalysisController:
        with self._lock:
            controller = self._controllers.get(session_id)
            if controller is None:
                controller = self._factory()
                self._controllers[session_id] = controller
            return controller

    def peek(self, session_id: str) -> AnalysisController | None:
        with self._lock:
            return self._controllers.get(session_id)

    def __len__(self) -> int:
        return len(self._controllers)
