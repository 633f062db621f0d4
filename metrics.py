"""
Detection metrics for the dashboard.

Average confidence and the confidence histogram are computed from the real
detections. The "performance" metrics (accuracy, precision, recall, F1, IoU)
are NOT: there is no ground truth to evaluate against, so the only provider
shipped here is SimulatedMetricsProvider, which draws demo values at random.
A real evaluator can replace it by implementing MetricsProvider.
"""
import random
from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from handlers.detection import Detection

BIN_EDGES: tuple[float, ...] = (0.0, 0.2, 0.4, 0.6, 0.8, 1.0)

SIMULATED_RANGE: tuple[float, float] = (0.89, 0.98)


class ConfidenceBin(BaseModel):
    model_config = ConfigDict(frozen=True)

    range_label: str   # e.g. "0.8-1.0"
    count:       int


class SimulatedMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    accuracy:  float
    precision: float
    recall:    float
    f1_score:  float
    iou:       float


class DetectionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_confidence: float | None
    histogram:          list[ConfidenceBin]
    performance:        SimulatedMetrics | None

    @property
    def has_data(self) -> bool:
        return self.average_confidence is not None or self.performance is not None


def average_confidence(detections: list[Detection] | None) -> float | None:
    """Mean confidence, or None when there is nothing to average."""
    if not detections:
        return None
    return sum(d.confidence for d in detections) / len(detections)


def confidence_histogram(detections: list[Detection] | None) -> list[ConfidenceBin]:
    """Count detections per fixed confidence range.

    A detection lands in the first bin with lo <= confidence < hi. A
    confidence of exactly 1.0 is also added to the top bin, so the closed
    upper end is represented.
    """
    if not detections:
        return []

    counts = [0] * (len(BIN_EDGES) - 1)
    for det in detections:
        for i in range(len(BIN_EDGES) - 1):
            if BIN_EDGES[i] <= det.confidence < BIN_EDGES[i + 1]:
                counts[i] += 1
                break
        if det.confidence == 1.0:
            counts[-1] += 1

    return [
        ConfidenceBin(range_label=f"{BIN_EDGES[i]:.1f}-{BIN_EDGES[i + 1]:.1f}", count=count)
        for i, count in enumerate(counts)
    ]


class MetricsProvider(ABC):
    """Source of the performance metrics shown on the dashboard."""

    #: Shown next to the metrics so nobody mistakes them for an evaluation
    label = ""

    @abstractmethod
    def evaluate(self, detections: list[Detection] | None) -> SimulatedMetrics | None:
        ...


class SimulatedMetricsProvider(MetricsProvider):
    """Mock data: independent uniform draws, unrelated to the detections."""

    label = "Simulated values (demo only, no ground truth)"

    def __init__(self, rng: random.Random | None = None,
                 low: float = SIMULATED_RANGE[0], high: float = SIMULATED_RANGE[1]):
        self._rng  = rng or random.Random()
        self._low  = low
        self._high = high

    def _draw(self) -> float:
        return self._rng.uniform(self._low, self._high)

    def evaluate(self, detections: list[Detection] | None) -> SimulatedMetrics | None:
        if not detections:
            return None
        return SimulatedMetrics(
            accuracy=self._draw(),
            precision=self._draw(),
            recall=self._draw(),
            f1_score=self._draw(),
            iou=self._draw(),
        )


def summarize(detections: list[Detection] | None, provider: MetricsProvider) -> DetectionSummary:
    return DetectionSummary(
        average_confidence=average_confidence(detections),
        histogram=confidence_histogram(detections),
        performance=provider.evaluate(detections),
    )


# ── Dashboard formatting ─────────────────────────────────────────────────────

def format_percent(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"


def format_confidence(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:.3f}"


def histogram_bar_heights(bins: list[ConfidenceBin]) -> list[float]:
    """Bar heights as a percentage of the tallest bin (all 0 when every bin is empty)."""
    tallest = max((b.count for b in bins), default=0)
    if tallest == 0:
        return [0.0 for _ in bins]
    return [b.count / tallest * 100 for b in bins]
