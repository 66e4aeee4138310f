"""
Figures derived from a reconciled update for display next to the image.
"""

import math
from dataclasses import dataclass
from typing import Optional

from .constants import FOCUS_HIGH, FOCUS_MEDIUM, CLASSIFICATION_CATEGORIES


@dataclass(frozen=True)
class HistogramStats:
    total: int            # number of bins
    maximum: int
    minimum: int
    average: float
    non_zero: int
    median: float
    std_dev: float        # population


def histogram_stats(histogram) -> Optional[HistogramStats]:
    """Summary of a histogram, or None when it is empty."""
    values = list(histogram)
    if not values:
        return None

    n = len(values)
    mean = sum(values) / n
    ordered = sorted(values)
    middle = n // 2
    if n % 2 == 0:
        median = (ordered[middle - 1] + ordered[middle]) / 2.0
    else:
        median = float(ordered[middle])
    variance = sum((v - mean) ** 2 for v in values) / n

    return HistogramStats(
        total=n,
        maximum=max(values),
        minimum=min(values),
        average=mean,
        non_zero=sum(1 for v in values if v > 0),
        median=median,
        std_dev=math.sqrt(variance),
    )


def focus_quality(focus_score):
    if focus_score is None:
        return "Unknown"
    if focus_score > FOCUS_HIGH:
        return "High Resolution"
    if focus_score > FOCUS_MEDIUM:
        return "Medium Resolution"
    return "Low Resolution"


def classification_category(label):
    """'healthy', 'anomaly' or 'other'. Case-insensitive."""
    return CLASSIFICATION_CATEGORIES.get((label or "").strip().lower(), "other")


def detection_confidence(intensity_average):
    """Intensity scaled to a 0-100 percentage; None when unavailable."""
    if intensity_average is None:
        return None
    return min(100.0, max(0.0, intensity_average * 10))


def summarize(update):
    """One-line description used by the console front end and status messages."""
    parts = [f"{update.image_id} @ {update.captured_at:%Y-%m-%d %H:%M:%S}"]
    if update.intensity_average is not None:
        parts.append(f"intensity={update.intensity_average:.2f}")
    else:
        parts.append("intensity=n/a")
    if update.focus_score is not None:
        parts.append(f"focus={update.focus_score:.2f} ({focus_quality(update.focus_score)})")
    else:
        parts.append("focus=n/a")
    parts.append(f"class={update.classification_label or '-'}")
    stats = histogram_stats(update.histogram)
    if stats:
        parts.append(f"hist[n={stats.total} max={stats.maximum} avg={stats.average:.1f}]")
    return " | ".join(parts)
