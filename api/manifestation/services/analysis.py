from __future__ import annotations

from typing import Any, Sequence

from ..schemas import TrendPoint

TREND_WINDOW = 7
TREND_THRESHOLD = 0.05
MIN_TREND_POINTS = 3


def _slope(values: Sequence[float]) -> float:
    n = len(values)
    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    num = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(values))
    den = sum((i - mean_x) ** 2 for i in range(n))
    return num / den if den else 0.0


def detect_trend(values: Sequence[float]) -> str:
    """Least-squares direction over the most recent points."""
    if len(values) < MIN_TREND_POINTS:
        return "insufficient"
    slope = _slope(list(values)[-TREND_WINDOW:])
    if slope > TREND_THRESHOLD:
        return "improving"
    if slope < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def compute_focus_areas(trends: dict[str, list[TrendPoint]], top_n: int = 3) -> list[dict[str, Any]]:
    scored = []
    for category, points in trends.items():
        if not points:
            continue
        avg = sum(p.value for p in points) / len(points)
        scored.append((avg, category, points))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [
        {"category": category, "average": round(avg, 2), "direction": detect_trend([p.value for p in points])}
        for avg, category, points in scored[:top_n]
    ]


def summarize_trends(trends: dict[str, list[TrendPoint]]) -> dict[str, str]:
    return {category: detect_trend([p.value for p in points]) for category, points in trends.items()}
