from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from app.services.series import BASELINE_NAV, SeriesPoint


@dataclass(frozen=True)
class RebasedComponent:
    name: str
    multiplier: float
    points: list[SeriesPoint]


def rebase_series(points: Sequence[SeriesPoint], multiplier: float) -> list[SeriesPoint]:
    if multiplier == 0:
        raise ValueError("Rebase multiplier must be non-zero.")
    if multiplier == 1:
        return list(points)
    return [point.with_nav(point.nav * multiplier) for point in points]


def rebase_components(
    components: Sequence[tuple[str, Sequence[SeriesPoint]]],
) -> list[RebasedComponent]:
    """Stretch each component onto the closing NAV of the one before it.

    Components are ordered oldest to newest. A component's multiplier is the
    previous component's closing NAV, after that component's own rebasing,
    divided by the base NAV; multipliers therefore compound along the chain.
    Empty components carry the running multiplier through unchanged.
    """
    rebased: list[RebasedComponent] = []
    multiplier = 1.0
    previous_close: float | None = None
    for name, points in components:
        if previous_close is not None and previous_close != 0:
            multiplier = previous_close / BASELINE_NAV
        shifted = rebase_series(points, multiplier)
        rebased.append(RebasedComponent(name=name, multiplier=multiplier, points=shifted))
        if shifted:
            previous_close = shifted[-1].nav
    return rebased


def combine_series(components: Sequence[tuple[str, Sequence[SeriesPoint]]]) -> list[SeriesPoint]:
    combined: list[SeriesPoint] = []
    for component in rebase_components(components):
        combined.extend(component.points)
    return combined
