"""
Normalized insulin-activity and carb-absorption profiles.

Curves are static tables of ``(elapsed_minutes, fraction)`` control points
queried by piecewise-linear interpolation. Insulin activity rises to a peak
and falls back to 0 once the dose has fully decayed; carb absorption is the
cumulative fraction absorbed and ends at 1.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Curve:
    points: Tuple[Tuple[float, float], ...]
    name: str = "custom"
    terminal_value: ClassVar[float] = 0.0
    _times: np.ndarray = field(init=False, repr=False, compare=False)
    _fractions: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        points = tuple((float(t), float(f)) for t, f in self.points)
        if len(points) < 2:
            raise ValueError(f"Curve '{self.name}' needs at least two control points")
        if points[0][0] != 0.0:
            raise ValueError(f"Curve '{self.name}' must start at t=0 (got {points[0][0]})")
        for (t0, _), (t1, _) in zip(points, points[1:]):
            if t1 <= t0:
                raise ValueError(f"Curve '{self.name}' times must be strictly increasing ({t0} -> {t1})")
        for t, f in points:
            if not (0.0 <= f <= 1.0):
                raise ValueError(f"Curve '{self.name}' fraction at t={t} must be within [0, 1] (got {f})")
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "_times", np.array([t for t, _ in points], dtype=float))
        object.__setattr__(self, "_fractions", np.array([f for _, f in points], dtype=float))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]], name: str = "custom") -> "Curve":
        return cls(points=tuple((p[0], p[1]) for p in pairs), name=name)

    @property
    def end_minutes(self) -> float:
        return self.points[-1][0]

    def at(self, elapsed_minutes: float) -> float:
        return activity_at(self, elapsed_minutes)


@dataclass(frozen=True)
class ActivityCurve(Curve):
    """Insulin activity; 0 after the last control point."""
    terminal_value: ClassVar[float] = 0.0
    _cdf: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        # Cumulative trapezoidal area at each control point
        widths = np.diff(self._times)
        heights = (self._fractions[:-1] + self._fractions[1:]) / 2.0
        cdf = np.concatenate(([0.0], np.cumsum(widths * heights)))
        if cdf[-1] <= 0.0:
            raise ValueError(f"Activity curve '{self.name}' has no area under it")
        object.__setattr__(self, "_cdf", cdf)

    @property
    def total_area(self) -> float:
        return float(self._cdf[-1])

    @property
    def peak_minutes(self) -> float:
        return float(self._times[int(np.argmax(self._fractions))])


@dataclass(frozen=True)
class AbsorptionCurve(Curve):
    """Cumulative carb absorption; 1 after the last control point."""
    terminal_value: ClassVar[float] = 1.0


def activity_at(curve: Curve, elapsed_minutes: float) -> float:
    """
    Interpolate ``curve`` at ``elapsed_minutes``.

    Returns 0 before (or at) the dose, the curve's terminal value at or past
    its last control point, and the linear interpolation of the bracketing
    control points otherwise.
    """
    if elapsed_minutes <= 0:
        return 0.0
    if elapsed_minutes >= curve.end_minutes:
        return curve.terminal_value
    return float(np.interp(elapsed_minutes, curve._times, curve._fractions))


def absorption_at(curve: AbsorptionCurve, elapsed_minutes: float) -> float:
    return activity_at(curve, elapsed_minutes)


def cumulative_at(curve: ActivityCurve, elapsed_minutes: float) -> float:
    """
    Fraction of the total activity already released by ``elapsed_minutes``.

    This is the normalized area under the activity curve and rises
    monotonically from 0 to 1, so ``1 - cumulative_at`` is the share of a
    dose still on board.
    """
    if elapsed_minutes <= 0:
        return 0.0
    if elapsed_minutes >= curve.end_minutes:
        return 1.0
    times = curve._times
    idx = int(np.searchsorted(times, elapsed_minutes, side="right")) - 1
    t_start = times[idx]
    y_start = curve._fractions[idx]
    y_at = activity_at(curve, elapsed_minutes)
    local_area = (elapsed_minutes - t_start) * (y_start + y_at) / 2.0
    return float(min(1.0, (curve._cdf[idx] + local_area) / curve.total_area))


# Rapid-acting analog (Humalog/NovoRapid class): peak at 90 min, gone by 6 h
DEFAULT_INSULIN_CURVE = ActivityCurve(
    points=(
        (0, 0.0),
        (15, 0.1),
        (30, 0.3),
        (60, 0.7),
        (90, 1.0),
        (120, 0.8),
        (180, 0.5),
        (240, 0.2),
        (300, 0.05),
        (360, 0.0),
    ),
    name="rapid_acting",
)

DEFAULT_CARB_CURVE = AbsorptionCurve(
    points=(
        (0, 0.0),
        (15, 0.2),
        (30, 0.5),
        (60, 0.8),
        (90, 0.95),
        (120, 1.0),
    ),
    name="mixed_meal",
)
