"""Name a run from its distance and lap shape.

Runs under the short threshold are easy, runs over the long threshold are long
runs. In between, a run with more laps than kilometers was structured: a speed
jump between the two laps straddling the midpoint marks intervals, otherwise
it was a threshold session.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence

from .config import DEFAULT_THRESHOLDS, ClassifierThresholds
from .models import Lap, Workout
from .numeric_utils import meters_to_kilometers


class WorkoutCategory(Enum):
    SHORT_EASY = ("short_easy", "Short but Sweet 💁🏽‍♂️")
    LONG_RUN = ("long_run", "Long Run ☄️")
    INTERVAL = ("interval", "Interval training 💪🛤️")
    THRESHOLD = ("threshold", "Threshold Training 🚀🚀🚀")
    EASY_FLOW = ("easy_flow", "Easy Flow 🌊🌊")

    def __init__(self, label: str, display: str) -> None:
        self.label = label
        self.display = display


def is_speed_jump(
    lap_a: Lap,
    lap_b: Lap,
    threshold_mps: float = DEFAULT_THRESHOLDS.speed_jump_mps,
) -> bool:
    return abs(lap_a.average_speed - lap_b.average_speed) > threshold_mps


def is_interval_shaped(
    laps: Sequence[Lap],
    threshold_mps: float = DEFAULT_THRESHOLDS.speed_jump_mps,
) -> bool:
    mid = len(laps) // 2
    # No lap after the midpoint (fewer than three laps): nothing to compare.
    if mid + 1 >= len(laps):
        return False
    return is_speed_jump(laps[mid], laps[mid + 1], threshold_mps)


def has_more_laps_than_km(workout: Workout) -> bool:
    total_km = math.ceil(meters_to_kilometers(workout.distance))
    return len(workout.laps) > total_km


def classify(workout: Workout, thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> WorkoutCategory:
    if workout.distance < thresholds.short_run_max_m:
        return WorkoutCategory.SHORT_EASY
    if workout.distance > thresholds.long_run_min_m:
        return WorkoutCategory.LONG_RUN

    if has_more_laps_than_km(workout):
        if is_interval_shaped(workout.laps, thresholds.speed_jump_mps):
            return WorkoutCategory.INTERVAL
        return WorkoutCategory.THRESHOLD
    return WorkoutCategory.EASY_FLOW
