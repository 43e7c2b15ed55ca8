from __future__ import annotations

from typing import Iterable

from .classifier import WorkoutCategory
from .models import Workout
from .numeric_utils import humanize_duration

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

WEEKLY_HEADER = "Generate a weekly running summary based on the following workouts:\n\n"

WEEKLY_INSTRUCTIONS = (
    "\nWrite the summary in a story-telling, exciting, and motivational way, humble way suitable for "
    "a Strava post (no need for hashtags). Don't make it cheesy."
    " The summary should consider when I was running with people or solo. "
    "Insights on best times of days for performance."
    "- total weekly distance (mention that in context for what’s to come next week)\n- the summary should be"
    " written in an engaging way for the reader - not a big chunk of text.\n"
    "- some insights on based last week’s runs you are usually more performant at this time of"
    " the day based on the average heart rate and effort. \n"
    " Also the summary, should consider the grand scheme of things which is training for the berlin marathon in September 2024\n\n"
)

WORKOUT_INSTRUCTIONS = (
    "\nWrite a summary of this run in a story-telling, exciting way rather than a list. "
    "Talk to me directly with \"You ...\". Use kilometers instead of meters, and for the elevation "
    "just mention whether it was overall a hilly run or not. "
    "The most important things I like to know are how much effort it was, how much time it took, "
    "the distance and the type of session. "
    "Put all this information in one paragraph in a funny, concise way (no need for hashtags).\n\n"
)


def weekday_name(workout: Workout) -> str:
    return WEEKDAY_NAMES[workout.start_date.weekday()]


def format_workout_line(workout: Workout) -> str:
    # One line per workout, whatever the activity name holds.
    name = " ".join(workout.name.split())
    return (
        f"- {name} on {weekday_name(workout)}: "
        f"{workout.distance / 1000:.2f} km, "
        f"duration {humanize_duration(workout.moving_time)}, "
        f"elevation gain {workout.total_elevation_gain:.2f} meters, "
        f"average heart rate {workout.average_heartrate:.1f} bpm. \n"
    )


def build_weekly_prompt(workouts: Iterable[Workout]) -> str:
    parts = [WEEKLY_HEADER]
    parts.extend(format_workout_line(workout) for workout in workouts)
    parts.append(WEEKLY_INSTRUCTIONS)
    return "".join(parts)


def build_workout_prompt(workout: Workout, category: WorkoutCategory) -> str:
    """Prompt for a single run, titled with its category."""
    header = f"Generate a running summary of this {category.display} session:\n\n"
    return "".join([header, format_workout_line(workout), WORKOUT_INSTRUCTIONS])
