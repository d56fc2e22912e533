from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List

from .models import MOOD_ORDER, Mood, MoodEntry


@dataclass(frozen=True)
class MoodSlice:
    mood: Mood
    count: int
    percent: int  # integer share; all slices sum to 100
    fraction: float
    start_fraction: float  # where the pie slice begins, in display order


def count_moods(history: Iterable[MoodEntry]) -> Counter:
    # tags, not entries: a two-mood entry counts once for each mood
    counts: Counter = Counter()
    for entry in history:
        counts.update(set(entry.moods))
    return counts


def aggregate_moods(history: Iterable[MoodEntry]) -> List[MoodSlice]:
    """
    Render-ready mood statistics.

    Ordered by descending count, ties broken by the canonical mood order
    (Happy, Sad, Angry, Worried, Tired). Percentages use the largest
    remainder method so they always add up to exactly 100.
    """
    counts = count_moods(history)
    total = sum(counts.values())
    if total == 0:
        return []

    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], MOOD_ORDER[kv[0]]))
    percents = _largest_remainder([c for _, c in ordered], total)

    slices = []
    start = 0.0
    for (mood, count), pct in zip(ordered, percents):
        fraction = count / total
        slices.append(MoodSlice(mood, count, pct, fraction, start))
        start += fraction
    return slices


def _largest_remainder(counts: List[int], total: int) -> List[int]:
    floors = [c * 100 // total for c in counts]
    remainders = [c * 100 % total for c in counts]
    missing = 100 - sum(floors)
    # biggest remainder first; equal remainders keep display order
    for i in sorted(range(len(counts)), key=lambda i: -remainders[i])[:missing]:
        floors[i] += 1
    return floors
