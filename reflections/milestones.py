"""
Record-count milestones and level tiers.

A milestone is reached when a creation brings the owner's record count to
exactly one of MILESTONE_THRESHOLDS. The flag lives on the profile until the
presentation layer shows it and clears it.
"""

from dataclasses import dataclass
from typing import Optional

MILESTONE_THRESHOLDS = (10, 25, 50, 100)


def milestone_for_count(count_before: int) -> Optional[int]:
    """The threshold reached by creating one more record, or None."""
    new_count = count_before + 1
    return new_count if new_count in MILESTONE_THRESHOLDS else None


_MILESTONE_TEXT = {
    10: ("Identity Initialized",
         "You've captured 10 reflections. Your digital twin is beginning to take shape."),
    25: ("Signal Clarity Achieved",
         "25 reflections captured. The patterns in your world are becoming clear, "
         "unlocking deeper insights into your unique digital identity."),
    50: ("Radiance Unlocked",
         "50 reflections captured. Your archive now shines with recurring themes."),
    100: ("Essence Synchronized",
          "100 Reflections. You have reached the final state. Your digital twin is "
          "now a pure reflection of your Essence, a living archive of your world."),
}


def milestone_message(threshold: int) -> tuple[str, str]:
    """(title, message) for a reached threshold."""
    return _MILESTONE_TEXT.get(
        threshold, ("Milestone Reached", f"{threshold} reflections captured.")
    )


@dataclass
class Level:
    """Display tier for a record count."""
    name: str
    count: int
    target: int
    next_name: Optional[str]

    @property
    def progress(self) -> float:
        """Percent of the way to the next tier target, capped at 100."""
        return min(self.count / self.target * 100, 100.0)

    @property
    def remaining(self) -> int:
        return max(self.target - self.count, 0)

    def describe(self) -> str:
        if self.next_name is None:
            return "Essence Synchronized."
        if self.count == 0:
            return f"0/{self.target} - Start your journey"
        return (f"{self.count} reflections captured, "
                f"{self.remaining} more to reach {self.next_name}.")


# (upper bound exclusive, name, next tier name)
_TIERS = (
    (25, "SHADOW", "Clarity"),
    (50, "CLARITY", "Radiance"),
    (100, "RADIANCE", "Essence"),
)


def level_for_count(count: int) -> Level:
    """SHADOW below 25, CLARITY below 50, RADIANCE below 100, then ESSENCE."""
    for bound, name, next_name in _TIERS:
        if count < bound:
            return Level(name=name, count=count, target=bound, next_name=next_name)
    return Level(name="ESSENCE", count=count, target=100, next_name=None)
