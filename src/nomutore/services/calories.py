"""Calorie math for drinks, exercise and streak bonuses."""

import math
import re
from dataclasses import dataclass

from nomutore.domain.errors import InvalidEntryError
from nomutore.domain.ledger import Profile

ETHANOL_DENSITY = 0.789
ALCOHOL_KCAL_PER_G = 7.0
CARB_KCAL_PER_G = 4.0
KJ_TO_KCAL = 1000 / 4.186
MIN_BURN_RATE = 0.1
DEFAULT_METS = 6.0
DEFAULT_CARB_G_PER_100ML = 3.0

BONUS_TAG_PATTERN = re.compile(r"Streak Bonus x[0-9.]+")


@dataclass(frozen=True)
class Activity:
    """Exercise catalogue item."""

    label: str
    mets: float


@dataclass(frozen=True)
class StyleSpec:
    """Typical strength and carbohydrate content of a drink style."""

    abv: float
    carb_g_per_100ml: float


ACTIVITIES: dict[str, Activity] = {
    "beer_walk": Activity("Beer walk", 3.5),
    "stepper": Activity("Stepper", 6.0),
    "cycling": Activity("Cycling", 4.0),
    "walking": Activity("Walking", 3.5),
    "gaming": Activity("Fitness game", 4.0),
    "housework": Activity("Housework", 3.3),
    "stretch": Activity("Stretch / yoga", 2.5),
    "brisk_walking": Activity("Brisk walking", 4.5),
    "training": Activity("Strength training", 5.0),
    "running": Activity("Running", 7.0),
    "hiit": Activity("HIIT", 8.0),
}

STYLE_SPECS: dict[str, StyleSpec] = {
    "Japanese Pilsner": StyleSpec(5.0, 3.0),
    "Low-Carb Lager": StyleSpec(4.5, 1.5),
    "Pilsner": StyleSpec(5.0, 3.2),
    "Dortmunder": StyleSpec(5.5, 3.8),
    "Schwarzbier": StyleSpec(5.0, 3.5),
    "Amber Ale": StyleSpec(5.5, 3.6),
    "Golden Ale": StyleSpec(5.0, 3.2),
    "Pale Ale": StyleSpec(5.0, 3.0),
    "Japanese Ale": StyleSpec(5.5, 3.5),
    "Weizen": StyleSpec(5.5, 4.0),
    "Belgian White": StyleSpec(5.0, 4.2),
    "Saison": StyleSpec(6.0, 2.5),
    "Session IPA": StyleSpec(4.5, 3.0),
    "West Coast IPA": StyleSpec(6.5, 3.8),
    "Hazy IPA": StyleSpec(7.0, 4.5),
    "Hazy Pale Ale": StyleSpec(5.5, 4.0),
    "Double IPA": StyleSpec(8.0, 5.0),
    "Porter": StyleSpec(5.5, 4.0),
    "Stout": StyleSpec(6.0, 4.5),
    "Imperial Stout": StyleSpec(9.0, 5.5),
    "Belgian Tripel": StyleSpec(8.5, 4.5),
    "Barley Wine": StyleSpec(10.0, 6.0),
    "Sour Ale": StyleSpec(5.0, 3.5),
    "Fruit Beer": StyleSpec(5.0, 5.0),
    "Non-Alcoholic": StyleSpec(0.0, 2.0),
    "Custom": StyleSpec(5.0, 3.0),
}


def resolve_activity(activity_key: str) -> Activity:
    """Return the catalogue activity or raise InvalidEntryError."""
    activity = ACTIVITIES.get(activity_key)
    if activity is None:
        raise InvalidEntryError(f"Unknown activity: {activity_key}")
    return activity


def activity_mets(activity_key: str) -> float:
    """Return METs for an activity, falling back for historic unknown keys."""
    activity = ACTIVITIES.get(activity_key)
    return activity.mets if activity else DEFAULT_METS


def basal_metabolic_rate(profile: Profile) -> float:
    """Return daily BMR in kcal."""
    offset = 0.4235 if profile.gender == "male" else 0.9708
    return (
        (0.0481 * profile.weight)
        + (0.0234 * profile.height)
        - (0.0138 * profile.age)
        - offset
    ) * KJ_TO_KCAL


def burn_rate(mets: float, profile: Profile) -> float:
    """Return net kcal burned per minute above resting."""
    net_mets = max(0.0, mets - 1)
    rate = basal_metabolic_rate(profile) / 24 * net_mets / 60
    return rate if rate > MIN_BURN_RATE else MIN_BURN_RATE


def exercise_burn(mets: float, minutes: float, profile: Profile) -> float:
    """Return the base kcal burned by an exercise session."""
    return _round1(max(minutes, 0.0) * burn_rate(mets, profile))


def streak_multiplier(streak: int) -> float:
    """Return the credit multiplier for a streak length."""
    if streak >= 14:  # noqa: PLR2004
        return 1.3
    if streak >= 7:  # noqa: PLR2004
        return 1.2
    if streak >= 3:  # noqa: PLR2004
        return 1.1
    return 1.0


def alcohol_kcal(volume_ml: float, abv: float, carb_g_per_100ml: float) -> float:
    """Return kcal of one serving from ethanol and carbohydrate."""
    ethanol_g = volume_ml * (abv / 100) * ETHANOL_DENSITY
    carb_kcal = (volume_ml / 100) * carb_g_per_100ml * CARB_KCAL_PER_G
    return _round1(ethanol_g * ALCOHOL_KCAL_PER_G + carb_kcal)


def debt_kcal(
    volume_ml: float, abv: float, carb_g_per_100ml: float, count: int = 1
) -> float:
    """Return the (negative) ledger amount for ``count`` servings."""
    unit = alcohol_kcal(volume_ml, abv, carb_g_per_100ml)
    return -abs(_round1(unit * (count or 1)))


@dataclass(frozen=True)
class CreditOutcome:
    """Credit amount and memo for an exercise entry at a given streak."""

    kcal: float
    memo: str
    multiplier: float


def credit_outcome(
    activity_key: str,
    minutes: float,
    profile: Profile,
    streak: int,
    memo: str = "",
) -> CreditOutcome:
    """Compute the bonus-adjusted credit and rewrite the bonus tag in the memo."""
    base = exercise_burn(activity_mets(activity_key), minutes, profile)
    multiplier = streak_multiplier(streak)
    return CreditOutcome(
        kcal=_round1(abs(base * multiplier)),
        memo=rewrite_bonus_memo(memo, multiplier),
        multiplier=multiplier,
    )


def rewrite_bonus_memo(memo: str, multiplier: float) -> str:
    """Strip any previous bonus tag and append one for multipliers above 1."""
    base = BONUS_TAG_PATTERN.sub("", memo or "").strip()
    if multiplier <= 1.0:
        return base
    tag = f"Streak Bonus x{multiplier:.1f}"
    return f"{base} {tag}" if base else tag


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10
