from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from .constants import (
    ABILITY_CODES,
    ABILITY_METHODS,
    ABILITY_NAMES,
    ABILITY_SCORES,
    MAX_ABILITY_SCORE,
    MIN_ABILITY_SCORE,
    POINT_BUY_BUDGET,
    POINT_BUY_COSTS,
    STANDARD_ARRAY,
)


@dataclass(slots=True)
class ValidationResult:
    valid: bool = True
    errors: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def __bool__(self) -> bool:
        return self.valid


def proficiency_bonus(level: int) -> int:
    level = max(1, min(level, 20))
    return 2 + (level - 1) // 4


def ability_modifier(score: int) -> int:
    return (score - 10) // 2


def average_hit_die(hit_die: int) -> int:
    return (hit_die // 2) + 1


def point_buy_cost(scores: Mapping[str, int]) -> int:
    return sum(POINT_BUY_COSTS.get(value, 0) for value in scores.values())


def validate_ability_scores(scores: Mapping[str, int], method: str) -> ValidationResult:
    result = ValidationResult()
    if method not in ABILITY_METHODS:
        result.add_error(f"Unknown ability score method: {method}")
        return result

    missing = [ABILITY_NAMES[key] for key in ABILITY_SCORES if key not in scores]
    if missing:
        result.add_error(f"Missing ability scores: {', '.join(missing)}")
        return result

    for key in ABILITY_SCORES:
        value = scores[key]
        if not isinstance(value, int) or isinstance(value, bool):
            result.add_error(f"{ABILITY_NAMES[key]} must be a whole number")
        elif not MIN_ABILITY_SCORE <= value <= MAX_ABILITY_SCORE:
            result.add_error(
                f"{ABILITY_NAMES[key]} must be between {MIN_ABILITY_SCORE} and {MAX_ABILITY_SCORE} (got {value})"
            )
    if not result:
        return result

    values = [scores[key] for key in ABILITY_SCORES]
    if method == "standard_array":
        if Counter(values) != Counter(STANDARD_ARRAY):
            result.add_error(f"Standard array scores must use each of {STANDARD_ARRAY} exactly once")
    elif method == "point_buy":
        out_of_range = [v for v in values if v not in POINT_BUY_COSTS]
        if out_of_range:
            result.add_error("Point buy scores must be between 8 and 15")
        else:
            spent = point_buy_cost(scores)
            if spent > POINT_BUY_BUDGET:
                result.add_error(f"Point buy: spent {spent} points (max {POINT_BUY_BUDGET})")
    return result


def validate_ability_increase(increases: Mapping[str, int], current: Mapping[str, int]) -> ValidationResult:
    """+2 to one ability or +1 to two, never past the cap."""

    result = ValidationResult()
    chosen = {key: value for key, value in increases.items() if value}
    unknown = [key for key in chosen if key not in ABILITY_SCORES]
    if unknown:
        result.add_error(f"Unknown abilities: {', '.join(sorted(unknown))}")
        return result
    if not chosen:
        result.add_error("Choose an ability score increase")
        return result

    total = sum(chosen.values())
    if total != 2:
        result.add_error(f"Ability increase must total +2 (got {total})")
    elif len(chosen) == 1 and list(chosen.values())[0] != 2:
        result.add_error("Single ability increase must be +2")
    elif len(chosen) == 2 and not all(v == 1 for v in chosen.values()):
        result.add_error("Two ability increases must each be +1")
    elif len(chosen) > 2:
        result.add_error(f"Can increase 1 or 2 abilities, not {len(chosen)}")

    for key, value in chosen.items():
        if current.get(key, 0) + value > MAX_ABILITY_SCORE:
            result.add_error(f"{ABILITY_NAMES[key]} cannot exceed {MAX_ABILITY_SCORE}")
    return result


def ability_codes(increases: Mapping[str, int]) -> Dict[str, int]:
    return {ABILITY_CODES[key]: value for key, value in increases.items() if value}
