# plant/recipes.py
from __future__ import annotations

from typing import Dict, Mapping

from .errors import InvalidArgument
from .state import COLOR_ORDER, EPS

Recipe = Dict[str, float]

# liters per base color for one 150 L batch
DEFAULT_RECIPES: Dict[str, Recipe] = {
    "Celeste": {"White": 75.0, "Blue": 75.0, "Black": 0.0},
    "Marino": {"White": 0.0, "Blue": 50.0, "Black": 100.0},
}

RECIPE_ALIASES: Dict[str, str] = {
    "AZUL_CELESTE": "Celeste",
    "AZCELESTE": "Celeste",
    "CELESTE": "Celeste",
    "AZUL_MARINO": "Marino",
    "AZMARINO": "Marino",
    "MARINO": "Marino",
}


def resolve_recipe_name(name: str, recipes: Mapping[str, Recipe]) -> str:
    key = name.strip()
    if key in recipes:
        return key
    alias = RECIPE_ALIASES.get(key.upper())
    if alias is not None and alias in recipes:
        return alias
    for known in recipes:
        if known.upper() == key.upper():
            return known
    raise InvalidArgument(f"Unknown recipe: {name!r}")


def recipe_targets(recipe: Mapping[str, float]) -> Dict[str, float]:
    """Targets for every base color, missing colors get 0 L."""
    unknown = set(recipe) - set(COLOR_ORDER)
    if unknown:
        raise InvalidArgument(f"Recipe uses unknown base colors: {sorted(unknown)}")
    return {color: float(recipe.get(color, 0.0)) for color in COLOR_ORDER}


def recipe_total(targets: Mapping[str, float]) -> float:
    return sum(targets.values())


def matches_batch_size(targets: Mapping[str, float], batch_size_liters: float, eps: float = EPS) -> bool:
    return abs(recipe_total(targets) - batch_size_liters) <= eps
