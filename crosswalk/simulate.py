"""
Simulated Crosswalk Data

Generates matched comparisons and raw measurements with known definition
biases, for examples and for checking that fits recover the truth.

All randomness flows through an explicit numpy Generator; nothing touches
the global random state.
"""

import itertools
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .data import split_definition
from .transforms import se_to_linear, to_linear, to_transformed

SeedLike = Union[None, int, np.random.Generator]


def _rng(seed: SeedLike) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def _bias(label: str, true_effects: Dict[str, float], gold: str, delimiter: Optional[str]) -> float:
    return sum(
        true_effects[atom] for atom in split_definition(label, delimiter) if atom != gold
    )


def default_comparisons(definitions: Sequence[str], gold: str) -> List[Tuple[str, str]]:
    """Every alternative against gold plus every pair of alternatives."""
    alternatives = [d for d in definitions if d != gold]
    pairs = [(alt, gold) for alt in alternatives]
    pairs.extend(itertools.combinations(alternatives, 2))
    return pairs


def simulate_network(
    true_effects: Dict[str, float],
    gold: str,
    comparisons: Optional[Sequence[Tuple[str, str]]] = None,
    n_per_comparison: int = 100,
    covariate_effects: Optional[Dict[str, float]] = None,
    covariate_range: Tuple[float, float] = (0.0, 1.0),
    heterogeneity: float = 0.0,
    n_groups: Optional[int] = None,
    se_range: Tuple[float, float] = (0.05, 0.2),
    delimiter: Optional[str] = '_',
    seed: SeedLike = None
) -> pd.DataFrame:
    """
    Simulate matched comparisons in transform space.

    Args:
        true_effects: Bias of each non-gold atomic definition relative to gold
        gold: Gold-standard label
        comparisons: (alt, ref) label pairs; composite labels allowed
        n_per_comparison: Rows simulated per comparison
        covariate_effects: Linear effect of each simulated covariate
        covariate_range: Uniform range of the simulated covariates
        heterogeneity: Between-group variance (gamma)
        n_groups: Number of heterogeneity groups (default: one per row)
        se_range: Uniform range of the per-row standard errors
        delimiter: Separator of composite labels
        seed: Seed or Generator

    Returns:
        DataFrame with alt_definition, ref_definition, diff_value, diff_se,
        group_id and one column per covariate

    Example:
        >>> df = simulate_network({'B': 0.5, 'C': -0.3}, gold='A', seed=0)
    """
    rng = _rng(seed)
    covariate_effects = covariate_effects or {}
    if comparisons is None:
        comparisons = default_comparisons([gold, *true_effects], gold)

    alt_labels, ref_labels = [], []
    for alt, ref in comparisons:
        alt_labels.extend([alt] * n_per_comparison)
        ref_labels.extend([ref] * n_per_comparison)
    n = len(alt_labels)

    df = pd.DataFrame({'alt_definition': alt_labels, 'ref_definition': ref_labels})
    mean = np.array([
        _bias(alt, true_effects, gold, delimiter) - _bias(ref, true_effects, gold, delimiter)
        for alt, ref in zip(alt_labels, ref_labels)
    ])

    for name, effect in covariate_effects.items():
        df[name] = rng.uniform(*covariate_range, size=n)
        mean = mean + effect * df[name].to_numpy()

    groups = rng.integers(0, n_groups, size=n) if n_groups else np.arange(n)
    if heterogeneity > 0:
        n_distinct = int(groups.max()) + 1
        mean = mean + rng.normal(0.0, np.sqrt(heterogeneity), size=n_distinct)[groups]

    se = rng.uniform(*se_range, size=n)
    df['diff_value'] = mean + rng.normal(0.0, se)
    df['diff_se'] = se
    df['group_id'] = groups
    return df


def simulate_raw_observations(
    true_effects: Dict[str, float],
    gold: str,
    definitions: Sequence[str],
    n_per_definition: int = 50,
    transform: str = 'logit',
    covariate_effects: Optional[Dict[str, float]] = None,
    covariate_range: Tuple[float, float] = (0.0, 1.0),
    value_range: Tuple[float, float] = (0.05, 0.6),
    se_transformed: float = 0.05,
    delimiter: Optional[str] = '_',
    seed: SeedLike = None
) -> pd.DataFrame:
    """
    Simulate raw measurements biased by their definition.

    The ``true_value`` column holds the gold-standard measurement each row
    would have had; ``value`` holds the biased measurement.

    Returns:
        DataFrame with row_id, definition, true_value, value, value_se and
        one column per covariate
    """
    rng = _rng(seed)
    covariate_effects = covariate_effects or {}
    labels = [d for d in definitions for _ in range(n_per_definition)]
    n = len(labels)

    df = pd.DataFrame({'row_id': np.arange(n), 'definition': labels})
    true_value = rng.uniform(*value_range, size=n)
    bias = np.array([_bias(label, true_effects, gold, delimiter) for label in labels])
    is_gold = np.array([split_definition(label, delimiter) == frozenset([gold]) for label in labels])

    for name, effect in covariate_effects.items():
        df[name] = rng.uniform(*covariate_range, size=n)
        bias = bias + np.where(is_gold, 0.0, effect * df[name].to_numpy())

    value = to_linear(to_transformed(true_value, transform) + bias, transform)
    df['true_value'] = true_value
    df['value'] = value
    df['value_se'] = se_to_linear(value, np.full(n, se_transformed), transform)
    return df
