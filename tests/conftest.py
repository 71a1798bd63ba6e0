"""
Shared Test Fixtures and Configuration for the Crosswalk Test Suite

This module provides reusable fixtures for:
- Seeded random generators
- Small hand-built comparison tables
- Simulated definition networks with known biases
- Fitted models and temporary output locations
"""

import pytest
import numpy as np
import pandas as pd

from crosswalk import (
    ColumnRoles,
    CovariateTerm,
    CWData,
    CWModel,
    FitParams,
)
from crosswalk.logger import CrosswalkLogger
from crosswalk.simulate import simulate_network


# ==============================================================================
# PYTEST CONFIGURATION
# ==============================================================================

def pytest_configure(config):
    """Register custom markers for test organization."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual functions/classes"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for workflows"
    )
    config.addinivalue_line(
        "markers", "edge_case: Tests for edge cases and boundary conditions"
    )
    config.addinivalue_line(
        "markers", "slow: Slow-running tests (>1 second)"
    )


# ==============================================================================
# RANDOM SEED FIXTURES
# ==============================================================================

@pytest.fixture(scope="session")
def random_seed():
    """Global random seed for reproducible tests."""
    return 42


@pytest.fixture
def rng(random_seed):
    """Fresh seeded Generator for each test."""
    return np.random.default_rng(random_seed)


# ==============================================================================
# COMPARISON DATA FIXTURES
# ==============================================================================

TRUE_EFFECTS = {'B': 0.5, 'C': -0.3}


@pytest.fixture
def true_effects():
    """Known logit-space biases of the alternative definitions."""
    return dict(TRUE_EFFECTS)


@pytest.fixture
def small_comparison_df():
    """Hand-built comparisons: B and C against gold A, and B against C."""
    return pd.DataFrame({
        'alt_definition': ['B', 'B', 'C', 'C', 'B', 'B'],
        'ref_definition': ['A', 'A', 'A', 'A', 'C', 'C'],
        'diff_value': [0.52, 0.48, -0.31, -0.29, 0.79, 0.81],
        'diff_se': [0.1, 0.1, 0.1, 0.1, 0.1, 0.1],
        'age': [20.0, 35.0, 50.0, 65.0, 30.0, 45.0],
        'study': ['s1', 's1', 's2', 's2', 's3', 's3'],
    })


@pytest.fixture
def small_roles():
    """Column roles of small_comparison_df."""
    return ColumnRoles(covariates=['age'], group_id='study')


@pytest.fixture
def small_cwdata(small_comparison_df, small_roles):
    return CWData(small_comparison_df, small_roles)


@pytest.fixture
def network_df(true_effects, random_seed):
    """Large simulated network (gold A) with known effects for B and C."""
    return simulate_network(
        true_effects,
        gold='A',
        n_per_comparison=300,
        se_range=(0.05, 0.15),
        seed=random_seed
    )


@pytest.fixture
def network_cwdata(network_df):
    return CWData(network_df, ColumnRoles(group_id='group_id'))


@pytest.fixture
def fitted_network(network_cwdata):
    """Intercept-only logit fit of the simulated network."""
    params = FitParams(gold_definition='A', transform='logit')
    return CWModel(network_cwdata, params).fit()


@pytest.fixture
def fitted_with_age(small_cwdata):
    """Fit with a linear age term on the hand-built comparisons."""
    params = FitParams(
        gold_definition='A',
        transform='logit',
        terms=[CovariateTerm(name='intercept'), CovariateTerm(name='age')]
    )
    return CWModel(small_cwdata, params).fit()


# ==============================================================================
# LOGGER ISOLATION
# ==============================================================================

@pytest.fixture
def reset_loggers():
    """Restore default package logging before and after a test."""
    CrosswalkLogger.reset_loggers()
    yield
    CrosswalkLogger.reset_loggers()
