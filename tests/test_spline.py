"""
Unit Tests for the Spline Basis

Tests cover:
- Basis dimensions and the dropped first basis function
- Shape constraints (monotonicity, convexity, linear tails)
- Knot validation against covariate ranges
"""

import pytest
import numpy as np

from crosswalk.models import SplineSpec
from crosswalk.spline import SplineBasis, validate_knots
from crosswalk.validators import InvalidKnotError


@pytest.mark.unit
class TestSplineBasis:
    """Test basis construction and evaluation."""

    @pytest.mark.parametrize("knots,degree,expected", [
        ([0, 50, 100], 2, 3),
        ([0, 50, 100], 3, 4),
        ([0, 25, 50, 100], 1, 3),
        ([0, 100], 1, 1),
    ])
    def test_n_coefficients(self, knots, degree, expected):
        basis = SplineBasis(SplineSpec(knots=knots, degree=degree))
        assert basis.n_coefficients == expected

    def test_design_shape(self):
        basis = SplineBasis(SplineSpec(knots=[0, 50, 100], degree=2))
        assert basis.design(np.array([0.0, 25.0, 100.0])).shape == (3, 3)

    def test_vanishes_at_left_knot(self):
        basis = SplineBasis(SplineSpec(knots=[10, 40, 70], degree=3))
        np.testing.assert_allclose(basis.design([10.0]), 0.0, atol=1e-12)

    def test_partition_of_unity_minus_first(self):
        """Dropped first function: remaining columns sum to 1 - B_0(x)."""
        basis = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=2))
        x = np.linspace(0, 2, 9)
        row_sums = basis.design(x).sum(axis=1)
        assert np.all(row_sums <= 1.0 + 1e-12)
        np.testing.assert_allclose(row_sums[-1], 1.0)

    def test_degree_one_spline_is_linear_between_knots(self):
        basis = SplineBasis(SplineSpec(knots=[0, 10], degree=1))
        np.testing.assert_allclose(basis.design([0.0, 5.0, 10.0]).ravel(), [0.0, 0.5, 1.0])

    def test_derivative_beyond_degree_is_zero(self):
        basis = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=1))
        np.testing.assert_array_equal(basis.derivative([0.5], order=2), np.zeros((1, 2)))

    def test_grid_covers_knots(self):
        basis = SplineBasis(SplineSpec(knots=[0, 1, 3]))
        grid = basis.grid()
        assert grid[0] == 0.0
        assert grid[-1] == 3.0
        assert np.all(np.diff(grid) > 0)


@pytest.mark.unit
class TestShapeConstraints:
    """Test translation of shape options into linear constraints."""

    def test_no_shape_no_constraints(self):
        A_ineq, A_eq = SplineBasis(SplineSpec(knots=[0, 1, 2])).shape_constraints()
        assert A_ineq.shape == (0, 4)
        assert A_eq.shape == (0, 4)

    def test_increasing(self):
        basis = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=2, monotonicity='increasing'))
        A_ineq, _ = basis.shape_constraints()

        assert A_ineq.shape == (len(basis.grid()), basis.n_coefficients)
        # Increasing coefficients give an increasing spline
        assert np.all(A_ineq @ np.array([1.0, 2.0, 3.0]) >= -1e-12)
        assert np.any(A_ineq @ np.array([3.0, 2.0, 1.0]) < 0)

    def test_decreasing_flips_sign(self):
        inc = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=2, monotonicity='increasing'))
        dec = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=2, monotonicity='decreasing'))
        np.testing.assert_allclose(inc.shape_constraints()[0], -dec.shape_constraints()[0])

    def test_convex(self):
        basis = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=2, convexity='convex'))
        A_ineq, _ = basis.shape_constraints()
        x = np.linspace(0, 2, 5)
        # Coefficients of a quadratic (x^2 / 4 reproduced by the basis) satisfy convexity
        beta, *_ = np.linalg.lstsq(basis.design(x), x ** 2 / 4, rcond=None)
        assert np.all(A_ineq @ beta >= -1e-8)

    def test_linear_tails(self):
        spec = SplineSpec(knots=[0, 1, 2, 3], degree=3, l_linear=True, r_linear=True)
        basis = SplineBasis(spec)
        _, A_eq = basis.shape_constraints()

        assert A_eq.shape[1] == basis.n_coefficients
        assert A_eq.shape[0] == 4

        # Any coefficients in the null space give zero curvature in both tails
        _, s, vt = np.linalg.svd(A_eq)
        beta = vt[-1]
        curvature = basis.derivative(np.array([0.25, 0.75, 2.25, 2.75]), order=2) @ beta
        np.testing.assert_allclose(curvature, 0.0, atol=1e-10)

    def test_degree_one_ignores_linear_tails(self):
        _, A_eq = SplineBasis(SplineSpec(knots=[0, 1, 2], degree=1, r_linear=True)).shape_constraints()
        assert A_eq.shape[0] == 0


@pytest.mark.unit
@pytest.mark.edge_case
class TestKnotValidation:
    """Test knot placement checks."""

    def test_knots_span_range(self):
        validate_knots(SplineSpec(knots=[0, 50, 100]), np.array([0.0, 100.0]), 'age')

    def test_value_below_first_knot(self):
        with pytest.raises(InvalidKnotError) as exc_info:
            validate_knots(SplineSpec(knots=[10, 50, 100]), np.array([5.0, 60.0]), 'age')
        assert exc_info.value.field == 'age'

    def test_value_above_last_knot(self):
        with pytest.raises(InvalidKnotError, match="do not span"):
            validate_knots(SplineSpec(knots=[0, 50]), np.array([10.0, 60.0]), 'age')
