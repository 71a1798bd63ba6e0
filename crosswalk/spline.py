"""
Spline Basis for Covariate Terms

Evaluates clamped B-spline bases with scipy and turns spline shape options
(monotonicity, convexity, linear tails) into linear constraints on the
spline coefficients.

The first basis function is dropped: the remaining functions vanish at the
left boundary knot, so a spline term shifts the prediction relative to the
smallest knot and the definition coefficients keep the role of the level.
"""

import numpy as np
from scipy.interpolate import BSpline
from typing import List, Tuple

from .logger import get_logger
from .models.params import SplineSpec
from .validators import InvalidKnotError

logger = get_logger(__name__)

# Grid points per knot interval used for shape constraints
GRID_PER_INTERVAL = 8


def _row_basis(A: np.ndarray, rtol: float = 1e-10) -> np.ndarray:
    """Orthonormal basis of the row space of A (drops redundant rows)."""
    if A.size == 0:
        return A
    _, s, vt = np.linalg.svd(A, full_matrices=False)
    if s.size == 0 or s[0] == 0:
        return np.zeros((0, A.shape[1]))
    return vt[s > rtol * s[0]]


class SplineBasis:
    """
    Clamped B-spline basis built from a SplineSpec.

    Example:
        >>> basis = SplineBasis(SplineSpec(knots=[0, 50, 100], degree=2))
        >>> basis.n_coefficients
        3
        >>> basis.design(np.array([0.0, 25.0, 100.0])).shape
        (3, 3)
    """

    def __init__(self, spec: SplineSpec):
        self.spec = spec
        knots = np.asarray(spec.knots, dtype=float)
        k = spec.degree
        self.knots = knots
        self.t = np.concatenate([np.repeat(knots[0], k), knots, np.repeat(knots[-1], k)])
        self.n_basis = len(self.t) - k - 1
        self._basis = BSpline(self.t, np.eye(self.n_basis), k, extrapolate=True)

    @property
    def n_coefficients(self) -> int:
        return self.n_basis - 1

    def design(self, x) -> np.ndarray:
        """Basis values at x, shape (len(x), n_coefficients)."""
        x = np.atleast_1d(np.asarray(x, dtype=float))
        return self._basis(x)[:, 1:]

    def derivative(self, x, order: int = 1) -> np.ndarray:
        """Basis derivatives of the given order at x."""
        x = np.atleast_1d(np.asarray(x, dtype=float))
        if order > self.spec.degree:
            return np.zeros((len(x), self.n_coefficients))
        return self._basis.derivative(order)(x)[:, 1:]

    def grid(self) -> np.ndarray:
        """Evaluation points covering every knot interval."""
        points = [
            np.linspace(lo, hi, GRID_PER_INTERVAL, endpoint=False)
            for lo, hi in zip(self.knots[:-1], self.knots[1:])
        ]
        points.append(self.knots[-1:])
        return np.concatenate(points)

    def shape_constraints(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Linear constraints implied by the spline's shape options.

        Returns:
            Tuple (A_ineq, A_eq) such that ``A_ineq @ beta >= 0`` and
            ``A_eq @ beta == 0`` for the spline coefficients ``beta``
        """
        spec = self.spec
        ineq: List[np.ndarray] = []
        eq: List[np.ndarray] = []

        if spec.monotonicity is not None:
            sign = 1.0 if spec.monotonicity == 'increasing' else -1.0
            ineq.append(sign * self.derivative(self.grid(), order=1))

        if spec.convexity is not None:
            sign = 1.0 if spec.convexity == 'convex' else -1.0
            ineq.append(sign * self.derivative(self.grid(), order=2))

        # Second derivative is a polynomial of degree k-2 within an interval;
        # k-1 distinct points pin it to zero.
        n_points = spec.degree - 1
        if spec.l_linear and spec.degree >= 2:
            points = np.linspace(self.knots[0], self.knots[1], n_points + 1)[:-1]
            eq.append(self.derivative(points, order=2))
        if spec.r_linear and spec.degree >= 2:
            points = np.linspace(self.knots[-2], self.knots[-1], n_points + 1)[1:]
            eq.append(self.derivative(points, order=2))

        width = self.n_coefficients
        A_ineq = np.vstack(ineq) if ineq else np.zeros((0, width))
        A_eq = _row_basis(np.vstack(eq)) if eq else np.zeros((0, width))
        return A_ineq, A_eq


def validate_knots(spec: SplineSpec, values: np.ndarray, name: str) -> None:
    """
    Check that the knots bracket the observed covariate range.

    Raises:
        InvalidKnotError: If min(values) < first knot or max(values) > last knot
    """
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return
    lo, hi = float(values.min()), float(values.max())
    if lo < spec.knots[0] or hi > spec.knots[-1]:
        raise InvalidKnotError(
            f"Spline knots for '{name}' do not span the observed covariate range",
            field=name,
            expected=f"knots[0] <= {lo:g} and knots[-1] >= {hi:g}",
            actual=f"knots span [{spec.knots[0]:g}, {spec.knots[-1]:g}]",
            fix=f"Extend the boundary knots of '{name}' to cover [{lo:g}, {hi:g}]"
        )
