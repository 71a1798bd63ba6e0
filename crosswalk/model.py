"""
Crosswalk Model Fitter

Estimates the bias of each alternative definition relative to the gold
standard from matched comparisons, jointly over the network of definitions.

Model:
    y_i = x_i' beta + u_g(i) + e_i,   u_g ~ N(0, gamma),   e_i ~ N(0, se_i^2)

where y_i is the alternative-minus-reference difference in transform space
and x_i holds the signed definition indicators (alternative minus reference)
followed by the covariate columns. Atomic definitions of composite labels
contribute additively.

The marginal likelihood of each group has covariance diag(se^2) + gamma 11'.
Its inverse and determinant have closed forms (Sherman-Morrison), so the
negative log-likelihood and its gradient are computed group-wise without
forming any n x n matrix:

    a_g = sum w_i,  b_g = sum w_i r_i,  c_g = sum w_i r_i^2,  w_i = 1 / se_i^2
    NLL = 0.5 * sum_g [ c_g - gamma b_g^2 / (1 + gamma a_g)
                        + sum log se_i^2 + log(1 + gamma a_g) ]

References:
- Zheng P, et al. (2021): Trimmed constrained mixed effects models
- DerSimonian & Laird (1986): Meta-analysis in clinical trials
"""

import math
import numpy as np
from scipy.optimize import minimize
from typing import Dict, List, Optional, Sequence, Tuple

from .data import CWData, split_definition
from .logger import get_logger
from .models.params import CovariateTerm, FitParams, OrderPrior, INTERCEPT
from .models.results import FixedEffect, FittedModel
from .spline import SplineBasis, validate_knots
from .validators import MalformedInputError, UnidentifiableModelError

logger = get_logger(__name__)

FEASIBILITY_TOL = 1e-9


def term_coefficient_names(term: CovariateTerm) -> List[str]:
    """Coefficient names of a covariate term (not the intercept)."""
    if term.spline is None:
        return [term.name]
    n_coefficients = SplineBasis(term.spline).n_coefficients
    return [f"{term.name}:spline_{j + 1}" for j in range(n_coefficients)]


def term_design(term: CovariateTerm, values: np.ndarray) -> np.ndarray:
    """
    Design columns of a covariate term evaluated at covariate values.

    Args:
        term: Linear or spline covariate term
        values: Covariate values, shape (n,)

    Returns:
        Array of shape (n, len(term_coefficient_names(term)))
    """
    values = np.asarray(values, dtype=float)
    if term.spline is None:
        return values.reshape(-1, 1)
    return SplineBasis(term.spline).design(values)


def _compact_groups(group_index: np.ndarray) -> Tuple[np.ndarray, int]:
    _, codes = np.unique(group_index, return_inverse=True)
    return codes, int(codes.max()) + 1 if codes.size else 0


def negative_log_likelihood(
    theta: np.ndarray,
    X: np.ndarray,
    y: np.ndarray,
    s2: np.ndarray,
    groups: np.ndarray,
    n_groups: int
) -> Tuple[float, np.ndarray]:
    """
    Marginal negative log-likelihood and gradient in (beta, gamma).

    Args:
        theta: Coefficients followed by the heterogeneity variance
        X: Design matrix, shape (n, p)
        y: Observed differences, shape (n,)
        s2: Squared standard errors, shape (n,)
        groups: Group codes in [0, n_groups)
        n_groups: Number of groups

    Returns:
        Tuple of (value, gradient)
    """
    beta, gamma = theta[:-1], max(theta[-1], 0.0)
    r = y - X @ beta
    w = 1.0 / s2
    a = np.bincount(groups, weights=w, minlength=n_groups)
    b = np.bincount(groups, weights=w * r, minlength=n_groups)
    d = 1.0 + gamma * a

    value = 0.5 * (
        np.sum(w * r * r)
        - gamma * np.sum(b * b / d)
        + np.sum(np.log(s2))
        + np.sum(np.log(d))
    )

    v_inv_r = w * r - gamma * w * (b / d)[groups]
    grad_beta = -X.T @ v_inv_r
    grad_gamma = 0.5 * np.sum(a / d - (b / d) ** 2)
    return float(value), np.append(grad_beta, grad_gamma)


def fisher_information(
    X: np.ndarray,
    s2: np.ndarray,
    gamma: float,
    groups: np.ndarray,
    n_groups: int
) -> np.ndarray:
    """X' V^-1 X for the block-diagonal marginal covariance V."""
    w = 1.0 / s2
    a = np.bincount(groups, weights=w, minlength=n_groups)
    d = 1.0 + gamma * a
    group_sums = np.zeros((n_groups, X.shape[1]))
    np.add.at(group_sums, groups, w[:, None] * X)
    v_inv_x = w[:, None] * X - gamma * w[:, None] * (group_sums / d[:, None])[groups]
    return X.T @ v_inv_x


class CWModel:
    """
    Network crosswalk model.

    Builds the design from the observation store and the covariate terms,
    checks identifiability and knot placement, and fits coefficients and the
    heterogeneity variance subject to order priors and spline shape
    constraints, with optional robust trimming.

    Example:
        >>> data = CWData(df, roles)
        >>> params = FitParams(
        ...     gold_definition='measured',
        ...     transform='logit',
        ...     order_priors=[OrderPrior(lower='selfreport', upper='survey')]
        ... )
        >>> fitted = CWModel(data, params).fit()
        >>> fitted.intercept('selfreport')
    """

    def __init__(self, cwdata: CWData, params: FitParams):
        """
        Build the design and constraints.

        Args:
            cwdata: Observation store
            params: Fit parameters

        Raises:
            MalformedInputError: A composite gold label, or covariate terms
                or order priors that refer to unknown columns or definitions
            InvalidKnotError: Spline knots not spanning the covariate range
            UnidentifiableModelError: Coefficients not determined by the data
        """
        self.cwdata = cwdata
        self.params = params
        self.gold_definition = params.gold_definition

        if split_definition(self.gold_definition, cwdata.delimiter) != {self.gold_definition}:
            raise MalformedInputError(
                f"Gold definition '{self.gold_definition}' is not an atomic label",
                field="gold_definition",
                expected=f"A label without the composite delimiter {cwdata.delimiter!r}",
                actual=f"Atoms {sorted(split_definition(self.gold_definition, cwdata.delimiter))}",
                fix="Rename the gold definition or build CWData with another delimiter"
            )

        self.coef_names: List[str] = []
        self.coef_terms: List[str] = []
        self.coef_definitions: List[Optional[str]] = []
        self.covariate_ranges: Dict[str, Tuple[float, float]] = {}
        self._build_design()
        self._build_constraints()
        self._check_identifiable(np.ones(cwdata.n_obs, dtype=bool))

        logger.info(
            f"Crosswalk model: {len(self.coef_names)} coefficients, "
            f"{self.A_ineq.shape[0]} inequality and {self.A_eq.shape[0]} equality constraints"
        )

    # ===== Design =====

    def _build_design(self) -> None:
        blocks = []
        for term in self.params.terms:
            if term.is_intercept:
                labels = self.cwdata.definition_slots(self.gold_definition)
                blocks.append(self.cwdata.dorm_design(labels))
                self.coef_names.extend(f"{INTERCEPT}:{label}" for label in labels)
                self.coef_terms.extend([INTERCEPT] * len(labels))
                self.coef_definitions.extend(labels)
                continue

            if term.name not in self.cwdata.roles.covariates:
                raise MalformedInputError(
                    f"Covariate term '{term.name}' has no column in the comparison data",
                    field=term.name,
                    expected=f"One of {self.cwdata.roles.covariates}",
                    fix="Add the column to ColumnRoles.covariates or drop the term"
                )
            values = self.cwdata.covariate(term.name)
            if term.spline is not None:
                validate_knots(term.spline, values, term.name)
            self.covariate_ranges[term.name] = (float(values.min()), float(values.max()))

            names = term_coefficient_names(term)
            blocks.append(term_design(term, values))
            self.coef_names.extend(names)
            self.coef_terms.extend([term.name] * len(names))
            self.coef_definitions.extend([None] * len(names))

        self.X = np.hstack(blocks) if blocks else np.zeros((self.cwdata.n_obs, 0))
        self.n_coefs = self.X.shape[1]
        if self.n_coefs == 0:
            raise UnidentifiableModelError(
                "The term specification yields no coefficients",
                fix="Include the 'intercept' term or at least one covariate"
            )

    def _build_constraints(self) -> None:
        ineq_rows = []
        eq_rows = []

        column = {
            definition: j for j, definition in enumerate(self.coef_definitions)
            if definition is not None
        }
        registry = set(self.cwdata.definition_registry) | {self.gold_definition}
        for prior in self.params.order_priors:
            prior = OrderPrior.from_pair(prior)
            unknown = [label for label in (prior.lower, prior.upper) if label not in registry]
            if unknown:
                raise MalformedInputError(
                    f"Order prior refers to unknown definitions {unknown}",
                    field="order_priors",
                    expected=f"Labels from {sorted(registry)}",
                    fix="Check the spelling of the order prior labels"
                )
            # beta_upper - beta_lower >= 0, gold contributes the constant 0
            row = np.zeros(self.n_coefs)
            if prior.upper != self.gold_definition:
                row[column[prior.upper]] += 1.0
            if prior.lower != self.gold_definition:
                row[column[prior.lower]] -= 1.0
            ineq_rows.append(row)

        offset = 0
        for term in self.params.terms:
            if term.is_intercept:
                offset += len(self.cwdata.definition_slots(self.gold_definition))
                continue
            width = len(term_coefficient_names(term))
            if term.spline is not None:
                A_ineq, A_eq = SplineBasis(term.spline).shape_constraints()
                for source, target in ((A_ineq, ineq_rows), (A_eq, eq_rows)):
                    for spline_row in source:
                        row = np.zeros(self.n_coefs)
                        row[offset:offset + width] = spline_row
                        target.append(row)
            offset += width

        self.A_ineq = np.array(ineq_rows).reshape(-1, self.n_coefs)
        self.A_eq = np.array(eq_rows).reshape(-1, self.n_coefs)

    def _check_identifiable(self, mask: np.ndarray) -> None:
        X = self.X[mask]
        zero_columns = [
            name for name, col in zip(self.coef_names, X.T) if not np.any(col != 0)
        ]
        if zero_columns:
            raise UnidentifiableModelError(
                "Some coefficients have no supporting comparisons",
                coefficients=zero_columns,
                fix="Drop unused definitions or add matched pairs that involve them"
            )

        rank = np.linalg.matrix_rank(X) if X.size else 0
        if rank < self.n_coefs:
            _, s, vt = np.linalg.svd(X, full_matrices=True)
            tol = s.max() * max(X.shape) * np.finfo(float).eps
            null_space = vt[np.sum(s > tol):]
            involved = [
                name for name, loading in zip(self.coef_names, np.abs(null_space).max(axis=0))
                if loading > 1e-8
            ]
            raise UnidentifiableModelError(
                "The design does not determine every coefficient",
                coefficients=involved,
                expected=f"Design rank {self.n_coefs}",
                fix="Add comparisons linking these definitions to the gold standard, "
                    "or remove collinear covariates"
            )

    # ===== Constraints =====

    def _linear_constraints(self, n_extra: int = 0) -> List[Dict]:
        """SLSQP constraint dicts; ``n_extra`` trailing parameters are unconstrained."""
        constraints = []
        for kind, A in (('ineq', self.A_ineq), ('eq', self.A_eq)):
            if A.shape[0]:
                A = np.hstack([A, np.zeros((A.shape[0], n_extra))])
                constraints.append({'type': kind, 'fun': lambda th, A=A: A @ th, 'jac': lambda th, A=A: A})
        return constraints

    def constraint_violation(self, beta: np.ndarray) -> float:
        """Largest violation of the order priors and spline constraints at beta."""
        violation = 0.0
        if self.A_ineq.shape[0]:
            violation = max(violation, float(np.max(-(self.A_ineq @ beta))))
        if self.A_eq.shape[0]:
            violation = max(violation, float(np.max(np.abs(self.A_eq @ beta))))
        return violation

    def _project_feasible(self, beta: np.ndarray) -> np.ndarray:
        """
        Closest coefficients satisfying every constraint.

        The constraints are homogeneous, so beta = 0 is always feasible and
        the projection exists.
        """
        if self.constraint_violation(beta) <= FEASIBILITY_TOL:
            return beta
        result = minimize(
            lambda b: (0.5 * float(np.sum((b - beta) ** 2)), b - beta),
            beta,
            jac=True,
            method='SLSQP',
            constraints=self._linear_constraints(),
            options={'maxiter': 500, 'ftol': 1e-14}
        )
        projected = result.x
        if self.constraint_violation(projected) > FEASIBILITY_TOL:
            projected = np.zeros_like(beta)
        return projected

    # ===== Fitting =====

    def _initial_values(self, mask: np.ndarray) -> np.ndarray:
        X, y, s2 = self.X[mask], self.cwdata.obs[mask], self.cwdata.obs_se[mask] ** 2
        sqrt_w = 1.0 / np.sqrt(s2)
        beta, *_ = np.linalg.lstsq(X * sqrt_w[:, None], y * sqrt_w, rcond=None)
        resid = y - X @ beta
        gamma = max(float(np.mean(resid ** 2) - np.mean(s2)), 0.0)
        return np.append(self._project_feasible(beta), gamma)

    def _fit_subset(self, mask: np.ndarray, start: Optional[np.ndarray] = None) -> Tuple[np.ndarray, bool]:
        X = self.X[mask]
        y = self.cwdata.obs[mask]
        s2 = self.cwdata.obs_se[mask] ** 2
        groups, n_groups = _compact_groups(self.cwdata.group_index[mask])
        n = len(y)

        if start is None:
            start = self._initial_values(mask)

        def objective(theta):
            # mean NLL per row
            value, grad = negative_log_likelihood(theta, X, y, s2, groups, n_groups)
            return value / n, grad / n

        bounds = [(None, None)] * self.n_coefs + [(0.0, None)]
        result = minimize(
            objective,
            start,
            jac=True,
            method='SLSQP',
            bounds=bounds,
            constraints=self._linear_constraints(n_extra=1),
            options={'maxiter': self.params.max_iter, 'ftol': self.params.tol}
        )
        if not result.success:
            logger.warning(f"Optimizer did not converge: {result.message}")
        theta = result.x.copy()
        theta[-1] = max(theta[-1], 0.0)

        violation = self.constraint_violation(theta[:-1])
        if violation > FEASIBILITY_TOL:
            logger.warning(
                f"Coefficients violate the constraints by {violation:.2e}; "
                f"projecting onto the feasible set"
            )
            theta[:-1] = self._project_feasible(theta[:-1])
        return theta, bool(result.success)

    def _select_inliers(self, theta: np.ndarray, n_keep: int) -> np.ndarray:
        beta, gamma = theta[:-1], theta[-1]
        resid = self.cwdata.obs - self.X @ beta
        standardized = np.abs(resid) / np.sqrt(self.cwdata.obs_se ** 2 + gamma)
        keep = np.argsort(standardized, kind='stable')[:n_keep]
        mask = np.zeros(self.cwdata.n_obs, dtype=bool)
        mask[keep] = True
        return mask

    def fit(self) -> FittedModel:
        """
        Fit coefficients and heterogeneity variance.

        Returns:
            Immutable FittedModel

        Raises:
            UnidentifiableModelError: If trimming removes the support of a
                coefficient
        """
        n = self.cwdata.n_obs
        mask = np.ones(n, dtype=bool)
        logger.info(f"Fitting crosswalk model on {n:,} matched pairs...")
        theta, converged = self._fit_subset(mask)

        n_keep = math.ceil(self.params.inlier_pct * n - 1e-9)
        if n_keep < n:
            logger.info(f"Robust trimming: retaining {n_keep:,} of {n:,} pairs")
            for iteration in range(self.params.max_trim_iter):
                new_mask = self._select_inliers(theta, n_keep)
                if np.array_equal(new_mask, mask):
                    logger.info(f"  Inlier set stable after {iteration} refits")
                    break
                mask = new_mask
                self._check_identifiable(mask)
                theta, converged = self._fit_subset(mask, start=theta)
            else:
                logger.warning(
                    f"Inlier set still changing after {self.params.max_trim_iter} refits"
                )

        beta, gamma = theta[:-1], float(theta[-1])
        standard_errors = self._standard_errors(mask, gamma)

        fixed_effects = [
            FixedEffect(
                name=name,
                term=term,
                definition=definition,
                estimate=float(estimate),
                standard_error=float(se)
            )
            for name, term, definition, estimate, se in zip(
                self.coef_names, self.coef_terms, self.coef_definitions, beta, standard_errors
            )
        ]

        registry = sorted(set(self.cwdata.definition_registry) | {self.gold_definition})
        fitted = FittedModel(
            fixed_effects=fixed_effects,
            heterogeneity_variance=gamma,
            gold_definition=self.gold_definition,
            definition_registry=registry,
            transform_kind=self.params.transform,
            delimiter=self.cwdata.delimiter,
            terms=list(self.params.terms),
            covariate_ranges=self.covariate_ranges,
            inlier_mask=mask.tolist(),
            n_observations=n,
            converged=converged
        )
        logger.info(fitted.get_summary())
        return fitted

    def _standard_errors(self, mask: np.ndarray, gamma: float) -> np.ndarray:
        groups, n_groups = _compact_groups(self.cwdata.group_index[mask])
        info = fisher_information(
            self.X[mask], self.cwdata.obs_se[mask] ** 2, gamma, groups, n_groups
        )
        cov = np.linalg.pinv(info)
        return np.sqrt(np.clip(np.diag(cov), 0.0, None))


def fit_crosswalk(
    cwdata: CWData,
    gold_definition: str,
    transform: str = 'logit',
    terms: Optional[Sequence[CovariateTerm]] = None,
    order_priors: Optional[Sequence] = None,
    inlier_pct: float = 1.0,
    **kwargs
) -> FittedModel:
    """
    Convenience wrapper: build FitParams, construct CWModel and fit.

    Example:
        >>> fitted = fit_crosswalk(data, 'measured', order_priors=[('selfreport', 'survey')])
    """
    params = FitParams(
        gold_definition=gold_definition,
        transform=transform,
        terms=list(terms) if terms is not None else [CovariateTerm(name=INTERCEPT)],
        order_priors=[OrderPrior.from_pair(p) for p in (order_priors or [])],
        inlier_pct=inlier_pct,
        **kwargs
    )
    return CWModel(cwdata, params).fit()
