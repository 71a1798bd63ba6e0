"""
Unit Tests for the Crosswalk Model Fitter

Tests cover:
- Likelihood and gradient
- Design construction and coefficient naming
- Recovery of simulated definition biases
- Order priors and spline shape constraints
- Identifiability and knot checks
- Robust trimming
- FittedModel export and serialization
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
    FittedModel,
    InvalidKnotError,
    MalformedInputError,
    OrderPrior,
    SplineSpec,
    UnidentifiableModelError,
    fit_crosswalk,
)
from crosswalk.model import negative_log_likelihood, term_coefficient_names
from crosswalk.simulate import simulate_network
from crosswalk.spline import SplineBasis


@pytest.mark.unit
class TestLikelihood:
    """Test the marginal likelihood."""

    def _problem(self, rng):
        n = 12
        X = rng.normal(size=(n, 2))
        y = rng.normal(size=n)
        s2 = rng.uniform(0.1, 0.5, size=n)
        groups = np.repeat(np.arange(4), 3)
        return X, y, s2, groups

    def test_matches_dense_gaussian(self, rng):
        X, y, s2, groups = self._problem(rng)
        theta = np.array([0.3, -0.2, 0.4])

        V = np.diag(s2) + theta[-1] * (groups[:, None] == groups[None, :])
        r = y - X @ theta[:-1]
        _, logdet = np.linalg.slogdet(V)
        dense = 0.5 * (r @ np.linalg.solve(V, r) + logdet)

        value, _ = negative_log_likelihood(theta, X, y, s2, groups, 4)
        np.testing.assert_allclose(value, dense)

    def test_gradient_matches_finite_differences(self, rng):
        X, y, s2, groups = self._problem(rng)
        theta = np.array([0.3, -0.2, 0.4])

        _, grad = negative_log_likelihood(theta, X, y, s2, groups, 4)
        eps = 1e-6
        numeric = np.array([
            (negative_log_likelihood(theta + eps * e, X, y, s2, groups, 4)[0]
             - negative_log_likelihood(theta - eps * e, X, y, s2, groups, 4)[0]) / (2 * eps)
            for e in np.eye(3)
        ])
        np.testing.assert_allclose(grad, numeric, rtol=1e-5, atol=1e-7)


@pytest.mark.unit
class TestDesign:
    """Test design construction."""

    def test_coefficient_names(self, small_cwdata):
        params = FitParams(
            gold_definition='A',
            terms=[
                CovariateTerm(name='intercept'),
                CovariateTerm(name='age', spline=SplineSpec(knots=[20, 45, 65], degree=2)),
            ]
        )
        model = CWModel(small_cwdata, params)

        assert model.coef_names == [
            'intercept:B', 'intercept:C', 'age:spline_1', 'age:spline_2', 'age:spline_3'
        ]
        assert model.X.shape == (6, 5)
        assert model.covariate_ranges == {'age': (20.0, 65.0)}

    def test_linear_term_name(self):
        assert term_coefficient_names(CovariateTerm(name='age')) == ['age']

    def test_unknown_covariate_term(self, small_cwdata):
        params = FitParams(
            gold_definition='A',
            terms=[CovariateTerm(name='intercept'), CovariateTerm(name='sex')]
        )
        with pytest.raises(MalformedInputError, match="has no column"):
            CWModel(small_cwdata, params)

    def test_unknown_order_prior_label(self, small_cwdata):
        params = FitParams(gold_definition='A', order_priors=[OrderPrior(lower='B', upper='Z')])
        with pytest.raises(MalformedInputError, match="unknown definitions"):
            CWModel(small_cwdata, params)

    def test_order_prior_against_gold(self, small_cwdata):
        params = FitParams(gold_definition='A', order_priors=[OrderPrior(lower='A', upper='C')])
        model = CWModel(small_cwdata, params)
        np.testing.assert_array_equal(model.A_ineq, [[0.0, 1.0]])


@pytest.mark.integration
@pytest.mark.slow
class TestRecovery:
    """Test that fits recover simulated biases."""

    def test_intercepts_recovered(self, fitted_network, true_effects):
        assert fitted_network.intercept('B') == pytest.approx(true_effects['B'], abs=0.03)
        assert fitted_network.intercept('C') == pytest.approx(true_effects['C'], abs=0.03)
        assert fitted_network.intercept('A') == 0.0

    def test_gold_is_anchor(self, fitted_network):
        assert 'A' not in fitted_network.definition_effects()
        assert fitted_network.definition_registry == ['A', 'B', 'C']

    def test_standard_errors_positive(self, fitted_network):
        table = fitted_network.fixed_effects_table()
        assert (table['standard_error'] > 0).all()

    def test_heterogeneity_recovered(self):
        df = simulate_network(
            {'B': 0.5, 'C': -0.3}, gold='A', n_per_comparison=300,
            heterogeneity=0.04, n_groups=120, se_range=(0.05, 0.1), seed=11
        )
        data = CWData(df, ColumnRoles(group_id='group_id'))
        fitted = fit_crosswalk(data, 'A')

        assert fitted.heterogeneity_variance == pytest.approx(0.04, abs=0.02)
        assert fitted.intercept('B') == pytest.approx(0.5, abs=0.1)

    def test_no_heterogeneity_estimates_near_zero(self, fitted_network):
        assert fitted_network.heterogeneity_variance < 0.005

    def test_composite_definitions(self):
        comparisons = [('B', 'A'), ('C', 'A'), ('B_C', 'A'), ('B_C', 'B')]
        df = simulate_network(
            {'B': 0.4, 'C': 0.2}, gold='A', comparisons=comparisons,
            n_per_comparison=200, seed=5
        )
        fitted = fit_crosswalk(CWData(df), 'A')

        assert fitted.intercept('B') == pytest.approx(0.4, abs=0.03)
        assert fitted.intercept('C') == pytest.approx(0.2, abs=0.03)

    def test_linear_covariate(self):
        df = simulate_network(
            {'B': 0.5, 'C': -0.3}, gold='A', n_per_comparison=300,
            covariate_effects={'age': 0.01}, covariate_range=(20.0, 80.0), seed=3
        )
        data = CWData(df, ColumnRoles(covariates=['age']))
        fitted = fit_crosswalk(
            data, 'A', terms=[CovariateTerm(name='intercept'), CovariateTerm(name='age')]
        )
        assert fitted.effect('age').estimate == pytest.approx(0.01, abs=0.003)


@pytest.mark.unit
class TestConstraints:
    """Test order priors and spline shape constraints."""

    def test_order_prior_binds(self, network_cwdata):
        # Truth: B = 0.5 > C = -0.3; the prior forces B <= C
        fitted = fit_crosswalk(network_cwdata, 'A', order_priors=[('B', 'C')])
        assert fitted.intercept('B') <= fitted.intercept('C') + 1e-6

    def test_order_prior_with_gold(self, network_cwdata):
        # Forces B <= 0 although B = 0.5
        fitted = fit_crosswalk(network_cwdata, 'A', order_priors=[('B', 'A')])
        assert fitted.intercept('B') <= 1e-6

    def test_prior_against_gold_pins_coefficient(self, network_cwdata):
        fitted = fit_crosswalk(network_cwdata, 'A', order_priors=[('B', 'A')])
        assert fitted.intercept('B') <= 1e-9
        assert fitted.intercept('B') == pytest.approx(0.0, abs=1e-3)

    def test_constraint_violation_and_projection(self, network_cwdata):
        model = CWModel(network_cwdata, FitParams(
            gold_definition='A', order_priors=[OrderPrior(lower='B', upper='C')]
        ))
        beta = np.array([0.5, -0.3])
        assert model.constraint_violation(beta) == pytest.approx(0.8)

        projected = model._project_feasible(beta)
        np.testing.assert_allclose(projected, [0.1, 0.1], atol=1e-6)
        assert model.constraint_violation(projected) <= 1e-9

    def test_optimizer_starts_feasible(self, network_cwdata):
        model = CWModel(network_cwdata, FitParams(
            gold_definition='A', order_priors=[OrderPrior(lower='B', upper='A')]
        ))
        start = model._initial_values(np.ones(network_cwdata.n_obs, dtype=bool))
        assert model.constraint_violation(start[:-1]) <= 1e-9
        assert start[-1] >= 0.0

    def test_satisfied_prior_changes_nothing(self, network_cwdata, fitted_network):
        fitted = fit_crosswalk(network_cwdata, 'A', order_priors=[('C', 'B')])
        assert fitted.intercept('B') == pytest.approx(fitted_network.intercept('B'), abs=1e-3)

    def test_monotone_spline(self):
        df = simulate_network(
            {'B': 0.5}, gold='A', n_per_comparison=400,
            covariate_effects={'age': -0.002}, covariate_range=(0.0, 100.0), seed=8
        )
        data = CWData(df, ColumnRoles(covariates=['age']))
        spec = SplineSpec(knots=[0, 50, 100], degree=2, monotonicity='increasing')
        fitted = fit_crosswalk(
            data, 'A', terms=[CovariateTerm(name='intercept'), CovariateTerm(name='age', spline=spec)]
        )

        basis = SplineBasis(spec)
        beta = np.array([e.estimate for e in fitted.term_effects('age')])
        curve = basis.design(np.linspace(0, 100, 21)) @ beta
        assert np.all(np.diff(curve) >= -1e-6)


@pytest.mark.unit
@pytest.mark.edge_case
class TestIdentifiability:
    """Test rejection of unidentifiable specifications."""

    def test_declared_definition_without_comparisons(self, small_comparison_df, small_roles):
        data = CWData(small_comparison_df, small_roles, definitions=['D'])
        with pytest.raises(UnidentifiableModelError) as exc_info:
            CWModel(data, FitParams(gold_definition='A'))
        assert exc_info.value.coefficients == ['intercept:D']

    def test_network_disconnected_from_gold(self):
        df = pd.DataFrame({
            'alt_definition': ['B', 'B', 'B'],
            'ref_definition': ['C', 'C', 'C'],
            'diff_value': [0.1, 0.2, 0.15],
            'diff_se': [0.1, 0.1, 0.1],
        })
        data = CWData(df)
        with pytest.raises(UnidentifiableModelError) as exc_info:
            CWModel(data, FitParams(gold_definition='A'))
        assert set(exc_info.value.coefficients) == {'intercept:B', 'intercept:C'}

    def test_collinear_covariate(self, small_comparison_df):
        df = small_comparison_df.assign(age2=small_comparison_df['age'] * 2)
        data = CWData(df, ColumnRoles(covariates=['age', 'age2']))
        params = FitParams(
            gold_definition='A',
            terms=[CovariateTerm(name='intercept'), CovariateTerm(name='age'), CovariateTerm(name='age2')]
        )
        with pytest.raises(UnidentifiableModelError):
            CWModel(data, params)

    def test_knots_not_spanning_covariate(self, small_cwdata):
        params = FitParams(
            gold_definition='A',
            terms=[
                CovariateTerm(name='intercept'),
                CovariateTerm(name='age', spline=SplineSpec(knots=[30, 50, 65], degree=2)),
            ]
        )
        with pytest.raises(InvalidKnotError):
            CWModel(small_cwdata, params)


@pytest.mark.unit
@pytest.mark.edge_case
class TestDefinitionLabels:
    """Test labels that contain the composite delimiter."""

    @pytest.fixture
    def lab_test_df(self, network_df):
        return network_df.assign(ref_definition=network_df['ref_definition'].replace('A', 'lab_test'))

    def test_composite_gold_rejected(self, lab_test_df):
        data = CWData(lab_test_df)
        assert 'lab' in data.definition_registry

        with pytest.raises(MalformedInputError) as exc_info:
            CWModel(data, FitParams(gold_definition='lab_test'))
        assert exc_info.value.field == 'gold_definition'
        assert "not an atomic label" in str(exc_info.value)

    def test_other_delimiter_keeps_underscores(self, lab_test_df, true_effects):
        data = CWData(lab_test_df, delimiter='+')
        fitted = fit_crosswalk(data, 'lab_test')

        assert fitted.definition_registry == ['B', 'C', 'lab_test']
        assert fitted.intercept('B') == pytest.approx(true_effects['B'], abs=0.03)

    def test_order_prior_on_split_label_is_unknown(self):
        df = pd.DataFrame({
            'alt_definition': ['self_report', 'survey', 'self_report'],
            'ref_definition': ['measured', 'measured', 'survey'],
            'diff_value': [-0.4, -0.2, -0.2],
            'diff_se': [0.1, 0.1, 0.1],
        })
        params = FitParams(
            gold_definition='measured',
            order_priors=[OrderPrior(lower='self_report', upper='survey')]
        )
        with pytest.raises(MalformedInputError, match="unknown definitions"):
            CWModel(CWData(df), params)
        assert 'self_report' in CWData(df, delimiter=None).definition_registry


@pytest.mark.unit
class TestTrimming:
    """Test robust trimming."""

    def _with_outliers(self, network_df):
        df = network_df.copy()
        outliers = df.index[(df['alt_definition'] == 'B') & (df['ref_definition'] == 'A')][:30]
        df.loc[outliers, 'diff_value'] += 5.0
        return df, outliers

    def test_outliers_trimmed(self, network_df, true_effects):
        df, outliers = self._with_outliers(network_df)
        fitted = fit_crosswalk(CWData(df), 'A', inlier_pct=0.95)

        mask = np.array(fitted.inlier_mask)
        assert mask.sum() == 855
        assert not mask[outliers].any()
        assert fitted.intercept('B') == pytest.approx(true_effects['B'], abs=0.03)

    def test_untrimmed_fit_is_pulled(self, network_df, true_effects):
        df, _ = self._with_outliers(network_df)
        fitted = fit_crosswalk(CWData(df), 'A')

        assert all(fitted.inlier_mask)
        assert fitted.intercept('B') > true_effects['B'] + 0.05


@pytest.mark.unit
class TestFittedModel:
    """Test the fitted model value object."""

    def test_fixed_effects_table(self, fitted_with_age):
        table = fitted_with_age.fixed_effects_table()

        assert list(table.columns) == ['name', 'term', 'definition', 'estimate', 'standard_error']
        assert table['name'].tolist() == ['intercept:B', 'intercept:C', 'age']
        assert table['definition'].tolist()[:2] == ['B', 'C']

    def test_json_round_trip(self, fitted_with_age, tmp_path):
        path = tmp_path / 'model.json'
        fitted_with_age.to_json(str(path))
        loaded = FittedModel.from_json(str(path))

        assert loaded.fixed_effects == fitted_with_age.fixed_effects
        assert loaded.terms == fitted_with_age.terms
        assert loaded.covariate_ranges == fitted_with_age.covariate_ranges
        assert loaded.transform_kind == 'logit'

    def test_unknown_effect(self, fitted_with_age):
        with pytest.raises(KeyError):
            fitted_with_age.effect('sex')
        with pytest.raises(KeyError):
            fitted_with_age.intercept('Z')

    def test_gold_must_be_registered(self, fitted_with_age):
        data = fitted_with_age.to_dict()
        data['gold_definition'] = 'Z'
        with pytest.raises(ValueError, match="missing from definition_registry"):
            FittedModel.from_dict(data)

    def test_summary(self, fitted_with_age):
        summary = fitted_with_age.get_summary()
        assert "gold = 'A'" in summary
        assert "intercept:B" in summary

    def test_model_is_frozen(self, fitted_with_age):
        with pytest.raises(ValueError):
            fitted_with_age.heterogeneity_variance = 1.0
