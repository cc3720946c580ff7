import numpy as np
import pandas as pd
import pytest

from shiftshare.core.residualize import residualize_shock, trend_design
from shiftshare.exceptions import NumericalDegeneracyError, SchemaViolationError

@pytest.fixture
def shift_series():
    rng = np.random.default_rng(7)
    n = 60
    time = pd.Series(np.repeat([1, 2, 3], n // 3))
    g = pd.Series(0.3 * time.to_numpy() + rng.standard_normal(n))
    w = pd.Series(rng.uniform(0.1, 2.0, size=n))
    return g, time, w

def test_linear_trend_residuals_orthogonal(shift_series):
    g, time, w = shift_series
    res = residualize_shock(g, time, w, trend="linear", label="1")
    assert res.name == "g_res_1"
    assert np.sum(w * res) == pytest.approx(0.0, abs=1e-10)
    assert np.sum(w * time * res) == pytest.approx(0.0, abs=1e-10)

def test_fe_trend_demeans_each_period(shift_series):
    g, time, w = shift_series
    res = residualize_shock(g, time, w, trend="fe")
    for t in (1, 2, 3):
        mask = time == t
        assert np.sum(w[mask] * res[mask]) == pytest.approx(0.0, abs=1e-10)

def test_no_trend_removes_weighted_mean(shift_series):
    g, time, w = shift_series
    res = residualize_shock(g, time, w, trend="none")
    expected = g - np.average(g, weights=w)
    assert np.allclose(res, expected)

def test_missing_weights_give_nan_residuals(shift_series):
    g, time, w = shift_series
    w = w.copy()
    w.iloc[:5] = np.nan
    res = residualize_shock(g, time, w, label="2")
    assert res.iloc[:5].isna().all()
    assert res.iloc[5:].notna().all()
    full = residualize_shock(g.iloc[5:], time.iloc[5:], w.iloc[5:], label="2")
    assert np.allclose(res.iloc[5:], full)

def test_separate_weights_give_separate_residuals(shift_series):
    g, time, w = shift_series
    r1 = residualize_shock(g, time, w, label="1")
    r2 = residualize_shock(g, time, w ** 2, label="2")
    assert not np.allclose(r1, r2)

def test_all_zero_weights_name_the_weight_set(shift_series):
    g, time, w = shift_series
    with pytest.raises(NumericalDegeneracyError, match="weight-set 2"):
        residualize_shock(g, time, w * 0.0, label="2")

def test_single_period_linear_trend_points_to_alternatives(shift_series):
    g, _, w = shift_series
    time = pd.Series(np.ones(len(g), dtype=int))
    with pytest.raises(NumericalDegeneracyError, match="weight-set 1: .*trend='fe' or trend='none'"):
        residualize_shock(g, time, w, label="1")
    for trend in ("fe", "none"):
        res = residualize_shock(g, time, w, trend=trend, label="1")
        assert np.sum(w * res) == pytest.approx(0.0, abs=1e-10)

def test_single_exposed_period_is_flagged(shift_series):
    g, time, w = shift_series
    w = w.where(time == 2, 0.0)
    with pytest.raises(NumericalDegeneracyError, match="at least two periods"):
        residualize_shock(g, time, w, label="2")

def test_missing_shock_for_exposed_shift(shift_series):
    g, time, w = shift_series
    g = g.copy()
    g.iloc[3] = np.nan
    with pytest.raises(SchemaViolationError, match="shock g is missing"):
        residualize_shock(g, time, w, label="1")

def test_trend_design_shapes():
    time = pd.Series([1, 1, 2, 3])
    assert trend_design(time, "linear").shape == (4, 2)
    assert trend_design(time, "fe").shape == (4, 3)
    assert trend_design(time, "none").shape == (4, 1)
    with pytest.raises(SchemaViolationError, match="numeric"):
        trend_design(pd.Series(["a", "b"]), "linear")
