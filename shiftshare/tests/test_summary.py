import numpy as np
import pandas as pd
import pytest

from shiftshare.estimators.base import EstimationResult
from shiftshare.output.summary import coef_table, modelsummary


@pytest.fixture
def result():
    names = ["x", "x_interacted"]
    return EstimationResult(
        params=pd.Series([1.0, 0.5], index=names),
        se=pd.Series([0.25, 0.1], index=names),
        vcov=pd.DataFrame(np.diag([0.0625, 0.01]), index=names, columns=names),
        n_obs=120,
        model_info={"Estimator": "ShiftShareIV", "Shifts": 72, "Clusters": 12, "Trend": "linear"},
    )


def test_coef_table(result):
    table = coef_table(result)
    assert list(table.columns) == ["coef", "se", "t"]
    assert table.loc["x", "t"] == pytest.approx(4.0)
    assert table.loc["x_interacted", "t"] == pytest.approx(5.0)


def test_coef_table_without_se():
    res = EstimationResult(params=pd.Series([1.0], index=["x"]))
    assert list(coef_table(res).columns) == ["coef"]


def test_modelsummary_text(result):
    text = modelsummary(result)
    assert "x_interacted" in text
    assert "(0.25)" in text
    assert "ShiftShareIV" in text
    assert "Clusters" in text
    # no Unmatched entry in model_info, so no footer row
    assert "Unmatched" not in text


def test_modelsummary_side_by_side(result):
    text = modelsummary([result, result], model_names=["A", "B"])
    header = text.splitlines()[0]
    assert "A" in header and "B" in header


def test_modelsummary_latex(result):
    tex = modelsummary(result, output="latex")
    assert "\\toprule" in tex


def test_modelsummary_bad_arguments(result):
    with pytest.raises(ValueError, match="output"):
        modelsummary(result, output="html")
    with pytest.raises(ValueError, match="model_names"):
        modelsummary([result], model_names=["a", "b"])


def test_modelsummary_on_fit(panel):
    from shiftshare import ShiftShareIV

    text = modelsummary(ShiftShareIV(*panel).fit())
    assert "Shifts" in text
    assert "72" in text
