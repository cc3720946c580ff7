from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest


def pytest_configure() -> None:
    """Ensure the project root is on sys.path.

    Tests live inside the package (`shiftshare/tests`), so pytest may choose
    the package directory as rootdir. Importing the top-level package
    `shiftshare` then needs its parent directory on `sys.path`.
    """

    repo_root = Path(__file__).resolve().parents[2]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


# ---------------------------------------------------------------------
# Synthetic shift-share panels
# ---------------------------------------------------------------------

ORPHAN_INDUSTRY = "9990"


def _make_panel(
    seed: int = 42,
    *,
    n_regions: int = 40,
    times: tuple[int, ...] = (1, 2, 3),
    n_industries: int = 24,
    orphan: bool = False,
    covariate: str = "binary",
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Return (units, shares, shocks) for a two-endogenous shift-share design.

    Industry codes are 4-character strings; the leading three characters
    define 12 clusters. With ``orphan=True`` an extra industry is held only by
    regions whose covariate is zero, so it is absent under the interacted
    weight-set.
    """
    rng = np.random.default_rng(seed)
    industries = [f"{100 + i // 2}{i % 2}" for i in range(n_industries)]
    if covariate == "binary":
        cov = rng.integers(0, 2, size=n_regions).astype(float)
        cov[:2] = [0.0, 1.0]
    elif covariate == "constant":
        cov = np.ones(n_regions)
    else:
        cov = rng.uniform(0.5, 1.5, size=n_regions)

    g = {(n, t): rng.standard_normal() + 0.1 * t for n in industries for t in times}
    if orphan:
        for t in times:
            g[(ORPHAN_INDUSTRY, t)] = rng.standard_normal()

    share_rows = []
    unit_rows = []
    for r in range(n_regions):
        for t in times:
            s = rng.dirichlet(np.ones(n_industries)) * 0.8
            if orphan and cov[r] == 0.0:
                share_rows.append({"industry": ORPHAN_INDUSTRY, "region": r, "time": t, "share": 0.1})
            z = 0.0
            for n, val in zip(industries, s):
                share_rows.append({"industry": n, "region": r, "time": t, "share": float(val)})
                z += val * g[(n, t)]
            x = 2.0 * z + 0.3 * rng.standard_normal()
            y = 1.0 * x + 0.5 * x * cov[r] + 0.2 * rng.standard_normal()
            unit_rows.append(
                {
                    "region": r,
                    "time": t,
                    "y": y,
                    "x": x,
                    "weight": float(rng.uniform(0.5, 2.0)),
                    "cluster_id": r // 4,
                    "covariate": float(cov[r]),
                },
            )
    shocks = pd.DataFrame(
        [{"industry": n, "time": t, "g": val} for (n, t), val in g.items()],
    )
    return pd.DataFrame(unit_rows), pd.DataFrame(share_rows), shocks


@pytest.fixture
def make_panel():
    return _make_panel


@pytest.fixture
def panel():
    return _make_panel()


@pytest.fixture
def orphan_panel():
    return _make_panel(orphan=True)
