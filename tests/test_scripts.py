"""
Sanity tests for the inclination_table script.
"""

import importlib.util
import pathlib

import numpy as np
import pytest

pytest.importorskip("cyclopts")
pytest.importorskip("matplotlib")
pytest.importorskip("tqdm")
xr = pytest.importorskip("xarray")

SCRIPT = pathlib.Path(__file__).parents[1] / "scripts" / "inclination_table.py"


@pytest.fixture(scope="module")
def script():
    loader_spec = importlib.util.spec_from_file_location("inclination_table", SCRIPT)
    module = importlib.util.module_from_spec(loader_spec)
    loader_spec.loader.exec_module(module)
    return module


def test_build_dataset_layout(script):
    """One row per inclination, one column per ragged (l, m, p) entry."""
    ds = script.build_dataset(6, [30.0, 60.0], derivatives=True)
    assert ds["F"].shape == (2, 140)
    assert ds["dF"].shape == (2, 140)
    assert int(ds.l.max()) == 6
    np.testing.assert_array_equal(ds.k.values, ds.l.values - 2 * ds.p.values)


def test_build_dataset_values_finite(script):
    ds = script.build_dataset(10, [45.0])
    assert "dF" not in ds
    assert np.all(np.isfinite(ds["F"].values))
    # F_000 = 1
    assert float(ds["F"].values[0, 0]) == pytest.approx(1.0, abs=1e-14)


def test_run_uses_default_inclination(script, tmp_path):
    """Without --inclination the table is built at I = 89 deg."""
    pytest.importorskip("netCDF4")
    script.run_inclination_table(l_max=4, output_dir=tmp_path)
    script.run_inclination_table(l_max=4, output_dir=tmp_path)
    with xr.open_dataset(tmp_path / "flmp_lmax4.nc") as ds:
        np.testing.assert_array_equal(ds.inclination.values, [89.0])
        assert ds["F"].shape == (1, 55)
