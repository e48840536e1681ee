"""
Inclination Function Tables
===========================

This script tabulates fully-normalized inclination functions F_bar_lmp(I)
(and optionally dF_bar_lmp/dI) for one or more inclinations and stores them
as a NetCDF file.

Method:
-------
For each inclination I, `InclinationFunctions` samples the associated Legendre
functions around the great circle of inclination I, analyses the unit
disturbing potential of every (l, m) term with a real FFT, and maps the
cosine / sine coefficients onto the p-index (k = l - 2p) layout.

Output:
-------
An `xarray.Dataset` with dimensions (inclination, entry), where `entry` runs
over the ragged (l, m, p) layout and carries l, m, p and k as coordinates:

    F   (inclination, entry)   F_bar_lmp(I)
    dF  (inclination, entry)   dF_bar_lmp/dI   (with --derivatives)

Usage:
------
Example:
  python scripts/inclination_table.py --l-max 60 --inclination 89.0 --inclination 97.4 --derivatives
"""

import pathlib
from typing import Annotated

import cyclopts
import jax
from loguru import logger
import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm
import xarray as xr

from gravharmx._src.inclination import InclinationFunctions
from gravharmx._src.indexing import RaggedIndex

# JAX configuration
jax.config.update("jax_enable_x64", True)

app = cyclopts.App()


def build_dataset(
    l_max: int, inclinations_deg: list[float], derivatives: bool = False
) -> xr.Dataset:
    """Computes inclination functions for every inclination and packs them."""
    l, m, p = RaggedIndex(l_max).entries()
    values, dvalues = [], []
    for inclination in tqdm(inclinations_deg, desc="Inclinations"):
        flmp = InclinationFunctions(l_max, np.deg2rad(inclination), derivatives)
        values.append(np.asarray(flmp.values))
        if derivatives:
            dvalues.append(np.asarray(flmp.derivatives))

    data_vars = {"F": (("inclination", "entry"), np.stack(values))}
    if derivatives:
        data_vars["dF"] = (("inclination", "entry"), np.stack(dvalues))

    return xr.Dataset(
        data_vars=data_vars,
        coords={
            "inclination": ("inclination", np.asarray(inclinations_deg, dtype=float)),
            "l": ("entry", l),
            "m": ("entry", m),
            "p": ("entry", p),
            "k": ("entry", l - 2 * p),
        },
        attrs={
            "description": "Fully-normalized inclination functions F_bar_lmp(I)",
            "l_max": l_max,
            "inclination_units": "degrees",
            "derivative_units": "per radian",
        },
    )


@app.default
def run_inclination_table(
    l_max: Annotated[
        int, cyclopts.Parameter("--l-max", help="Maximum degree of the tables.")
    ] = 60,
    inclination: Annotated[
        list[float] | None,
        cyclopts.Parameter(
            "--inclination", help="Inclination in degrees (repeatable). Default 89."
        ),
    ] = None,
    derivatives: Annotated[
        bool,
        cyclopts.Parameter("--derivatives", help="Also tabulate dF/dI."),
    ] = False,
    output_dir: Annotated[
        pathlib.Path | None,
        cyclopts.Parameter("--output-dir", help="Directory to save the output NetCDF."),
    ] = None,
    plot_degree: Annotated[
        int | None,
        cyclopts.Parameter("--plot-degree", help="Plot |F_lmk| against k for this degree."),
    ] = None,
    plot_order: Annotated[
        int,
        cyclopts.Parameter("--plot-order", help="Order m used with --plot-degree."),
    ] = 0,
):
    """Tabulates inclination functions and saves them as NetCDF."""
    if inclination is None:
        inclination = [89.0]
    logger.enable("gravharmx")
    logger.info("=" * 60)
    logger.info("Inclination Function Tables")
    logger.info("=" * 60)
    logger.info(f"  - l_max: {l_max}")
    logger.info(f"  - inclinations [deg]: {inclination}")
    logger.info(f"  - derivatives: {derivatives}")

    ds = build_dataset(l_max, inclination, derivatives)
    logger.success(
        f"Dataset created: inclination={ds.sizes['inclination']}, entry={ds.sizes['entry']}"
    )

    if output_dir is None:
        output_dir = pathlib.Path("./output/inclination_table")
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"flmp_lmax{l_max}.nc"
    ds.to_netcdf(output_path)
    logger.success(f"Output saved to: {output_path}")

    if plot_degree is not None:
        logger.info("Generating plots...")
        plot_spectrum(ds, plot_degree, plot_order)
        logger.success("Plots generated successfully!")
        plt.show()


def plot_spectrum(ds: xr.Dataset, l: int, m: int):
    """Plots |F_lmk| against k for one (l, m) at every inclination."""
    sel = ds.where((ds.l == l) & (ds.m == m), drop=True)
    fig, ax = plt.subplots(figsize=(8, 5))
    for inclination in ds.inclination.values:
        F = sel["F"].sel(inclination=inclination)
        ax.semilogy(sel.k, np.abs(F), marker="o", label=f"I = {inclination:.2f} deg")
    ax.set_xlabel("k = l - 2p")
    ax.set_ylabel(r"$|\bar{F}_{lmk}|$")
    ax.set_title(f"Inclination functions, l = {l}, m = {m}")
    ax.legend()
    plt.tight_layout()


if __name__ == "__main__":
    app()
