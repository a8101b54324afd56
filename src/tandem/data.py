"""
Survey data container and validation.

Traditional counts, qPCR attempts/successes, site covariates and (optionally)
gear types arrive as site-by-replicate matrices. Sites may have different
numbers of replicates, so rows are padded to a common width and the padding
is marked absent. Absent cells are accepted as ``NaN``, ``None`` or through
the mask of a ``numpy.ma.MaskedArray``; internally every matrix is stored as
a zero-filled value array plus an explicit boolean ``observed`` mask, so a
recorded zero is never confused with a missing replicate.
"""

import hashlib
import warnings
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import (
    CovariateScalingWarning,
    InvalidValue,
    MissingnessMismatch,
    ShapeMismatch,
)

# ==============================================================================
# Survey data container
# ==============================================================================


@dataclass(frozen=True)
class SurveyData:
    """
    Validated, read-only survey matrices.

    Instances are produced by :func:`validate_survey_data`; all arrays are
    flagged read-only so the same object can be shared across chains and
    across repeated fits.

    Parameters
    ----------
    count : np.ndarray, shape ``(S, R_max)``
        Traditional catch per site and replicate; absent cells hold 0.
    count_observed : np.ndarray of bool, shape ``(S, R_max)``
        ``True`` where ``count`` was recorded.
    pcr_n : np.ndarray of int, shape ``(S, W_max)``
        qPCR replicates attempted per water sample; absent cells hold 0.
    pcr_k : np.ndarray of int, shape ``(S, W_max)``
        qPCR replicates positive per water sample; absent cells hold 0.
    pcr_observed : np.ndarray of bool, shape ``(S, W_max)``
        ``True`` where ``pcr_n``/``pcr_k`` were recorded.
    site_cov : np.ndarray, shape ``(S, P)``
        Site covariates (``P`` may be 0).
    covariate_names : tuple of str
        Column names of ``site_cov``.
    count_type : np.ndarray of int, optional, shape ``(S, R_max)``
        Zero-based gear-type index of each count cell.
    """

    count: np.ndarray
    count_observed: np.ndarray
    pcr_n: np.ndarray
    pcr_k: np.ndarray
    pcr_observed: np.ndarray
    site_cov: np.ndarray
    covariate_names: Tuple[str, ...] = ()
    count_type: Optional[np.ndarray] = field(default=None, repr=False)

    # --------------------------------------------------------------------------
    # Shapes
    # --------------------------------------------------------------------------

    @property
    def n_sites(self) -> int:
        """Number of survey sites."""
        return self.count.shape[0]

    @property
    def n_covariates(self) -> int:
        """Number of covariate columns."""
        return self.site_cov.shape[1]

    @property
    def n_count_obs(self) -> int:
        """Number of observed traditional cells."""
        return int(self.count_observed.sum())

    @property
    def n_pcr_obs(self) -> int:
        """Number of observed water samples."""
        return int(self.pcr_observed.sum())

    @property
    def n_gear(self) -> int:
        """Number of distinct gear types (1 when no gear matrix is given)."""
        if self.count_type is None or self.n_count_obs == 0:
            return 1
        return int(self.count_type[self.count_observed].max()) + 1

    @property
    def replicates_per_site(self) -> np.ndarray:
        """Number of valid traditional replicates per site."""
        return self.count_observed.sum(axis=1)

    @property
    def samples_per_site(self) -> np.ndarray:
        """Number of valid water samples per site."""
        return self.pcr_observed.sum(axis=1)

    # --------------------------------------------------------------------------
    # Flattened observed cells (row-major order)
    # --------------------------------------------------------------------------

    @property
    def count_site_index(self) -> np.ndarray:
        """Site index of every observed count cell."""
        return np.nonzero(self.count_observed)[0]

    @property
    def count_values(self) -> np.ndarray:
        """Values of the observed count cells."""
        return self.count[self.count_observed]

    @property
    def count_gear_index(self) -> np.ndarray:
        """Gear index of every observed count cell (all 0 without gears)."""
        if self.count_type is None:
            return np.zeros(self.n_count_obs, dtype=np.int32)
        return self.count_type[self.count_observed]

    @property
    def pcr_site_index(self) -> np.ndarray:
        """Site index of every observed water sample."""
        return np.nonzero(self.pcr_observed)[0]

    @property
    def pcr_n_values(self) -> np.ndarray:
        """qPCR attempts of the observed water samples."""
        return self.pcr_n[self.pcr_observed]

    @property
    def pcr_k_values(self) -> np.ndarray:
        """qPCR successes of the observed water samples."""
        return self.pcr_k[self.pcr_observed]

    # --------------------------------------------------------------------------

    def covariate_columns(self, names: Sequence[str]) -> np.ndarray:
        """Return the covariate sub-matrix for ``names`` (in that order)."""
        idx = [self.covariate_names.index(n) for n in names]
        return self.site_cov[:, idx]

    # --------------------------------------------------------------------------

    def observation_fingerprint(self) -> str:
        """Digest of the shapes, absence masks and observed values.

        Two fits can only be compared with leave-one-out when this digest is
        identical.
        """
        h = hashlib.sha1()
        for arr in (
            self.count_observed,
            self.pcr_observed,
            self.count_values,
            self.pcr_n_values,
            self.pcr_k_values,
        ):
            h.update(str(arr.shape).encode())
            h.update(np.ascontiguousarray(arr).tobytes())
        return h.hexdigest()


# ==============================================================================
# Conversion helpers
# ==============================================================================


def _as_masked(matrix, name: str) -> Tuple[np.ndarray, np.ndarray]:
    """Convert a matrix with absent cells into ``(values, observed)``.

    Parameters
    ----------
    matrix : array-like, DataFrame or MaskedArray
        Input matrix. ``NaN``, ``None`` and masked entries are absent.
    name : str
        Matrix name used in error messages.

    Returns
    -------
    values : np.ndarray of float64
        Zero-filled values.
    observed : np.ndarray of bool
        Observation mask.
    """
    if isinstance(matrix, pd.DataFrame):
        matrix = matrix.to_numpy(dtype=float, na_value=np.nan)

    if np.ma.isMaskedArray(matrix):
        mask = np.ma.getmaskarray(matrix)
        data = np.ma.getdata(matrix)
    else:
        data = np.asarray(matrix)
        mask = np.zeros(data.shape, dtype=bool)

    if data.dtype == object:
        mask = mask | np.vectorize(lambda v: v is None, otypes=[bool])(data)
        data = np.where(mask, np.nan, data)

    try:
        values = np.array(data, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidValue(
            f"Matrix '{name}' contains non-numeric entries.", matrix=name
        ) from exc

    if values.ndim != 2:
        raise ShapeMismatch(
            f"Matrix '{name}' must be two-dimensional (sites x replicates), "
            f"got shape {values.shape}.",
            matrix=name,
        )

    observed = ~(mask | np.isnan(values))
    return np.where(observed, values, 0.0), observed


# ------------------------------------------------------------------------------


def _first_cell(flags: np.ndarray) -> Tuple[int, int]:
    """Row-major ``(row, column)`` of the first ``True`` entry."""
    row, col = np.argwhere(flags)[0]
    return int(row), int(col)


# ------------------------------------------------------------------------------


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


def _check_finite(name: str, values: np.ndarray, observed: np.ndarray) -> None:
    """Raise ``InvalidValue`` at the first observed infinite cell."""
    bad = observed & ~np.isfinite(values)
    if bad.any():
        row, col = _first_cell(bad)
        raise InvalidValue(
            f"Matrix '{name}' has a non-finite value at row {row}, "
            f"column {col}.",
            matrix=name,
            row=row,
            column=col,
        )


# ==============================================================================
# Validation
# ==============================================================================


def _check_covariate_scaling(
    site_cov: np.ndarray, names: Sequence[str], tol: float
) -> None:
    """Warn about covariate columns that are not standardized."""
    n_sites = site_cov.shape[0]
    if n_sites < 2:
        return
    for j, name in enumerate(names):
        col = site_cov[:, j]
        # Binary indicators are exempt
        if np.isin(col, (0.0, 1.0)).all():
            continue
        mean = float(col.mean())
        sd = float(col.std(ddof=1))
        if abs(mean) > tol or abs(sd - 1.0) > tol:
            warnings.warn(
                f"Covariate '{name}' does not look standardized "
                f"(mean={mean:.3f}, sd={sd:.3f}). Center and scale "
                "continuous covariates before fitting.",
                CovariateScalingWarning,
                stacklevel=3,
            )


# ------------------------------------------------------------------------------


def validate_survey_data(
    count,
    pcr_n,
    pcr_k,
    site_cov=None,
    covariate_names: Optional[Sequence[str]] = None,
    count_type=None,
    scale_tol: float = 0.1,
) -> SurveyData:
    """
    Validate survey matrices and package them as :class:`SurveyData`.

    Parameters
    ----------
    count : array-like, shape ``(S, R_max)``
        Traditional catch per site and replicate.
    pcr_n : array-like, shape ``(S, W_max)``
        qPCR replicates attempted per site and water sample.
    pcr_k : array-like, shape ``(S, W_max)``
        qPCR replicates positive per site and water sample.
    site_cov : array-like or DataFrame, shape ``(S, P)``, optional
        Standardized site covariates. When a DataFrame is given its column
        names are used unless ``covariate_names`` is supplied.
    covariate_names : sequence of str, optional
        Names of the covariate columns. Defaults to ``cov_0 .. cov_{P-1}``.
    count_type : array-like, shape ``(S, R_max)``, optional
        Zero-based gear-type index of each count cell; must share the
        absence pattern of ``count``.
    scale_tol : float, default=0.1
        Tolerance on the covariate mean (vs 0) and standard deviation
        (vs 1) before a :class:`CovariateScalingWarning` is emitted.

    Returns
    -------
    SurveyData
        Read-only validated data.

    Raises
    ------
    ShapeMismatch
        Matrices disagree on the number of sites, or a paired matrix has
        a different number of columns.
    MissingnessMismatch
        ``pcr_n`` and ``pcr_k`` have different absent cells, a success count
        exceeds its attempt count, or the covariates have absent cells.
    InvalidValue
        Negative, infinite or non-integral values, or a site with no observations.
    """
    count_vals, count_obs = _as_masked(count, "count")
    n_vals, n_obs = _as_masked(pcr_n, "pcr_n")
    k_vals, k_obs = _as_masked(pcr_k, "pcr_k")

    n_sites = count_vals.shape[0]

    # (a) row counts
    for name, arr in (("pcr_n", n_vals), ("pcr_k", k_vals)):
        if arr.shape[0] != n_sites:
            raise ShapeMismatch(
                f"Matrix '{name}' has {arr.shape[0]} rows but 'count' has "
                f"{n_sites} sites.",
                matrix=name,
            )
    if n_vals.shape != k_vals.shape:
        raise ShapeMismatch(
            f"'pcr_n' has shape {n_vals.shape} but 'pcr_k' has shape "
            f"{k_vals.shape}.",
            matrix="pcr_k",
        )

    # (b) identical absence pattern in pcr_n / pcr_k
    if (n_obs != k_obs).any():
        row, col = _first_cell(n_obs != k_obs)
        raise MissingnessMismatch(
            f"'pcr_n' and 'pcr_k' disagree on absent cells at row {row}, "
            f"column {col}.",
            matrix="pcr_k",
            row=row,
            column=col,
        )

    # Observed cells must be finite before they are compared
    for name, vals, obs in (
        ("count", count_vals, count_obs),
        ("pcr_n", n_vals, n_obs),
        ("pcr_k", k_vals, k_obs),
    ):
        _check_finite(name, vals, obs)

    # (c) successes never exceed attempts
    exceeds = n_obs & (k_vals > n_vals)
    if exceeds.any():
        row, col = _first_cell(exceeds)
        raise MissingnessMismatch(
            f"'pcr_k' exceeds 'pcr_n' at row {row}, column {col} "
            f"({int(k_vals[row, col])} > {int(n_vals[row, col])}).",
            matrix="pcr_k",
            row=row,
            column=col,
        )

    # Value ranges
    for name, vals, obs in (
        ("count", count_vals, count_obs),
        ("pcr_n", n_vals, n_obs),
        ("pcr_k", k_vals, k_obs),
    ):
        bad = obs & (vals < 0)
        if bad.any():
            row, col = _first_cell(bad)
            raise InvalidValue(
                f"Matrix '{name}' has a negative value at row {row}, "
                f"column {col}.",
                matrix=name,
                row=row,
                column=col,
            )
    for name, vals, obs in (("pcr_n", n_vals, n_obs), ("pcr_k", k_vals, k_obs)):
        bad = obs & (vals != np.round(vals))
        if bad.any():
            row, col = _first_cell(bad)
            raise InvalidValue(
                f"Matrix '{name}' has a non-integer value at row {row}, "
                f"column {col}.",
                matrix=name,
                row=row,
                column=col,
            )

    empty = ~(count_obs.any(axis=1) | n_obs.any(axis=1))
    if empty.any():
        row = int(np.argmax(empty))
        raise InvalidValue(
            f"Site {row} has neither traditional nor eDNA observations.",
            matrix="count",
            row=row,
        )

    # (d) covariates
    if site_cov is None:
        cov = np.zeros((n_sites, 0))
        names: Tuple[str, ...] = ()
    else:
        if covariate_names is None and isinstance(site_cov, pd.DataFrame):
            covariate_names = [str(c) for c in site_cov.columns]
        cov, cov_obs = _as_masked(site_cov, "site_cov")
        if cov.shape[0] != n_sites:
            raise ShapeMismatch(
                f"Matrix 'site_cov' has {cov.shape[0]} rows but 'count' has "
                f"{n_sites} sites.",
                matrix="site_cov",
            )
        if not cov_obs.all():
            row, col = _first_cell(~cov_obs)
            raise MissingnessMismatch(
                f"'site_cov' has an absent cell at row {row}, column {col}; "
                "covariates must be complete.",
                matrix="site_cov",
                row=row,
                column=col,
            )
        _check_finite("site_cov", cov, cov_obs)
        if covariate_names is None:
            covariate_names = [f"cov_{j}" for j in range(cov.shape[1])]
        names = tuple(str(n) for n in covariate_names)
        if len(names) != cov.shape[1]:
            raise ShapeMismatch(
                f"{len(names)} covariate names given for {cov.shape[1]} "
                "covariate columns.",
                matrix="site_cov",
            )
        _check_covariate_scaling(cov, names, scale_tol)

    # Gear types
    gear = None
    if count_type is not None:
        gear_vals, gear_obs = _as_masked(count_type, "count_type")
        if gear_vals.shape != count_vals.shape:
            raise ShapeMismatch(
                f"'count_type' has shape {gear_vals.shape} but 'count' has "
                f"shape {count_vals.shape}.",
                matrix="count_type",
            )
        if (gear_obs != count_obs).any():
            row, col = _first_cell(gear_obs != count_obs)
            raise MissingnessMismatch(
                f"'count_type' and 'count' disagree on absent cells at row "
                f"{row}, column {col}.",
                matrix="count_type",
                row=row,
                column=col,
            )
        _check_finite("count_type", gear_vals, gear_obs)
        bad = gear_obs & ((gear_vals < 0) | (gear_vals != np.round(gear_vals)))
        if bad.any():
            row, col = _first_cell(bad)
            raise InvalidValue(
                f"'count_type' must hold non-negative integer gear indices; "
                f"row {row}, column {col} does not.",
                matrix="count_type",
                row=row,
                column=col,
            )
        gear = _readonly(gear_vals.astype(np.int32))

    return SurveyData(
        count=_readonly(count_vals),
        count_observed=_readonly(count_obs),
        pcr_n=_readonly(n_vals.astype(np.int32)),
        pcr_k=_readonly(k_vals.astype(np.int32)),
        pcr_observed=_readonly(n_obs),
        site_cov=_readonly(np.array(cov, dtype=np.float64)),
        covariate_names=names,
        count_type=gear,
    )
