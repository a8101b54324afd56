"""
Parameter-name indexing for posterior draw sets.

Draw sets map a base name (``"mu"``) to an array of shape
``(n_chains, n_draws, *param_shape)``. Queries address either the whole
parameter (``"p10"``) or one element (``"mu[3]"``, ``"alpha[1]"``). Elements
of parameters with labelled axes can also be addressed by label, e.g.
``"alpha[depth]"`` or ``"alpha[intercept]"``.
"""

import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import UnknownParameter

_NAME_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\[(.*)\])?\s*$")

Index = Tuple[Union[int, str], ...]

# ------------------------------------------------------------------------------


def element_names(name: str, shape: Tuple[int, ...]) -> List[str]:
    """Names of every scalar element of a parameter.

    Examples
    --------
    >>> element_names("p10", ())
    ['p10']
    >>> element_names("mu", (3,))
    ['mu[0]', 'mu[1]', 'mu[2]']
    """
    if len(shape) == 0:
        return [name]
    return [
        f"{name}[{','.join(str(i) for i in idx)}]" for idx in np.ndindex(*shape)
    ]


# ------------------------------------------------------------------------------


def parse_parameter_name(query: str) -> Tuple[str, Optional[Index]]:
    """Split ``"mu[3]"`` into ``("mu", (3,))``.

    Non-integer index parts are kept as strings (labels).

    Raises
    ------
    UnknownParameter
        If the query is not a well-formed parameter name.
    """
    match = _NAME_RE.match(query) if isinstance(query, str) else None
    if match is None:
        raise UnknownParameter(str(query))
    base, raw_index = match.groups()
    if raw_index is None:
        return base, None
    parts = [p.strip() for p in raw_index.split(",")]
    if any(p == "" for p in parts):
        raise UnknownParameter(query)
    index = tuple(int(p) if re.fullmatch(r"-?\d+", p) else p for p in parts)
    return base, index


# ------------------------------------------------------------------------------


def select_parameter(
    draws: Mapping[str, np.ndarray],
    query: str,
    labels: Optional[Mapping[str, Sequence[str]]] = None,
) -> np.ndarray:
    """Return the ``(n_chains, n_draws, ...)`` draws addressed by ``query``.

    Parameters
    ----------
    draws : mapping
        Draw set keyed by base parameter name.
    query : str
        Base name or indexed element name.
    labels : mapping, optional
        Axis labels for 1-D parameters (e.g. ``{"alpha": ("intercept",
        "depth")}``).

    Raises
    ------
    UnknownParameter
        If the base name is absent, the index has the wrong rank, or an
        index/label is out of range.
    """
    available = _available_names(draws)
    base, index = parse_parameter_name(query)
    if base not in draws:
        raise UnknownParameter(query, available)
    arr = np.asarray(draws[base])
    if index is None:
        return arr

    shape = arr.shape[2:]
    if len(index) != len(shape):
        raise UnknownParameter(query, available)

    resolved = []
    for axis, (idx, size) in enumerate(zip(index, shape)):
        if isinstance(idx, str):
            axis_labels = list((labels or {}).get(base, ()))
            if axis != 0 or idx not in axis_labels:
                raise UnknownParameter(query, available)
            idx = axis_labels.index(idx)
        if not 0 <= idx < size:
            raise UnknownParameter(query, available)
        resolved.append(idx)
    return arr[(slice(None), slice(None)) + tuple(resolved)]


# ------------------------------------------------------------------------------


def _available_names(draws: Mapping[str, np.ndarray]) -> List[str]:
    names: List[str] = []
    for name, arr in draws.items():
        names.extend(element_names(name, np.shape(arr)[2:]))
    return names


def flatten_draws(draws: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
    """Map every scalar element name to its ``(n_chains, n_draws)`` draws."""
    flat: Dict[str, np.ndarray] = {}
    for name, arr in draws.items():
        arr = np.asarray(arr)
        shape = arr.shape[2:]
        if len(shape) == 0:
            flat[name] = arr
            continue
        for elem, idx in zip(element_names(name, shape), np.ndindex(*shape)):
            flat[elem] = arr[(slice(None), slice(None)) + idx]
    return flat
