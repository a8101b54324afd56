"""
Tests for posterior summaries and parameter indexing.
"""

import numpy as np
import pytest

from tandem.core.indexing import (
    element_names,
    flatten_draws,
    parse_parameter_name,
    select_parameter,
)
from tandem.errors import UnknownParameter
from tandem.summary import (
    ParameterSummary,
    check_ci,
    interval_bounds,
    summarize,
    summarize_array,
    summary_table,
)

# --------------------------------------------------------------------------
# Fixtures
# --------------------------------------------------------------------------


@pytest.fixture
def draws():
    rng = np.random.default_rng(11)
    return {
        "p10": rng.beta(2.0, 60.0, size=(4, 500)),
        "mu": rng.gamma(3.0, 1.0, size=(4, 500, 5)),
        "alpha": rng.normal([0.5, -1.0], 0.2, size=(4, 500, 2)),
    }


@pytest.fixture
def labels():
    return {"alpha": ("intercept", "depth")}


# --------------------------------------------------------------------------
# Indexing
# --------------------------------------------------------------------------


def test_parse_parameter_name():
    assert parse_parameter_name("p10") == ("p10", None)
    assert parse_parameter_name("mu[3]") == ("mu", (3,))
    assert parse_parameter_name("alpha[depth]") == ("alpha", ("depth",))


@pytest.mark.parametrize("query", ["mu[", "3mu", "mu[]", ""])
def test_parse_malformed_names(query):
    with pytest.raises(UnknownParameter):
        parse_parameter_name(query)


def test_element_names():
    assert element_names("p10", ()) == ["p10"]
    assert element_names("alpha", (2,)) == ["alpha[0]", "alpha[1]"]


def test_select_by_index_and_label(draws, labels):
    np.testing.assert_array_equal(
        select_parameter(draws, "mu[2]"), draws["mu"][:, :, 2]
    )
    np.testing.assert_array_equal(
        select_parameter(draws, "alpha[depth]", labels), draws["alpha"][:, :, 1]
    )


@pytest.mark.parametrize("query", ["beta", "mu[5]", "mu[0,1]", "alpha[shade]"])
def test_select_unknown(draws, labels, query):
    with pytest.raises(UnknownParameter) as exc_info:
        select_parameter(draws, query, labels)
    # Query-local errors list what is available
    assert "p10" in exc_info.value.available


def test_flatten_draws(draws):
    flat = flatten_draws(draws)
    assert list(flat)[:3] == ["p10", "mu[0]", "mu[1]"]
    assert all(arr.shape == (4, 500) for arr in flat.values())


# --------------------------------------------------------------------------
# summarize
# --------------------------------------------------------------------------


def test_summarize_scalar(draws):
    s = summarize(draws, "p10")
    assert isinstance(s, ParameterSummary)
    assert s.parameter == "p10"
    assert s.lower < s.mean < s.upper
    np.testing.assert_allclose(s.mean, draws["p10"].mean())
    assert s.rhat < 1.01
    assert s.ess > 400


@pytest.mark.parametrize("name", ["p10", "mu[0]", "mu[4]", "alpha[1]"])
def test_intervals_nest(draws, name):
    inner = summarize(draws, name, ci=0.5)
    middle = summarize(draws, name, ci=0.8)
    outer = summarize(draws, name, ci=0.95)
    assert outer.lower <= middle.lower <= inner.lower
    assert inner.upper <= middle.upper <= outer.upper
    assert outer.lower <= outer.mean <= outer.upper


def test_interval_contains_mean_of_skewed_draws():
    """A single extreme draw pulls the mean past every central quantile."""
    spike = np.zeros((4, 100))
    spike[2, 37] = 1e6
    skewed = {"mu": spike[..., None]}

    previous = None
    for ci in (0.5, 0.8, 0.95):
        s = summarize(skewed, "mu[0]", ci=ci)
        assert s.mean == pytest.approx(2500.0)
        assert s.lower <= s.mean <= s.upper
        if previous is not None:
            assert s.lower <= previous.lower and previous.upper <= s.upper
        previous = s


def test_summarize_by_label(draws, labels):
    by_label = summarize(draws, "alpha[depth]", labels=labels)
    by_index = summarize(draws, "alpha[1]")
    assert by_label.mean == by_index.mean
    assert by_label.parameter == "alpha[depth]"


def test_summarize_vector_requires_index(draws):
    with pytest.raises(UnknownParameter):
        summarize(draws, "mu")


def test_summarize_unknown_does_not_affect_other_queries(draws):
    with pytest.raises(KeyError):
        summarize(draws, "phi")
    assert summarize(draws, "mu[1]").parameter == "mu[1]"


@pytest.mark.parametrize("ci", [0.0, 1.0, 1.5])
def test_summarize_invalid_ci(draws, ci):
    with pytest.raises(ValueError):
        summarize(draws, "p10", ci=ci)


def test_interval_helpers():
    assert interval_bounds(0.9) == pytest.approx((0.05, 0.95))
    check_ci(0.5)
    with pytest.raises(ValueError):
        check_ci(1.0)
    x = np.arange(400.0).reshape(4, 100)
    s = summarize_array("x", x, 0.5)
    assert isinstance(s, ParameterSummary)
    assert s.lower == pytest.approx(np.quantile(x, 0.25))
    assert s.upper == pytest.approx(np.quantile(x, 0.75))


# --------------------------------------------------------------------------
# summary_table
# --------------------------------------------------------------------------


def test_summary_table(draws):
    table = summary_table(draws, ci=0.9)
    assert len(table) == 1 + 5 + 2
    assert set(table.columns) >= {"mean", "sd", "lower", "upper", "ess", "rhat"}
    assert (table["lower"] <= table["upper"]).all()
    np.testing.assert_allclose(table.loc["mu[3]", "mean"], draws["mu"][..., 3].mean())


def test_summary_table_subset(draws):
    table = summary_table(draws, parameters=["alpha"])
    assert list(table.index) == ["alpha[0]", "alpha[1]"]
    with pytest.raises(UnknownParameter):
        summary_table(draws, parameters=["phi"])
