"""Tests for linear constraints and the rows they emit."""
import math

import numpy as np
import pytest

import lazyilp as lp
from lazyilp.constraint import LinearConstraint, RowSense


def test_equality_emits_single_row():
    c = LinearConstraint([(0, 1.0), (1, 2.0)], lower=3.0, upper=3.0)
    rows = c.rows()
    assert c.is_equality
    assert len(rows) == 1
    assert rows[0].sense == RowSense.EQUAL
    assert rows[0].rhs == 3.0


def test_range_emits_two_rows():
    c = LinearConstraint([(0, 1.0)], lower=-1.0, upper=2.0)
    senses = [row.sense for row in c.rows()]
    assert senses == [RowSense.GREATER_EQUAL, RowSense.LESS_EQUAL]


def test_one_sided_emits_one_row():
    assert len(LinearConstraint([(0, 1.0)], upper=1.0).rows()) == 1
    assert len(LinearConstraint([(0, 1.0)], lower=1.0).rows()) == 1


def test_free_constraint_emits_no_rows():
    assert LinearConstraint([(0, 1.0)]).rows() == []


def test_from_arrays():
    c = LinearConstraint.from_arrays([0, 2], [1.5, -1.0], upper=4.0)
    assert c.indices == [0, 2]
    assert c.terms[0].coefficient == 1.5


def test_from_arrays_length_mismatch():
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint.from_arrays([0, 1], [1.0], upper=1.0)


@pytest.mark.parametrize(
    "lower, upper",
    [
        (2.0, 1.0),
        (math.nan, 1.0),
        (math.inf, math.inf),
    ],
)
def test_invalid_bounds(lower, upper):
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint([(0, 1.0)], lower=lower, upper=upper)


def test_invalid_terms():
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint([(0.5, 1.0)], upper=1.0)
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint([(True, 1.0)], upper=1.0)
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint([0, 1], upper=1.0)
    with pytest.raises(lp.ConfigurationError):
        LinearConstraint([(0, math.inf)], upper=1.0)


def test_check_indices():
    c = LinearConstraint([(0, 1.0), (3, 1.0)], upper=1.0)
    c.check_indices(4)
    with pytest.raises(lp.ConfigurationError):
        c.check_indices(3)


def test_is_satisfied_and_violation():
    c = LinearConstraint([(0, 1.0), (1, 1.0)], lower=1.0, upper=1.0)
    assert c.is_satisfied(np.array([1.0, 0.0]))
    assert not c.is_satisfied(np.array([1.0, 1.0]))
    assert c.rows()[0].violation(np.array([1.0, 1.0])) == pytest.approx(1.0)
