"""End-to-end tests of SolverSession with the built-in branch-and-cut backend."""
import math

import numpy as np
import pytest

import lazyilp as lp


def test_static_model():
    """max x0 + x1 s.t. x0 + x1 <= 1"""
    session = lp.SolverSession(sense=lp.MAXIMIZE)
    session.add_variables([1.0, 1.0])
    session.add_constraint([(0, 1.0), (1, 1.0)], upper=1.0)
    result = session.optimize()

    assert result.status == lp.SolverStatus.OPTIMAL
    assert session.objective() == pytest.approx(1.0)
    assert session.bound() == pytest.approx(1.0)
    assert session.gap() == pytest.approx(0.0, abs=1e-9)
    assert sorted([session.label(0), session.label(1)]) == [0.0, 1.0]


def test_lazy_constraint_model(pair_session, recording_callback):
    """Same model, but the constraint is only known to the callback."""

    def separate(cb, candidate):
        if cb.label(0) > 0.5 and cb.label(1) > 0.5:
            cb.add_lazy_constraint([(0, 1.0), (1, 1.0)], upper=1.0)

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session.optimize()

    assert pair_session.objective() == pytest.approx(1.0)
    assert pair_session.gap() == pytest.approx(0.0, abs=1e-9)
    assert pair_session.label(0) + pair_session.label(1) == pytest.approx(1.0)
    assert len(pair_session.lazy_constraints) >= 1
    assert [1.0, 1.0] in [list(c) for c in callback.candidates]
    assert callback.best_objective == pytest.approx(1.0)
    assert pair_session.result.stats.lazy_constraints >= 1


def test_lazy_constraints_persist_between_searches(pair_session, recording_callback):
    def separate(cb, candidate):
        if cb.label(0) > 0.5 and cb.label(1) > 0.5:
            cb.add_lazy_constraint([(0, 1.0), (1, 1.0)], upper=1.0)

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session.optimize()
    added = len(pair_session.lazy_constraints)

    pair_session.optimize()
    assert pair_session.objective() == pytest.approx(1.0)
    # The second search already knows the cut and never proposes [1, 1]
    assert len(pair_session.lazy_constraints) == added


def test_results_before_optimize_raise():
    session = lp.SolverSession()
    session.add_variables([1.0])
    with pytest.raises(lp.StateError):
        session.objective()
    with pytest.raises(lp.StateError):
        session.gap()
    with pytest.raises(lp.StateError):
        session.label(0)
    with pytest.raises(lp.StateError):
        session.status


def test_empty_model_rejected():
    with pytest.raises(lp.ConfigurationError):
        lp.SolverSession().optimize()


def test_variables_frozen_after_optimize():
    session = lp.SolverSession()
    session.add_variables([1.0])
    session.optimize()
    with pytest.raises(lp.ConfigurationError):
        session.add_variables([1.0])


def test_constraint_index_out_of_range():
    session = lp.SolverSession()
    session.add_variables([1.0, 1.0])
    with pytest.raises(lp.ConfigurationError):
        session.add_constraint([(2, 1.0)], upper=1.0)


def test_lazy_constraint_without_callback():
    session = lp.SolverSession()
    session.add_variables([1.0])
    with pytest.raises(lp.ScopeError):
        session.add_lazy_constraint([(0, 1.0)], upper=0.0)


def test_invalid_sense_and_backend():
    with pytest.raises(lp.ConfigurationError):
        lp.SolverSession(sense="maximise")
    session = lp.SolverSession(backend="cplex")
    session.add_variables([1.0])
    with pytest.raises(lp.ConfigurationError):
        session.optimize()


def test_minimize_with_covering_constraint():
    """min 3 x0 + 2 x1 + 4 x2 s.t. x0 + x1 + x2 >= 2"""
    session = lp.SolverSession()
    session.add_variables([3.0, 2.0, 4.0])
    session.add_constraint([(0, 1.0), (1, 1.0), (2, 1.0)], lower=2.0)
    session.optimize()
    assert session.objective() == pytest.approx(5.0)
    np.testing.assert_allclose(session.labels(), [1.0, 1.0, 0.0])


def test_equality_constraint_with_integers():
    session = lp.SolverSession()
    session.add_variables([1.0, 1.0], domain=lp.INTEGER, upper=10)
    session.add_constraint([(0, 2.0), (1, 3.0)], lower=12.0, upper=12.0)
    session.optimize()
    # 2*0 + 3*4 = 12 has the smallest sum
    assert session.objective() == pytest.approx(4.0)


def test_start_round_trip():
    session = lp.SolverSession(sense=lp.MAXIMIZE)
    session.add_variables([1.0, 2.0])
    session.add_constraint([(0, 1.0), (1, 1.0)], upper=1.0)
    session.set_start([1.0, 0.0])
    assert [v.start for v in session.variables] == [1.0, 0.0]
    session.optimize()
    assert session.objective() == pytest.approx(2.0)


def test_start_validation():
    session = lp.SolverSession()
    session.add_variables([1.0, 2.0])
    with pytest.raises(lp.ConfigurationError):
        session.set_start([1.0])
    with pytest.raises(lp.ConfigurationError):
        session.set_start([1.0, math.nan])


def test_set_parameters():
    session = lp.SolverSession()
    session.set_parameters(threads=4, relative_gap=0.01)
    session.set_parameters({"time_limit": 60})
    assert session.number_of_threads() == 4
    assert session.relative_gap() == 0.01
    assert session.absolute_gap() == 1e-10
    assert session.parameters.time_limit == 60.0
    with pytest.raises(lp.ConfigurationError):
        session.set_parameters(gap=0.1)


def test_heuristic_solution_is_used(recording_callback):
    """The heuristic proposes x = (0, 0, 1) after the first candidate."""
    session = lp.SolverSession(sense=lp.MAXIMIZE)
    session.add_variables([1.0, 1.0, 1.0])

    def separate(cb, candidate):
        if cb.label(0) + cb.label(1) + cb.label(2) > 1.5:
            cb.add_lazy_constraint([(0, 1.0), (1, 1.0), (2, 1.0)], upper=1.0)

    def complete(cb, relaxation):
        return [0.0, 0.0, 1.0]

    callback = recording_callback(session, separate=separate, complete=complete)
    session.set_callback(callback)
    session.optimize()

    assert session.objective() == pytest.approx(1.0)
    assert callback.heuristic_calls >= 1


def test_user_exception_aborts_search(pair_session, recording_callback):
    def separate(cb, candidate):
        raise ValueError("bad separation")

    pair_session.set_callback(recording_callback(pair_session, separate=separate))
    with pytest.raises(lp.SolverError) as excinfo:
        pair_session.optimize()
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert not pair_session.is_searching
    assert not pair_session.callback.is_active
    with pytest.raises(lp.StateError):
        pair_session.objective()


def test_static_constraint_during_search_rejected(pair_session, recording_callback):
    def separate(cb, candidate):
        cb.session.add_constraint([(0, 1.0)], upper=0.0)

    pair_session.set_callback(recording_callback(pair_session, separate=separate))
    with pytest.raises(lp.SolverError) as excinfo:
        pair_session.optimize()
    assert isinstance(excinfo.value.__cause__, lp.ConfigurationError)


def test_session_reuse_after_adding_constraint():
    session = lp.SolverSession(sense=lp.MAXIMIZE)
    session.add_variables([1.0, 1.0])
    session.optimize()
    assert session.objective() == pytest.approx(2.0)

    session.add_constraint([(0, 1.0), (1, 1.0)], upper=1.0)
    session.optimize()
    assert session.objective() == pytest.approx(1.0)


def test_infeasible_model():
    session = lp.SolverSession()
    session.add_variables([1.0, 1.0])
    session.add_constraint([(0, 1.0), (1, 1.0)], lower=3.0)
    result = session.optimize()
    assert result.status == lp.SolverStatus.INFEASIBLE
    assert not result.has_solution
    with pytest.raises(lp.StateError):
        session.objective()


def test_callback_best_values_after_search(pair_session, recording_callback):
    callback = recording_callback(pair_session)
    pair_session.set_callback(callback)
    pair_session.optimize()
    assert callback.best_objective == pytest.approx(2.0)
    assert callback.best_bound == pytest.approx(2.0)
    assert not callback.is_active


def test_optimal_start_comes_back_unchanged():
    """min x0 - x1 + 2 x2 - 3 x3 without constraints; the start is optimal."""
    session = lp.SolverSession()
    session.add_variables([1.0, -1.0, 2.0, -3.0])
    session.set_start([0.0, 1.0, 0.0, 1.0])
    session.optimize()

    assert [session.label(i) for i in range(4)] == [0.0, 1.0, 0.0, 1.0]
    np.testing.assert_array_equal(session.labels(), [0.0, 1.0, 0.0, 1.0])
    assert session.objective() == pytest.approx(-4.0)


def test_optimal_start_goes_through_separation(recording_callback):
    session = lp.SolverSession()
    session.add_variables([1.0, -1.0, 2.0, -3.0])
    session.set_start([0.0, 1.0, 0.0, 1.0])
    callback = recording_callback(session)
    session.set_callback(callback)
    session.optimize()

    np.testing.assert_array_equal(callback.candidates[0], [0.0, 1.0, 0.0, 1.0])
    np.testing.assert_array_equal(session.labels(), [0.0, 1.0, 0.0, 1.0])


def test_non_numeric_start_and_priority():
    session = lp.SolverSession()
    session.add_variables([1.0, 2.0])
    with pytest.raises(lp.ConfigurationError):
        session.set_start(["a", 1.0])
    with pytest.raises(lp.ConfigurationError):
        session.set_start([None, 1.0])
    with pytest.raises(lp.ConfigurationError):
        session.set_start(None)
    for bad in (None, "high", math.inf, True):
        with pytest.raises(lp.ConfigurationError):
            session.set_branch_priority(0, bad)
    session.set_branch_priority(0, 3.0)
    assert session.variables[0].branch_priority == 3


def test_callback_state_carries_over_between_searches(pair_session, recording_callback):
    seen = []

    def separate(cb, candidate):
        seen.append(cb.best_objective)

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session.optimize()
    pair_session.optimize()

    # The first candidate of the second search already sees the earlier optimum
    assert seen[0] == -math.inf
    assert seen[-1] == pytest.approx(2.0)
    assert callback.best_objective == pytest.approx(2.0)
