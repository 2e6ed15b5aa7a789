"""Tests for callback event dispatch, driven directly without a solver."""
import math

import numpy as np
import pytest

import lazyilp as lp
from lazyilp import GlobalProgress, IntegerCandidateFound, RelaxationNode


def test_state_starts_reset(pair_session, recording_callback):
    callback = recording_callback(pair_session)
    assert callback.state.best_objective == math.inf
    assert callback.state.best_bound == -math.inf
    assert not callback.state.pending_heuristic_opportunity


def test_dispatch_outside_search_fails(pair_session, recording_callback):
    callback = recording_callback(pair_session)
    with pytest.raises(lp.StateError):
        callback.dispatch(GlobalProgress(objective=1.0, bound=0.0))


def test_progress_translates_sentinels(active_callback):
    active_callback.dispatch(GlobalProgress(objective=lp.SOLVER_INFINITY, bound=-lp.SOLVER_INFINITY))
    assert active_callback.state.best_objective == math.inf
    assert active_callback.state.best_bound == -math.inf


def test_progress_is_monotone(active_callback):
    active_callback.dispatch(GlobalProgress(objective=-1.0, bound=-3.0, runtime=0.5))
    active_callback.dispatch(GlobalProgress(objective=0.0, bound=-4.0, runtime=0.7))
    assert active_callback.state.best_objective == -1.0
    assert active_callback.state.best_bound == -3.0
    assert active_callback.runtime == 0.7


def test_best_values_follow_session_sense(active_callback):
    # pair_session maximises: solver-side values are negated
    active_callback.dispatch(GlobalProgress(objective=-1.0, bound=-2.0))
    assert active_callback.best_objective == 1.0
    assert active_callback.best_bound == 2.0


def test_candidate_sets_pending_flag(active_callback):
    active_callback.dispatch(IntegerCandidateFound([1.0, 0.0]))
    assert active_callback.state.pending_heuristic_opportunity
    assert len(active_callback.candidates) == 1


def test_relaxation_without_pending_flag_skips_heuristic(active_callback):
    active_callback.dispatch(RelaxationNode([0.5, 0.5]))
    assert active_callback.heuristic_calls == 0


def test_heuristic_runs_once_per_candidate(active_callback):
    active_callback.dispatch(IntegerCandidateFound([1.0, 1.0]))
    active_callback.dispatch(RelaxationNode([0.5, 0.5]))
    active_callback.dispatch(RelaxationNode([0.5, 0.5]))
    assert active_callback.heuristic_calls == 1
    assert not active_callback.state.pending_heuristic_opportunity


def test_separation_adds_lazy_constraint(pair_session, recording_callback):
    def separate(cb, candidate):
        if cb.label(0) > 0.5 and cb.label(1) > 0.5:
            cb.add_lazy_constraint([(0, 1.0), (1, 1.0)], upper=1.0)

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()

    event = IntegerCandidateFound([1.0, 1.0])
    callback.dispatch(event)

    assert len(event.lazy_constraints) == 1
    assert event.lazy_rows[0].rhs == 1.0
    assert len(pair_session.lazy_constraints) == 1
    assert pair_session.lazy_constraints[0].lazy


def test_separation_may_return_constraints(pair_session, recording_callback):
    cut = lp.LinearConstraint([(0, 1.0), (1, 1.0)], upper=1.0)
    callback = recording_callback(pair_session, separate=lambda cb, candidate: [cut])
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()

    event = IntegerCandidateFound([1.0, 1.0])
    callback.dispatch(event)
    assert len(event.lazy_constraints) == 1


def test_heuristic_injection(pair_session, recording_callback):
    callback = recording_callback(pair_session, complete=lambda cb, relaxation: {0: 1.0})
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()

    callback.dispatch(IntegerCandidateFound([1.0, 1.0]))
    node = RelaxationNode([0.7, 0.2])
    callback.dispatch(node)
    assert node.assignment == {0: 1.0}
    np.testing.assert_allclose(node.completed(), [1.0, 0.2])


def test_accessors_outside_event_raise_scope_error(active_callback):
    with pytest.raises(lp.ScopeError):
        active_callback.label(0)
    with pytest.raises(lp.ScopeError):
        active_callback.set_label(0, 1.0)
    with pytest.raises(lp.ScopeError):
        active_callback.add_lazy_constraint([(0, 1.0)], upper=0.0)


def test_inject_value_outside_relaxation_raises(pair_session, recording_callback):
    def separate(cb, candidate):
        cb.inject_value(0, 1.0)

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()

    with pytest.raises(lp.SolverError) as excinfo:
        callback.dispatch(IntegerCandidateFound([1.0, 1.0]))
    assert isinstance(excinfo.value.__cause__, lp.ScopeError)


def test_closed_event_rejects_access(active_callback):
    event = IntegerCandidateFound([1.0, 0.0])
    active_callback.dispatch(event)
    assert event.closed
    with pytest.raises(lp.ScopeError):
        event.values


def test_user_error_is_wrapped(pair_session, recording_callback):
    def separate(cb, candidate):
        raise KeyError("missing edge")

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()

    with pytest.raises(lp.SolverError) as excinfo:
        callback.dispatch(IntegerCandidateFound([0.0, 1.0]))
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert "while executing callback" in str(excinfo.value)
    # The flag is only raised after separation succeeds
    assert not callback.state.pending_heuristic_opportunity


def test_out_of_range_label_is_configuration_error(pair_session, recording_callback):
    seen = []

    def separate(cb, candidate):
        with pytest.raises(lp.ConfigurationError):
            cb.label(2)
        seen.append(cb.candidate_values())

    callback = recording_callback(pair_session, separate=separate)
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()
    callback.dispatch(IntegerCandidateFound([0.0, 1.0]))
    np.testing.assert_array_equal(seen[0], [0.0, 1.0])


def test_registration_resets_state(pair_session, recording_callback):
    callback = recording_callback(pair_session)
    callback.state.pending_heuristic_opportunity = True
    callback.state.best_objective = -5.0
    pair_session.set_callback(callback)
    assert not callback.state.pending_heuristic_opportunity
    assert callback.state.best_objective == math.inf


def test_callback_for_other_session_rejected(pair_session, recording_callback):
    other = lp.SolverSession()
    other.add_variables([1.0])
    with pytest.raises(lp.ConfigurationError):
        pair_session.set_callback(recording_callback(other))


def test_function_callback(pair_session):
    callback = lp.FunctionCallback(
        pair_session,
        separate=lambda candidate: [lp.LinearConstraint([(0, 1.0)], upper=0.0)],
    )
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()
    event = IntegerCandidateFound([1.0, 0.0])
    callback.dispatch(event)
    assert len(event.lazy_constraints) == 1
    assert callback.compute_feasible_solution(RelaxationNode([0.0, 0.0])) is None


def test_begin_keeps_best_values_and_clears_flag(pair_session, recording_callback):
    callback = recording_callback(pair_session)
    pair_session.set_callback(callback)
    callback.state.best_objective = -2.0
    callback.state.best_bound = -2.0
    callback.state.pending_heuristic_opportunity = True

    callback.begin()
    assert callback.state.best_objective == -2.0
    assert callback.state.best_bound == -2.0
    assert not callback.state.pending_heuristic_opportunity
    callback.end()
