import pytest

import lazyilp as lp


class RecordingCallback(lp.Callback):
    """Callback that records the events it sees and optionally cuts or completes."""

    def __init__(self, session, separate=None, complete=None):
        super().__init__(session)
        self._separate = separate
        self._complete = complete
        self.candidates = []
        self.heuristic_calls = 0

    def separate_and_add_lazy_constraints(self, candidate):
        self.candidates.append(candidate.values.copy())
        if self._separate is not None:
            return self._separate(self, candidate)
        return None

    def compute_feasible_solution(self, relaxation):
        self.heuristic_calls += 1
        if self._complete is not None:
            return self._complete(self, relaxation)
        return None


@pytest.fixture
def recording_callback():
    return RecordingCallback


@pytest.fixture
def pair_session():
    """Maximise x0 + x1 over two binaries."""
    session = lp.SolverSession(sense=lp.MAXIMIZE)
    session.add_variables([1.0, 1.0])
    return session


@pytest.fixture
def active_callback(pair_session, recording_callback):
    """Callback registered on ``pair_session`` and put in the active state."""
    callback = recording_callback(pair_session)
    pair_session.set_callback(callback)
    pair_session._searching = True
    callback.begin()
    yield callback
    callback.end()
    pair_session._searching = False
