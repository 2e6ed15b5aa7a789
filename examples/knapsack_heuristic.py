"""
Multi-dimensional knapsack with a lazy capacity and a greedy heuristic

The weight capacity is a static constraint; the volume capacity is only
known to the callback and enforced lazily. Whenever a candidate has been
examined, the heuristic rounds the next node relaxation down greedily into
a solution that respects both capacities.
"""

import numpy as np

import lazyilp as lp

np.random.seed(7)

NUM_ITEMS = 25
values = np.random.randint(10, 60, size=NUM_ITEMS).astype(float)
weights = np.random.randint(5, 30, size=NUM_ITEMS).astype(float)
volumes = np.random.randint(5, 30, size=NUM_ITEMS).astype(float)
WEIGHT_CAPACITY = 0.35 * weights.sum()
VOLUME_CAPACITY = 0.30 * volumes.sum()


class VolumeCallback(lp.Callback):
    def separate_and_add_lazy_constraints(self, candidate):
        x = self.candidate_values()
        if volumes @ x > VOLUME_CAPACITY + 1e-6:
            self.add_lazy_constraint(list(enumerate(volumes)), upper=VOLUME_CAPACITY)

    def compute_feasible_solution(self, relaxation):
        order = np.argsort(-relaxation.relaxation * values / (weights + volumes))
        weight = volume = 0.0
        for i in order:
            take = (
                weight + weights[i] <= WEIGHT_CAPACITY
                and volume + volumes[i] <= VOLUME_CAPACITY
            )
            self.set_label(int(i), 1.0 if take else 0.0)
            if take:
                weight += weights[i]
                volume += volumes[i]


session = lp.SolverSession(sense=lp.MAXIMIZE)
session.add_variables(values)
session.add_constraint(list(enumerate(weights)), upper=WEIGHT_CAPACITY)
session.set_parameters(relative_gap=1e-6, focus="balanced", verbosity=True)

callback = VolumeCallback(session)
session.set_callback(callback)
result = session.optimize()

chosen = [i for i in range(NUM_ITEMS) if session.label(i) > 0.5]
print(f"\nStatus: {result.status}")
print(f"Value: {session.objective():.1f}  bound: {session.bound():.1f}")
print(f"Items: {chosen}")
print(f"Weight {weights[chosen].sum():.0f}/{WEIGHT_CAPACITY:.0f}, "
      f"volume {volumes[chosen].sum():.0f}/{VOLUME_CAPACITY:.0f}")
print(f"Heuristic solutions accepted: {result.stats.heuristic_solutions}")
