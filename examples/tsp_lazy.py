"""
Symmetric TSP with lazy subtour elimination

One binary variable per undirected edge and a degree-2 constraint per node.
Subtour elimination constraints are exponentially many, so they are only
added when an integer candidate actually contains a subtour. After each
candidate the heuristic builds a tour guided by the node relaxation.
"""

import itertools

import networkx as nx
import numpy as np

import lazyilp as lp

np.random.seed(42)

NUM_NODES = 12

points = np.random.uniform(0.0, 10.0, size=(NUM_NODES, 2))
G = nx.complete_graph(NUM_NODES)
for i, j in G.edges():
    G[i][j]["weight"] = float(np.linalg.norm(points[i] - points[j]))

edges = list(itertools.combinations(range(NUM_NODES), 2))
edge_index = {e: k for k, e in enumerate(edges)}


def edge_var(i, j):
    return edge_index[(i, j) if i < j else (j, i)]


class SubtourElimination(lp.Callback):
    def separate_and_add_lazy_constraints(self, candidate):
        chosen = nx.Graph()
        chosen.add_nodes_from(range(NUM_NODES))
        chosen.add_edges_from(e for k, e in enumerate(edges) if self.label(k) > 0.5)

        components = list(nx.connected_components(chosen))
        if len(components) == 1:
            return
        for component in components:
            # sum of edges inside S <= |S| - 1
            inside = [(edge_var(i, j), 1.0) for i, j in itertools.combinations(sorted(component), 2)]
            self.add_lazy_constraint(inside, upper=len(component) - 1)

    def compute_feasible_solution(self, relaxation):
        # Nearest neighbour, preferring edges the relaxation likes
        def score(i, j):
            return G[i][j]["weight"] * (1.0 - 0.5 * self.relaxation_value(edge_var(i, j)))

        tour = [0]
        unvisited = set(range(1, NUM_NODES))
        while unvisited:
            current = tour[-1]
            nxt = min(unvisited, key=lambda j: score(current, j))
            tour.append(nxt)
            unvisited.remove(nxt)

        values = [0.0] * len(edges)
        for i, j in zip(tour, tour[1:] + tour[:1]):
            values[edge_var(i, j)] = 1.0
        return values


# ============================================================
# OPTIMIZATION MODEL
# ============================================================
session = lp.SolverSession(sense=lp.MINIMIZE)
session.add_variables([G[i][j]["weight"] for i, j in edges])

for n in range(NUM_NODES):
    incident = [(edge_var(n, m), 1.0) for m in range(NUM_NODES) if m != n]
    session.add_constraint(incident, lower=2.0, upper=2.0)

session.set_parameters(time_limit=60.0, verbosity=True)
session.set_callback(SubtourElimination(session))

result = session.optimize()

# ============================================================
# RESULTS
# ============================================================
print(f"\nStatus: {result.status}")
print(f"Tour length: {session.objective():.3f} (gap {session.gap():.2e})")
print(f"Lazy subtour constraints: {len(session.lazy_constraints)}")

tour_graph = nx.Graph([e for k, e in enumerate(edges) if session.label(k) > 0.5])
print("Tour:", " -> ".join(str(n) for n in nx.cycle_basis(tour_graph)[0]))
