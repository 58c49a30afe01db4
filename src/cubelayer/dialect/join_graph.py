"""Join graph: cubes as nodes, declared joins as edges. Uses networkx for path resolution."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import pairwise

import networkx as nx

from cubelayer.compiler.evaluator import CubeEvaluator
from cubelayer.dialect.errors import QueryValidationError


@dataclass
class JoinStep:
    """Join ``to_cube`` into a query that already contains ``from_cube``."""

    from_cube: str
    to_cube: str
    owner: str
    sql: str


class JoinGraph:
    def __init__(self, evaluator: CubeEvaluator) -> None:
        self._graph: nx.Graph[str] = nx.Graph()
        for cube in evaluator.cube_definitions.values():
            self._graph.add_node(cube.name)
        for cube in evaluator.cube_definitions.values():
            for join in cube.joins:
                self._graph.add_edge(cube.name, join.name, owner=cube.name, sql=join.sql)

    def join_steps(self, root: str, cubes: list[str]) -> list[JoinStep]:
        """Shortest join path from ``root`` to every other cube, without repeats."""
        steps: list[JoinStep] = []
        joined = {root}
        for target in cubes:
            if target in joined:
                continue
            try:
                path = nx.shortest_path(self._graph, root, target)
            except (nx.NetworkXNoPath, nx.NodeNotFound):
                raise QueryValidationError(
                    f"Can't find join path to join '{root}', '{target}'"
                ) from None
            for from_cube, to_cube in pairwise(path):
                if to_cube in joined:
                    continue
                edge = self._graph.edges[from_cube, to_cube]
                steps.append(
                    JoinStep(from_cube=from_cube, to_cube=to_cube, owner=edge["owner"], sql=edge["sql"])
                )
                joined.add(to_cube)
        return steps
