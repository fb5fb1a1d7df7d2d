import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dataclasses_json import LetterCase, dataclass_json

from ecogrid.core.algorithms.heuristics import EnergyHeuristics, Heuristic
from ecogrid.core.models.graph import ElectricalNetworkGraph


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class ShortestPathResult:
    path: List[str] = field(default_factory=list)
    distance: float = math.inf
    operations: int = 0

    @property
    def found(self) -> bool:
        return bool(self.path) and math.isfinite(self.distance)


class EnergyRouter:
    """
    Caminhos mínimos sobre a rede, ponderados pela resistência das linhas.
    Usado pelo balanceador apenas como teste de conectividade entre dois nós.
    """
    def __init__(self, graph: ElectricalNetworkGraph):
        self.graph = graph

    def _build_adjacency(self) -> Tuple[Dict[str, List[Tuple[str, float]]], int]:
        """Lista de adjacência não direcionada. Resistência 0 custa 1."""
        operations = 0
        adjacency: Dict[str, List[Tuple[str, float]]] = {}
        for node_id in self.graph.nodes:
            adjacency[node_id] = []
            operations += 1

        for edge in self.graph.edges.values():
            weight = edge.resistance or 1
            if edge.origin in adjacency:
                adjacency[edge.origin].append((edge.destination, weight))
            if edge.destination in adjacency:
                adjacency[edge.destination].append((edge.origin, weight))
            operations += 2
        return adjacency, operations

    def _unknown_endpoints(self, start_id: str, end_id: str) -> bool:
        return self.graph.get_node(start_id) is None or self.graph.get_node(end_id) is None

    @staticmethod
    def _reconstruct_path(came_from: Dict[str, str], current_id: str) -> Tuple[List[str], int]:
        path = [current_id]
        steps = 1
        while current_id in came_from:
            current_id = came_from[current_id]
            path.append(current_id)
            steps += 1
        return path[::-1], steps

    def dijkstra(self, start_id: str, end_id: str) -> ShortestPathResult:
        """
        Dijkstra clássico O(V²): varredura linear do conjunto não visitado.
        Para assim que o destino é fixado.
        """
        if self._unknown_endpoints(start_id, end_id):
            return ShortestPathResult([], math.inf, 1)

        # dict como conjunto ordenado: empates resolvidos pela ordem de inserção dos nós
        unvisited: Dict[str, None] = {}
        distances: Dict[str, float] = {}
        previous: Dict[str, str] = {}
        operations = 0

        for node_id in self.graph.nodes:
            distances[node_id] = math.inf
            unvisited[node_id] = None
            operations += 1
        distances[start_id] = 0.0
        operations += 1

        adjacency, build_ops = self._build_adjacency()
        operations += build_ops

        while unvisited:
            operations += 1

            current_id = None
            min_distance = math.inf
            for node_id in unvisited:
                operations += 1
                if distances[node_id] < min_distance:
                    min_distance = distances[node_id]
                    current_id = node_id

            if current_id is None:
                break  # restante inalcançável

            del unvisited[current_id]
            operations += 1
            if current_id == end_id:
                break

            for neighbor_id, weight in adjacency[current_id]:
                operations += 1
                if neighbor_id in unvisited:
                    alt = min_distance + weight
                    if alt < distances[neighbor_id]:
                        distances[neighbor_id] = alt
                        previous[neighbor_id] = current_id
                        operations += 2

        if not math.isfinite(distances[end_id]):
            return ShortestPathResult([], math.inf, operations)

        path, steps = self._reconstruct_path(previous, end_id)
        return ShortestPathResult(path, distances[end_id], operations + steps)

    def a_star(self, start_id: str, end_id: str, heuristic: Optional[Heuristic] = None) -> ShortestPathResult:
        """
        A* com conjuntos aberto/fechado. Heurística padrão: EnergyHeuristics.id_distance.
        Nós fechados não são reabertos; com a heurística zero o caminho é ótimo.
        """
        if self._unknown_endpoints(start_id, end_id):
            return ShortestPathResult([], math.inf, 1)

        h = heuristic or EnergyHeuristics.id_distance
        operations = 0

        g_score: Dict[str, float] = {}
        f_score: Dict[str, float] = {}
        for node_id in self.graph.nodes:
            g_score[node_id] = math.inf
            f_score[node_id] = math.inf
            operations += 2

        g_score[start_id] = 0.0
        f_score[start_id] = h(start_id, end_id)
        operations += 3

        adjacency, build_ops = self._build_adjacency()
        operations += build_ops

        open_set: Dict[str, None] = {start_id: None}
        closed_set = set()
        came_from: Dict[str, str] = {}

        while open_set:
            operations += 1

            current_id = None
            min_f = math.inf
            for node_id in open_set:
                operations += 1
                if current_id is None or f_score[node_id] < min_f:
                    min_f = f_score[node_id]
                    current_id = node_id

            if current_id == end_id:
                path, steps = self._reconstruct_path(came_from, current_id)
                return ShortestPathResult(path, g_score[end_id], operations + steps)

            del open_set[current_id]
            closed_set.add(current_id)
            operations += 2

            for neighbor_id, weight in adjacency[current_id]:
                operations += 1
                if neighbor_id in closed_set:
                    continue

                tentative_g = g_score[current_id] + weight
                if neighbor_id not in open_set:
                    open_set[neighbor_id] = None
                    operations += 1
                elif tentative_g >= g_score[neighbor_id]:
                    continue

                came_from[neighbor_id] = current_id
                g_score[neighbor_id] = tentative_g
                f_score[neighbor_id] = tentative_g + h(neighbor_id, end_id)
                operations += 4

        return ShortestPathResult([], math.inf, operations)


def dijkstra(graph: ElectricalNetworkGraph, start_id: str, end_id: str) -> ShortestPathResult:
    return EnergyRouter(graph).dijkstra(start_id, end_id)


def a_star(graph: ElectricalNetworkGraph, start_id: str, end_id: str,
           heuristic: Optional[Heuristic] = None) -> ShortestPathResult:
    return EnergyRouter(graph).a_star(start_id, end_id, heuristic)
