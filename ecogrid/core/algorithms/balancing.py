import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dataclasses_json import LetterCase, dataclass_json
from loguru import logger

from ecogrid.core.algorithms.routing import EnergyRouter
from ecogrid.core.config import GridSettings
from ecogrid.core.models.graph import ElectricalNetworkGraph
from ecogrid.core.models.node import NetworkNode
from ecogrid.core.structures.avl_tree import AVLTree


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class BalancedNode:
    node_id: str
    old_load: float
    new_load: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class BalanceResult:
    success: bool
    balanced_nodes: List[BalancedNode] = field(default_factory=list)
    efficiency_gain: float = 0.0
    messages: List[str] = field(default_factory=list)


@dataclass
class NodeUtilization:
    node_id: str
    utilization: float
    load: float
    capacity: float
    node: NetworkNode

    @classmethod
    def of(cls, node: NetworkNode) -> "NodeUtilization":
        return cls(
            node_id=node.id,
            utilization=node.demand / node.capacity if node.capacity > 0 else 0.0,
            load=node.demand,
            capacity=node.capacity,
            node=node,
        )


class LoadBalancer:
    """
    Redistribuição de carga guiada pelo índice AVL do grafo.

    Nós com utilização >= OVERLOAD_THRESHOLD cedem o excesso para os nós menos
    utilizados; o A* serve apenas para confirmar que os dois nós estão conectados.
    A transferência altera a demanda dos nós, não o fluxo das arestas.
    """
    OVERLOAD_THRESHOLD = 0.90
    TRANSFER_FRACTION = 0.5     # fração da folga do receptor oferecida por transferência
    DEFAULT_CANDIDATES = 5

    def __init__(self, graph: ElectricalNetworkGraph, settings: Optional[GridSettings] = None):
        self.graph = graph
        if settings is not None:
            self.OVERLOAD_THRESHOLD = settings.overload_threshold
            self.TRANSFER_FRACTION = settings.transfer_fraction
        self.router = EnergyRouter(graph)
        self.avl_index: AVLTree = graph.get_load_index()

    def _refresh_index(self):
        self.avl_index = self.graph.get_load_index()

    def find_overloaded_nodes(self) -> List[NodeUtilization]:
        """Nós em ou acima do limiar, mais sobrecarregado primeiro."""
        self._refresh_index()
        nodes = self.graph.find_nodes_above_utilization(self.OVERLOAD_THRESHOLD)
        return sorted((NodeUtilization.of(n) for n in nodes), key=lambda u: u.utilization, reverse=True)

    def find_underloaded_nodes(self, max_count: Optional[int] = DEFAULT_CANDIDATES) -> List[NodeUtilization]:
        """Nós abaixo do limiar com folga positiva, menos utilizado primeiro. max_count=None: sem limite."""
        self._refresh_index()
        nodes = self.graph.find_nodes_below_utilization(self.OVERLOAD_THRESHOLD)
        candidates = [NodeUtilization.of(n) for n in nodes if n.capacity > n.demand]
        candidates.sort(key=lambda u: u.utilization)
        if max_count is None:
            return candidates
        return candidates[:max_count]

    def balance_load(self) -> BalanceResult:
        self._refresh_index()

        overloaded = self.find_overloaded_nodes()
        if not overloaded:
            return BalanceResult(success=False, messages=["Nenhum nó sobrecarregado encontrado"])

        underloaded = self.find_underloaded_nodes(len(overloaded) * 2)
        if not underloaded:
            logger.warning("Balanceamento: nenhum nó disponível para receber carga adicional")
            return BalanceResult(success=False, messages=["Nenhum nó disponível para receber carga adicional"])

        messages: List[str] = []
        balanced: List[BalancedNode] = []
        efficiency_before = self._current_efficiency()

        for source in overloaded:
            remaining = source.node.demand - source.capacity * self.OVERLOAD_THRESHOLD
            if remaining <= 0:
                continue

            for target in underloaded:
                if remaining <= 0:
                    break

                spare = target.node.capacity - target.node.demand
                amount = min(remaining, spare * self.TRANSFER_FRACTION)
                if amount <= 0:
                    continue

                path = self.router.a_star(source.node_id, target.node_id)
                if not path.path or not math.isfinite(path.distance):
                    messages.append(f"Caminho não encontrado entre {source.node_id} e {target.node_id}")
                    continue

                old_source, old_target = source.node.demand, target.node.demand
                new_source = max(0.0, old_source - amount)
                new_target = min(target.node.capacity, old_target + amount)

                self.graph.update_node(source.node_id, demand=new_source)
                self.graph.update_node(target.node_id, demand=new_target)

                balanced.append(BalancedNode(source.node_id, old_source, new_source))
                balanced.append(BalancedNode(target.node_id, old_target, new_target))
                messages.append(
                    f"Redistribuído {amount:.2f}A de {source.node_id} para {target.node_id} "
                    f"via {len(path.path) - 1} saltos"
                )
                logger.debug(messages[-1])

                remaining -= amount
                source.load = new_source
                target.load = new_target

        self._refresh_index()
        gain = self._current_efficiency() - efficiency_before

        if balanced:
            messages.insert(
                0,
                f"Balanceamento concluído: {len(balanced) // 2} redistribuições realizadas. "
                f"Ganho de eficiência: {gain * 100:.2f}%",
            )

        return BalanceResult(
            success=bool(balanced),
            balanced_nodes=balanced,
            efficiency_gain=gain,
            messages=messages,
        )

    def _current_efficiency(self) -> float:
        """Eficiência global normalizada para 0-1."""
        return self.graph.compute_efficiency() / 100

    def is_node_overloaded(self, node_id: str) -> bool:
        node = self.graph.get_node(node_id)
        utilization = node.utilization if node else None
        return utilization is not None and utilization >= self.OVERLOAD_THRESHOLD

    def get_balance_stats(self) -> Dict[str, float]:
        overloaded = self.find_overloaded_nodes()
        underloaded = self.find_underloaded_nodes(None)

        utilizations = [n.utilization for n in self.graph.get_all_nodes() if n.utilization is not None]
        average = sum(utilizations) / len(utilizations) if utilizations else 0.0

        return {
            "overloadedCount": len(overloaded),
            "underloadedCount": len(underloaded),
            "avgUtilization": average,
        }
