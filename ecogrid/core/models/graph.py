import math
import random
import string
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from ecogrid.core.models.edge import NetworkEdge
from ecogrid.core.models.node import NetworkNode, NodeStatus, NodeType
from ecogrid.core.structures.avl_tree import AVLNode, AVLTree


class GraphValidationError(ValueError):
    """Mutação rejeitada pelo grafo (ids duplicados, nós inexistentes, valores negativos...)."""


_ID_ALPHABET = string.digits + string.ascii_lowercase

_NODE_FIELDS = {"type", "capacity", "demand", "status", "name"}
_EDGE_FIELDS = {"origin", "destination", "resistance", "capacity", "current_flow"}
_FIELD_ALIASES = {"currentFlow": "current_flow"}


class ElectricalNetworkGraph:
    """
    Grafo não direcionado da rede elétrica.

    Camada Física: mapas de nós e arestas (ordem de inserção preservada).
    Camada Lógica: índice AVL por utilização, reconstruído sob demanda a partir
    dos nós ativos com capacidade positiva e descartado a cada mutação.
    """
    UTILIZATION_SCALE = 10000

    def __init__(self, utilization_scale: Optional[int] = None):
        if utilization_scale is not None:
            if utilization_scale <= 0:
                raise GraphValidationError("utilization_scale deve ser positivo")
            self.UTILIZATION_SCALE = utilization_scale
        self.nodes: Dict[str, NetworkNode] = {}
        self.edges: Dict[str, NetworkEdge] = {}
        self._edge_id_counter = 1
        self._load_index: Optional[AVLTree] = None

    # --- Nós ---

    def add_node(self, node_type: Union[NodeType, str], capacity: float, demand: float = 0.0,
                 status: Union[NodeStatus, str] = NodeStatus.ACTIVE, name: Optional[str] = None,
                 node_id: Optional[str] = None) -> NetworkNode:
        """Adiciona um nó. Sem id, gera `node-<timestamp ms>-<9 caracteres base-36>`."""
        node_id = node_id or self._mint_node_id()
        if node_id in self.nodes:
            raise GraphValidationError(f"Nó com id {node_id} já existe")

        node = NetworkNode(
            id=node_id,
            type=self._coerce_type(node_type),
            capacity=self._non_negative("capacity", capacity),
            demand=self._non_negative("demand", demand),
            status=self._coerce_status(status),
            name=name,
        )
        self.nodes[node_id] = node
        self._invalidate_load_index()
        logger.debug(f"Nó adicionado: {node}")
        return node

    def remove_node(self, node_id: str) -> bool:
        """Remove o nó e todas as arestas que o tocam."""
        if node_id not in self.nodes:
            return False

        for edge in self.get_edges_by_node(node_id):
            del self.edges[edge.id]

        del self.nodes[node_id]
        self._invalidate_load_index()
        return True

    def update_node(self, node_id: str, **updates) -> bool:
        """
        Merge parcial dos campos do nó. Retorna False se o nó não existe.
        Campos desconhecidos ou valores inválidos levantam GraphValidationError
        e deixam o nó intacto.
        """
        node = self.nodes.get(node_id)
        if node is None:
            return False

        updates = self._normalize_updates(updates, _NODE_FIELDS)
        if "type" in updates:
            updates["type"] = self._coerce_type(updates["type"])
        if "status" in updates:
            updates["status"] = self._coerce_status(updates["status"])
        for field_name in ("capacity", "demand"):
            if field_name in updates:
                updates[field_name] = self._non_negative(field_name, updates[field_name])

        for field_name, value in updates.items():
            setattr(node, field_name, value)

        if updates.keys() & {"demand", "capacity", "status"}:
            self._invalidate_load_index()
        return True

    def get_node(self, node_id: str) -> Optional[NetworkNode]:
        return self.nodes.get(node_id)

    def get_all_nodes(self) -> List[NetworkNode]:
        return list(self.nodes.values())

    # --- Arestas ---

    def add_edge(self, origin: str, destination: str, resistance: float, capacity: float,
                 current_flow: float = 0.0, edge_id: Optional[str] = None) -> NetworkEdge:
        """
        Cria uma conexão não direcionada origin <-> destination.
        No máximo uma aresta por par não ordenado; laços são rejeitados.
        """
        if edge_id is not None and edge_id in self.edges:
            raise GraphValidationError(f"Aresta com id {edge_id} já existe")
        self._check_endpoints(origin, destination)

        resistance = self._non_negative("resistance", resistance)
        capacity = self._non_negative("capacity", capacity)
        current_flow = self._finite("current_flow", current_flow or 0.0)

        if edge_id is None:
            edge_id = self._mint_edge_id()

        edge = NetworkEdge(
            id=edge_id,
            origin=origin,
            destination=destination,
            resistance=resistance,
            capacity=capacity,
            current_flow=current_flow,
        )
        self.edges[edge_id] = edge
        logger.debug(f"Aresta adicionada: {edge_id} {edge}")
        return edge

    def remove_edge(self, edge_id: str) -> bool:
        # Arestas não participam do índice AVL
        if edge_id not in self.edges:
            return False
        del self.edges[edge_id]
        return True

    def update_edge(self, edge_id: str, **updates) -> bool:
        edge = self.edges.get(edge_id)
        if edge is None:
            return False

        updates = self._normalize_updates(updates, _EDGE_FIELDS)
        for field_name in ("resistance", "capacity"):
            if field_name in updates:
                updates[field_name] = self._non_negative(field_name, updates[field_name])
        if "current_flow" in updates:
            updates["current_flow"] = self._finite("current_flow", updates["current_flow"])

        if "origin" in updates or "destination" in updates:
            candidate = replace(edge, **updates)
            self._check_endpoints(candidate.origin, candidate.destination, ignore_edge_id=edge_id)

        for field_name, value in updates.items():
            setattr(edge, field_name, value)
        return True

    def get_edge(self, edge_id: str) -> Optional[NetworkEdge]:
        return self.edges.get(edge_id)

    def get_all_edges(self) -> List[NetworkEdge]:
        return list(self.edges.values())

    def get_edges_by_node(self, node_id: str) -> List[NetworkEdge]:
        return [edge for edge in self.edges.values() if edge.connects(node_id)]

    @property
    def edge_id_counter(self) -> int:
        return self._edge_id_counter

    # --- Métricas físicas ---

    def compute_losses(self) -> float:
        """Soma de currentFlow² × resistance em todas as linhas."""
        return sum(edge.power_loss for edge in self.edges.values())

    def compute_total_production(self) -> float:
        return sum(
            node.capacity for node in self.nodes.values()
            if node.is_active and node.type == NodeType.PRODUCER
        )

    def compute_efficiency(self) -> float:
        """Percentual útil da produção, limitado a [0, 100]. Sem produção → 0."""
        production = self.compute_total_production()
        if production == 0:
            return 0.0
        efficiency = (production - self.compute_losses()) / production * 100
        return max(0.0, min(100.0, efficiency))

    def compute_consumption(self) -> float:
        return sum(
            node.demand for node in self.nodes.values()
            if node.is_active and node.type == NodeType.CONSUMER
        )

    def get_stats(self) -> Dict[str, Any]:
        nodes_by_type = {node_type.value: 0 for node_type in NodeType}
        active = 0
        for node in self.nodes.values():
            nodes_by_type[node.type.value] += 1
            if node.is_active:
                active += 1

        return {
            "totalNodes": len(self.nodes),
            "totalEdges": len(self.edges),
            "totalLosses": self.compute_losses(),
            "totalEfficiency": self.compute_efficiency(),
            "totalConsumption": self.compute_consumption(),
            "nodesByType": nodes_by_type,
            "activeNodes": active,
            "inactiveNodes": len(self.nodes) - active,
        }

    # --- Camada Lógica: índice AVL por utilização ---

    def get_load_index(self) -> AVLTree:
        """Reconstrói o índice a partir dos nós e o retorna."""
        self._rebuild_load_index()
        return self._load_index

    def find_nodes_above_utilization(self, threshold: float) -> List[NetworkNode]:
        """Nós com utilização >= threshold, em ordem crescente de utilização."""
        index = self.get_load_index()
        result: List[NetworkNode] = []
        self._collect_above(index.root, self._scale(threshold), result)
        return result

    def find_nodes_below_utilization(self, threshold: float) -> List[NetworkNode]:
        """Nós com utilização < threshold, em ordem crescente de utilização."""
        index = self.get_load_index()
        result: List[NetworkNode] = []
        self._collect_below(index.root, self._scale(threshold), result)
        return result

    def _rebuild_load_index(self):
        # Chave composta (utilização escalada, id): dois nós com a mesma
        # utilização arredondada continuam presentes no índice.
        index = AVLTree()
        for node in self.nodes.values():
            if node.is_active and node.capacity > 0:
                utilization = node.demand / node.capacity
                index.insert(
                    (round(utilization * self.UTILIZATION_SCALE), node.id),
                    {
                        "nodeId": node.id,
                        "load": node.demand,
                        "capacity": node.capacity,
                        "utilization": utilization,
                    },
                )
        self._load_index = index

    def _invalidate_load_index(self):
        self._load_index = None

    def _scale(self, threshold: float) -> float:
        # round() evita que 0.07 * 10000 = 700.0000000000001 exclua a chave 700
        return round(threshold * self.UTILIZATION_SCALE, 6)

    def _collect_above(self, avl_node: Optional[AVLNode], scaled: float, result: List[NetworkNode]):
        if avl_node is None:
            return
        if avl_node.key[0] < scaled:
            # Toda a subárvore esquerda também está abaixo
            self._collect_above(avl_node.right, scaled, result)
            return
        self._collect_above(avl_node.left, scaled, result)
        self._append_live(avl_node, result)
        self._collect_above(avl_node.right, scaled, result)

    def _collect_below(self, avl_node: Optional[AVLNode], scaled: float, result: List[NetworkNode]):
        if avl_node is None:
            return
        if avl_node.key[0] >= scaled:
            self._collect_below(avl_node.left, scaled, result)
            return
        self._collect_below(avl_node.left, scaled, result)
        self._append_live(avl_node, result)
        self._collect_below(avl_node.right, scaled, result)

    def _append_live(self, avl_node: AVLNode, result: List[NetworkNode]):
        node = self.nodes.get(avl_node.value["nodeId"])
        if node is not None:
            result.append(node)

    # --- Ciclo de vida / snapshot ---

    def clear(self):
        self.nodes.clear()
        self.edges.clear()
        self._edge_id_counter = 1
        self._invalidate_load_index()

    def restore(self, nodes: Iterable[Union[NetworkNode, Dict[str, Any]]],
                edges: Iterable[Union[NetworkEdge, Dict[str, Any]]],
                edge_id_counter: int = 1):
        """
        Substitui todo o conteúdo do grafo (usado ao carregar do disco).
        Aceita objetos ou dicionários camelCase; passa pelas mesmas validações
        de add_node/add_edge num grafo temporário, então um snapshot
        inconsistente é rejeitado e o conteúdo atual fica intacto.
        """
        if isinstance(edge_id_counter, bool) or not isinstance(edge_id_counter, int) or edge_id_counter < 1:
            raise GraphValidationError(f"edgeIdCounter inválido: {edge_id_counter!r}")

        staging = ElectricalNetworkGraph(self.UTILIZATION_SCALE)
        for item in nodes:
            node = NetworkNode.from_dict(item) if isinstance(item, dict) else item
            staging.add_node(node.type, node.capacity, node.demand, node.status, node.name, node_id=node.id)
        for item in edges:
            edge = NetworkEdge.from_dict(item) if isinstance(item, dict) else item
            staging.add_edge(edge.origin, edge.destination, edge.resistance, edge.capacity,
                             edge.current_flow, edge_id=edge.id)

        self.nodes = staging.nodes
        self.edges = staging.edges
        self._edge_id_counter = edge_id_counter
        self._invalidate_load_index()

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict(encode_json=True) for node in self.nodes.values()],
            "edges": [edge.to_dict() for edge in self.edges.values()],
            "edgeIdCounter": self._edge_id_counter,
        }

    def restore_snapshot(self, data: Dict[str, Any]):
        self.restore(data.get("nodes") or [], data.get("edges") or [], data.get("edgeIdCounter", 1))

    # --- Validação ---

    def _check_endpoints(self, origin: str, destination: str, ignore_edge_id: Optional[str] = None):
        if origin not in self.nodes:
            raise GraphValidationError(f"Nó de origem {origin} não existe")
        if destination not in self.nodes:
            raise GraphValidationError(f"Nó de destino {destination} não existe")
        if origin == destination:
            raise GraphValidationError(f"Aresta não pode ligar o nó {origin} a ele mesmo")
        for edge in self.edges.values():
            if edge.id != ignore_edge_id and edge.joins(origin, destination):
                raise GraphValidationError(f"Já existe uma aresta entre {origin} e {destination}")

    @staticmethod
    def _normalize_updates(updates: Dict[str, Any], allowed: set) -> Dict[str, Any]:
        normalized = {}
        for key, value in updates.items():
            key = _FIELD_ALIASES.get(key, key)
            if key not in allowed:
                raise GraphValidationError(f"Campo desconhecido ou imutável: {key}")
            normalized[key] = value
        return normalized

    @staticmethod
    def _finite(field_name: str, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise GraphValidationError(f"{field_name} deve ser um número finito")
        return value

    @classmethod
    def _non_negative(cls, field_name: str, value: Any) -> float:
        value = cls._finite(field_name, value)
        if value < 0:
            raise GraphValidationError(f"{field_name} não pode ser negativo")
        return value

    @staticmethod
    def _coerce_type(value: Union[NodeType, str]) -> NodeType:
        try:
            return NodeType(value)
        except ValueError as e:
            raise GraphValidationError(f"Tipo de nó inválido: {value!r}") from e

    @staticmethod
    def _coerce_status(value: Union[NodeStatus, str]) -> NodeStatus:
        try:
            return NodeStatus(value)
        except ValueError as e:
            raise GraphValidationError(f"Status de nó inválido: {value!r}") from e

    def _mint_node_id(self) -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"node-{int(time.time() * 1000)}-{suffix}"

    def _mint_edge_id(self) -> str:
        # Ids gerados nunca são reutilizados, mesmo após remoções
        edge_id = f"edge-{self._edge_id_counter}"
        self._edge_id_counter += 1
        while edge_id in self.edges:
            edge_id = f"edge-{self._edge_id_counter}"
            self._edge_id_counter += 1
        return edge_id
