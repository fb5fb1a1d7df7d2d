import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from dataclasses_json import LetterCase, config, dataclass_json
from loguru import logger

from ecogrid.core.algorithms.balancing import LoadBalancer
from ecogrid.core.config import GridSettings
from ecogrid.core.models.graph import ElectricalNetworkGraph
from ecogrid.core.models.node import NodeStatus
from ecogrid.core.persistence.history import HistoryStore
from ecogrid.core.persistence.manager import PersistenceError, PersistenceManager
from ecogrid.core.simulation.event_queue import (
    CapacityChange,
    DemandChange,
    EventType,
    FIFOEventQueue,
    GridEvent,
    MinHeapEventQueue,
    NodeFailure,
    NodeRecovery,
    Overload,
    PriorityLevel,
)
from ecogrid.core.structures.b_plus_tree import BPlusTree


class SimulationBusyError(RuntimeError):
    """Um ciclo já está em execução neste simulador."""


class LogLevel:
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


_LOGURU_LEVELS = {
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
    LogLevel.ERROR: "ERROR",
    LogLevel.SUCCESS: "SUCCESS",
}


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class SimulationLog:
    level: str
    message: str
    timestamp: datetime = field(
        default_factory=datetime.now,
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat),
    )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class SimulationMetrics:
    losses: float
    efficiency: float
    consumption: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class SimulationResult:
    graph: Dict[str, List[Dict[str, Any]]]
    metrics: SimulationMetrics
    logs: List[SimulationLog] = field(default_factory=list)
    pending_events: Dict[str, int] = field(default_factory=dict)


class CycleLog(list):
    """Lista cronológica de SimulationLog espelhada no loguru."""

    def add(self, level: str, message: str):
        self.append(SimulationLog(level, message))
        logger.log(_LOGURU_LEVELS[level], message)

    def has_alerts(self) -> bool:
        return any(entry.level in (LogLevel.WARNING, LogLevel.ERROR) for entry in self)


# --- Passo 2: aplicação de eventos ---

def apply_event(graph: ElectricalNetworkGraph, event: GridEvent, logs: CycleLog,
                settings: Optional[GridSettings] = None):
    """Aplica um evento ao grafo. Erros viram log de nível error; nada é propagado."""
    settings = settings or GridSettings()
    payload = event.payload

    try:
        if isinstance(payload, DemandChange):
            node = graph.get_node(payload.node_id)
            if node is None:
                logs.add(LogLevel.WARNING, f"Nó {payload.node_id} não encontrado para alteração de demanda")
                return
            old_demand = node.demand
            graph.update_node(payload.node_id, demand=payload.demand)
            logs.add(LogLevel.INFO, f"Demanda do nó {payload.node_id} alterada de {old_demand} para {payload.demand}")

        elif isinstance(payload, NodeFailure):
            if graph.get_node(payload.node_id) is None:
                logs.add(LogLevel.WARNING, f"Nó {payload.node_id} não encontrado para falha")
                return
            graph.update_node(payload.node_id, status=NodeStatus.INACTIVE)
            logs.add(LogLevel.ERROR, f"Nó {payload.node_id} falhou e foi desativado")

        elif isinstance(payload, NodeRecovery):
            if graph.get_node(payload.node_id) is None:
                logs.add(LogLevel.WARNING, f"Nó {payload.node_id} não encontrado para recuperação")
                return
            graph.update_node(payload.node_id, status=NodeStatus.ACTIVE)
            logs.add(LogLevel.SUCCESS, f"Nó {payload.node_id} recuperado e reativado")

        elif isinstance(payload, Overload):
            _apply_overload(graph, payload, logs, settings)

        elif isinstance(payload, CapacityChange):
            _apply_capacity_change(graph, payload, logs)

        else:
            logs.add(LogLevel.WARNING, f"Tipo de evento desconhecido: {event.event_type}")

    except Exception as e:
        logs.add(LogLevel.ERROR, f"Erro ao aplicar evento {event.event_type}: {e}")


def _apply_overload(graph: ElectricalNetworkGraph, payload: Overload, logs: CycleLog, settings: GridSettings):
    multiplier = payload.multiplier if payload.multiplier is not None else settings.default_overload_multiplier

    if payload.node_id:
        node = graph.get_node(payload.node_id)
        if node is None:
            logs.add(LogLevel.WARNING, f"Nó {payload.node_id} não encontrado para sobrecarga")
            return
        new_demand = node.demand * multiplier
        graph.update_node(payload.node_id, demand=new_demand)
        logs.add(LogLevel.WARNING, f"Nó {payload.node_id} sobrecarregado: demanda aumentada para {new_demand:.2f}")
        return

    edge = graph.get_edge(payload.edge_id)
    if edge is None:
        logs.add(LogLevel.WARNING, f"Aresta {payload.edge_id} não encontrada para sobrecarga")
        return
    new_flow = edge.current_flow * multiplier
    graph.update_edge(payload.edge_id, current_flow=new_flow)
    logs.add(LogLevel.WARNING, f"Aresta {payload.edge_id} sobrecarregada: fluxo aumentado para {new_flow:.2f}")


def _apply_capacity_change(graph: ElectricalNetworkGraph, payload: CapacityChange, logs: CycleLog):
    if payload.node_id:
        node = graph.get_node(payload.node_id)
        if node is None:
            logs.add(LogLevel.WARNING, f"Nó {payload.node_id} não encontrado para alteração de capacidade")
            return
        old_capacity = node.capacity
        graph.update_node(payload.node_id, capacity=payload.capacity)
        logs.add(LogLevel.INFO, f"Capacidade do nó {payload.node_id} alterada de {old_capacity} para {payload.capacity}")
        return

    edge = graph.get_edge(payload.edge_id)
    if edge is None:
        logs.add(LogLevel.WARNING, f"Aresta {payload.edge_id} não encontrada para alteração de capacidade")
        return
    old_capacity = edge.capacity
    graph.update_edge(payload.edge_id, capacity=payload.capacity)
    logs.add(LogLevel.INFO, f"Capacidade da aresta {payload.edge_id} alterada de {old_capacity} para {payload.capacity}")


# --- Passo 3: varredura de condições críticas ---

def check_critical_conditions(graph: ElectricalNetworkGraph, heap: MinHeapEventQueue,
                              settings: Optional[GridSettings] = None) -> CycleLog:
    """
    Empilha no Min-Heap um alerta por nó/aresta em sobrecarga e um alerta
    agregado de falha quando há nós inativos.
    """
    settings = settings or GridSettings()
    logs = CycleLog()

    for node in graph.get_all_nodes():
        utilization = node.utilization
        if utilization is None or utilization < settings.overload_threshold:
            continue
        critical = utilization >= settings.critical_threshold
        heap.insert(GridEvent.create(
            EventType.CRITICAL_OVERLOAD,
            {"nodeId": node.id, "utilization": utilization, "demand": node.demand, "capacity": node.capacity},
            PriorityLevel.CRITICAL if critical else PriorityLevel.HIGH,
        ))
        logs.add(
            LogLevel.ERROR if critical else LogLevel.WARNING,
            f"Condição crítica detectada: nó {node.id} com {utilization * 100:.1f}% de utilização",
        )

    for edge in graph.get_all_edges():
        utilization = edge.utilization
        if utilization is None or utilization < settings.overload_threshold:
            continue
        critical = utilization >= settings.critical_threshold
        heap.insert(GridEvent.create(
            EventType.CRITICAL_EDGE_OVERLOAD,
            {"edgeId": edge.id, "utilization": utilization, "currentFlow": edge.current_flow, "capacity": edge.capacity},
            PriorityLevel.CRITICAL if critical else PriorityLevel.HIGH,
        ))
        logs.add(
            LogLevel.ERROR if critical else LogLevel.WARNING,
            f"Condição crítica detectada: aresta {edge.id} com {utilization * 100:.1f}% de utilização",
        )

    inactive = [node.id for node in graph.get_all_nodes() if node.status == NodeStatus.INACTIVE]
    if inactive:
        mass_failure = len(inactive) > settings.mass_failure_count
        heap.insert(GridEvent.create(
            EventType.CRITICAL_NODE_FAILURE,
            {"inactiveCount": len(inactive), "inactiveNodes": inactive},
            PriorityLevel.CRITICAL if mass_failure else PriorityLevel.MEDIUM,
        ))
        logs.add(
            LogLevel.ERROR if mass_failure else LogLevel.WARNING,
            f"{len(inactive)} nó(s) inativo(s) na rede",
        )

    return logs


# --- Passo 4: balanceamento automático ---

def _auto_balance(graph: ElectricalNetworkGraph, logs: CycleLog, settings: GridSettings):
    try:
        result = LoadBalancer(graph, settings).balance_load()
    except Exception as e:
        logs.add(LogLevel.WARNING, f"Erro no balanceamento automático: {e}")
        return

    if not (result.success and result.balanced_nodes):
        return

    logs.add(LogLevel.SUCCESS,
             f"Balanceamento automático AVL: {len(result.balanced_nodes) // 2} redistribuições realizadas")
    for message in result.messages[:settings.max_balance_messages]:
        logs.add(LogLevel.INFO, f"  → {message}")
    if result.efficiency_gain > 0:
        logs.add(LogLevel.SUCCESS, f"Ganho de eficiência: +{result.efficiency_gain * 100:.2f}%")


def _project_graph(graph: ElectricalNetworkGraph) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "nodes": [
            {
                "id": node.id,
                "type": node.type.value,
                "capacity": node.capacity,
                "demand": node.demand,
                "status": node.status.value,
            }
            for node in graph.get_all_nodes()
        ],
        "edges": [edge.to_dict() for edge in graph.get_all_edges()],
    }


def run_simulation_cycle(graph: ElectricalNetworkGraph, fifo: FIFOEventQueue, heap: MinHeapEventQueue,
                         settings: Optional[GridSettings] = None) -> SimulationResult:
    """
    Um tick discreto da simulação:
    1. consome um evento da FIFO;  2. aplica ao grafo;
    3. varre condições críticas (alimenta o Min-Heap);
    4. balanceia se houve alerta;  5. recalcula as métricas.
    """
    settings = settings or GridSettings()
    logs = CycleLog()

    event = fifo.dequeue()
    if event is None:
        logs.add(LogLevel.INFO, "Nenhum evento na fila FIFO para processar")
    else:
        logs.add(LogLevel.INFO, f"Processando evento: {event.event_type}")
        apply_event(graph, event, logs, settings)

    critical_logs = check_critical_conditions(graph, heap, settings)
    logs.extend(critical_logs)

    if critical_logs.has_alerts():
        _auto_balance(graph, logs, settings)

    metrics = SimulationMetrics(
        losses=graph.compute_losses(),
        efficiency=graph.compute_efficiency(),
        consumption=graph.compute_consumption(),
    )
    logs.add(
        LogLevel.INFO,
        f"Métricas recalculadas: Perdas={metrics.losses:.2f}, "
        f"Eficiência={metrics.efficiency:.2f}%, Consumo={metrics.consumption:.2f}",
    )

    return SimulationResult(
        graph=_project_graph(graph),
        metrics=metrics,
        logs=list(logs),
        pending_events={"fifo": fifo.size(), "heap": heap.size()},
    )


# --- Eventos sintéticos ---

def generate_random_events(graph: ElectricalNetworkGraph, rng: Optional[random.Random] = None) -> List[GridEvent]:
    """
    Gera de 1 a 3 eventos aleatórios (demanda ±20%, sobrecarga ×1.2–1.5,
    capacidade ±10%) para manter a simulação em movimento com a fila vazia.
    """
    rng = rng or random.Random()
    nodes = graph.get_all_nodes()
    if not nodes:
        return []

    count = min(3, max(1, len(nodes) // 2))
    events = []
    for _ in range(count):
        node = rng.choice(nodes)
        kind = rng.choice((EventType.DEMAND_CHANGE, EventType.OVERLOAD, EventType.CAPACITY_CHANGE))

        if kind == EventType.DEMAND_CHANGE:
            demand = max(0.0, node.demand * (0.8 + rng.random() * 0.4))
            events.append(GridEvent.create(kind, {"nodeId": node.id, "demand": demand}, PriorityLevel.MEDIUM))
        elif kind == EventType.OVERLOAD:
            multiplier = 1.2 + rng.random() * 0.3
            events.append(GridEvent.create(kind, {"nodeId": node.id, "multiplier": multiplier}, PriorityLevel.HIGH))
        else:
            capacity = max(1.0, node.capacity * (0.9 + rng.random() * 0.2))
            events.append(GridEvent.create(kind, {"nodeId": node.id, "capacity": capacity}, PriorityLevel.MEDIUM))
    return events


@dataclass
class SimulationContext:
    """Estado explícito de uma simulação: grafo, filas e histórico."""
    graph: ElectricalNetworkGraph
    fifo: FIFOEventQueue
    heap: MinHeapEventQueue
    history: HistoryStore
    settings: GridSettings


class GridSimulator:
    """
    O Maestro do EcoGrid+.
    Centraliza grafo, filas de eventos e histórico num único contexto e garante
    que apenas um ciclo rode por vez.
    """
    def __init__(self, settings: Optional[GridSettings] = None, graph: Optional[ElectricalNetworkGraph] = None,
                 history: Optional[HistoryStore] = None, rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.time):
        self.settings = settings or GridSettings()
        self.context = SimulationContext(
            graph=graph if graph is not None else ElectricalNetworkGraph(self.settings.utilization_scale),
            fifo=FIFOEventQueue(),
            heap=MinHeapEventQueue(),
            history=history if history is not None else HistoryStore(BPlusTree(order=self.settings.bplus_order)),
            settings=self.settings,
        )
        self.rng = rng or random.Random()
        self.clock = clock
        self._cycle_lock = threading.Lock()

    @classmethod
    def from_disk(cls, settings: Optional[GridSettings] = None, **kwargs) -> "GridSimulator":
        """Simulador com rede e histórico carregados dos arquivos configurados."""
        settings = settings or GridSettings()
        simulator = cls(settings, history=HistoryStore.open(settings), **kwargs)
        if simulator.load_network():
            logger.info("Topologia da rede carregada do disco.")
        else:
            logger.info("Nenhum snapshot de rede encontrado. Iniciando com rede vazia.")
        return simulator

    @property
    def graph(self) -> ElectricalNetworkGraph:
        return self.context.graph

    @property
    def fifo(self) -> FIFOEventQueue:
        return self.context.fifo

    @property
    def heap(self) -> MinHeapEventQueue:
        return self.context.heap

    @property
    def history(self) -> HistoryStore:
        return self.context.history

    def submit_event(self, event: Union[GridEvent, Dict[str, Any]]) -> GridEvent:
        """Valida e enfileira o evento nas duas filas (FIFO e Min-Heap)."""
        if not isinstance(event, GridEvent):
            event = GridEvent.from_dict(event)
        self.fifo.enqueue(event)
        self.heap.insert(event)
        logger.debug(f"Evento enfileirado: {event!r}")
        return event

    def reset_queues(self):
        self.fifo.clear()
        self.heap.clear()

    def step(self, auto_events: bool = False) -> SimulationResult:
        """
        Executa um ciclo. Com auto_events, gera eventos sintéticos quando a FIFO está vazia.
        Chamadas concorrentes levantam SimulationBusyError em vez de esperar.
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise SimulationBusyError("Já existe um ciclo de simulação em execução")
        try:
            if auto_events and self.fifo.is_empty():
                for event in generate_random_events(self.graph, self.rng):
                    self.submit_event(event)

            result = run_simulation_cycle(self.graph, self.fifo, self.heap, self.settings)
            self._record_consumption(result.metrics.consumption)
            return result
        finally:
            self._cycle_lock.release()

    def _record_consumption(self, consumption: float):
        # Leitura simulada de sensores: só consumo positivo entra no histórico
        if consumption <= 0:
            return
        self.history.record(int(self.clock() * 1000), consumption)
        try:
            self.history.persist()
        except PersistenceError as e:
            logger.warning(f"Erro ao salvar consumo no histórico: {e}")

    def load_network(self) -> bool:
        return PersistenceManager.load_network(self.graph, self.settings.network_path)

    def save_network(self):
        PersistenceManager.save_network(self.graph, self.settings.network_path)
