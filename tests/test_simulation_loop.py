import sys
import os
import random

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ecogrid.core.config import GridSettings
from ecogrid.core.models.graph import ElectricalNetworkGraph
from ecogrid.core.models.node import NodeStatus, NodeType
from ecogrid.core.simulation.event_queue import (
    EventType,
    EventValidationError,
    FIFOEventQueue,
    GridEvent,
    MinHeapEventQueue,
    PriorityLevel,
)
from ecogrid.core.simulation.simulator import (
    CycleLog,
    GridSimulator,
    LogLevel,
    SimulationBusyError,
    apply_event,
    check_critical_conditions,
    generate_random_events,
    run_simulation_cycle,
)


def build_grid() -> ElectricalNetworkGraph:
    """Usina alimentando dois bairros; nenhuma sobrecarga inicial."""
    graph = ElectricalNetworkGraph()
    graph.add_node(NodeType.PRODUCER, 500, demand=400, node_id="usina")
    graph.add_node(NodeType.CONSUMER, 100, demand=50, node_id="bairro-1")
    graph.add_node(NodeType.CONSUMER, 100, demand=10, node_id="bairro-2")
    graph.add_edge("usina", "bairro-1", resistance=0.1, capacity=200, current_flow=50, edge_id="linha-1")
    graph.add_edge("usina", "bairro-2", resistance=0.1, capacity=200, current_flow=10, edge_id="linha-2")
    return graph


def run_one(graph, event=None):
    fifo, heap = FIFOEventQueue(), MinHeapEventQueue()
    if event is not None:
        fifo.enqueue(event)
    return run_simulation_cycle(graph, fifo, heap), heap


def messages(result, level=None):
    return [log.message for log in result.logs if level is None or log.level == level]


def test_quiet_cycle():
    print("--- Testando ciclo sem eventos ---")
    graph = build_grid()
    result, heap = run_one(graph)

    assert messages(result)[0] == "Nenhum evento na fila FIFO para processar"
    assert messages(result)[-1].startswith("Métricas recalculadas:")
    assert all(log.level == LogLevel.INFO for log in result.logs)
    assert heap.is_empty()

    # Perdas = 50² × 0.1 + 10² × 0.1
    assert result.metrics.losses == pytest.approx(260)
    assert result.metrics.efficiency == pytest.approx(48)
    assert result.metrics.consumption == pytest.approx(60)
    assert result.pending_events == {"fifo": 0, "heap": 0}

    assert [n["id"] for n in result.graph["nodes"]] == ["usina", "bairro-1", "bairro-2"]
    assert result.graph["nodes"][0]["type"] == "producer"
    assert result.graph["edges"][0]["currentFlow"] == 50
    print(">> SUCESSO: Ciclo vazio só recalcula métricas.")


def test_demand_spike_triggers_critical_alert_and_auto_balance():
    print("--- Testando pico de demanda ---")
    graph = build_grid()
    event = GridEvent.create(EventType.DEMAND_CHANGE, {"nodeId": "bairro-1", "demand": 97}, PriorityLevel.MEDIUM)
    result, heap = run_one(graph, event)

    for msg in messages(result):
        print(msg)

    assert messages(result)[0] == "Processando evento: demand_change"
    assert "Condição crítica detectada: nó bairro-1 com 97.0% de utilização" in messages(result, LogLevel.ERROR)
    assert "Balanceamento automático AVL: 1 redistribuições realizadas" in messages(result, LogLevel.SUCCESS)
    assert any(msg.startswith("  → Redistribuído 7.00A de bairro-1 para bairro-2") for msg in messages(result))

    alert = heap.peek()
    assert alert.severity == PriorityLevel.CRITICAL
    assert alert.event_type == EventType.CRITICAL_OVERLOAD
    assert alert.payload.node_id == "bairro-1"
    assert alert.payload.utilization == pytest.approx(0.97)

    assert graph.get_node("bairro-1").demand == pytest.approx(90)
    assert graph.get_node("bairro-2").demand == pytest.approx(17)
    projected = {n["id"]: n["demand"] for n in result.graph["nodes"]}
    assert projected["bairro-1"] == pytest.approx(90)
    print(">> SUCESSO: Alerta crítico no heap e carga redistribuída.")


def test_high_but_not_critical_overload():
    graph = build_grid()
    graph.update_node("bairro-1", demand=92)
    heap = MinHeapEventQueue()

    logs = check_critical_conditions(graph, heap)

    assert heap.size() == 1
    assert heap.peek().severity == PriorityLevel.HIGH
    assert [log.level for log in logs] == [LogLevel.WARNING]
    assert logs.has_alerts()


def test_node_failure_and_recovery():
    graph = build_grid()
    failure = GridEvent.create(EventType.NODE_FAILURE, {"nodeId": "bairro-2"}, PriorityLevel.MEDIUM)
    result, heap = run_one(graph, failure)

    assert "Nó bairro-2 falhou e foi desativado" in messages(result, LogLevel.ERROR)
    assert "1 nó(s) inativo(s) na rede" in messages(result, LogLevel.WARNING)
    assert graph.get_node("bairro-2").status == NodeStatus.INACTIVE
    assert result.metrics.consumption == pytest.approx(50)

    alert = heap.extract_min()
    assert alert.event_type == EventType.CRITICAL_NODE_FAILURE
    assert alert.severity == PriorityLevel.MEDIUM
    assert alert.payload.inactive_nodes == ["bairro-2"]

    recovery = GridEvent.create(EventType.NODE_RECOVERY, {"nodeId": "bairro-2"}, PriorityLevel.LOW)
    result, heap = run_one(graph, recovery)
    assert "Nó bairro-2 recuperado e reativado" in messages(result, LogLevel.SUCCESS)
    assert graph.get_node("bairro-2").is_active
    assert heap.is_empty()


def test_mass_failure_is_critical():
    graph = build_grid()
    for i in range(4):
        graph.add_node(NodeType.CONSUMER, 10, status=NodeStatus.INACTIVE, node_id=f"off-{i}")
    heap = MinHeapEventQueue()

    logs = check_critical_conditions(graph, heap)

    alert = heap.peek()
    assert alert.severity == PriorityLevel.CRITICAL
    assert alert.payload.inactive_count == 4
    assert logs[-1].level == LogLevel.ERROR


def test_edge_overload():
    graph = build_grid()
    event = GridEvent.create(EventType.OVERLOAD, {"edgeId": "linha-1", "multiplier": 4}, PriorityLevel.HIGH)
    result, heap = run_one(graph, event)

    assert "Aresta linha-1 sobrecarregada: fluxo aumentado para 200.00" in messages(result, LogLevel.WARNING)
    assert graph.get_edge("linha-1").current_flow == pytest.approx(200)

    alert = heap.peek()
    assert alert.event_type == EventType.CRITICAL_EDGE_OVERLOAD
    assert alert.severity == PriorityLevel.CRITICAL
    # Perdas (4010) maiores que a produção: eficiência limitada a 0
    assert result.metrics.efficiency == 0


def test_overload_uses_default_multiplier():
    graph = build_grid()
    logs = CycleLog()
    apply_event(graph, GridEvent.create(EventType.OVERLOAD, {"nodeId": "bairro-2"}, PriorityLevel.HIGH), logs)

    assert graph.get_node("bairro-2").demand == pytest.approx(15)
    assert logs[0].message == "Nó bairro-2 sobrecarregado: demanda aumentada para 15.00"


def test_capacity_change():
    graph = build_grid()
    logs = CycleLog()
    apply_event(graph, GridEvent.create(EventType.CAPACITY_CHANGE, {"nodeId": "bairro-1", "capacity": 250},
                                        PriorityLevel.MEDIUM), logs)
    apply_event(graph, GridEvent.create(EventType.CAPACITY_CHANGE, {"edgeId": "linha-2", "capacity": 20},
                                        PriorityLevel.MEDIUM), logs)

    assert graph.get_node("bairro-1").capacity == 250
    assert graph.get_edge("linha-2").capacity == 20
    assert [log.level for log in logs] == [LogLevel.INFO, LogLevel.INFO]


@pytest.mark.parametrize("event_type, payload", [
    (EventType.DEMAND_CHANGE, {"nodeId": "fantasma", "demand": 10}),
    (EventType.NODE_FAILURE, {"nodeId": "fantasma"}),
    (EventType.NODE_RECOVERY, {"nodeId": "fantasma"}),
    (EventType.OVERLOAD, {"nodeId": "fantasma"}),
    (EventType.OVERLOAD, {"edgeId": "fantasma"}),
    (EventType.CAPACITY_CHANGE, {"nodeId": "fantasma", "capacity": 10}),
    (EventType.CAPACITY_CHANGE, {"edgeId": "fantasma", "capacity": 10}),
])
def test_missing_target_logs_warning(event_type, payload):
    graph = build_grid()
    before = graph.to_snapshot()
    logs = CycleLog()

    apply_event(graph, GridEvent.create(event_type, payload, PriorityLevel.LOW), logs)

    assert len(logs) == 1
    assert logs[0].level == LogLevel.WARNING
    assert "fantasma" in logs[0].message
    assert graph.to_snapshot() == before


def test_unknown_event_and_apply_errors_do_not_propagate():
    graph = build_grid()
    logs = CycleLog()

    apply_event(graph, GridEvent.create("meteoro", {"raio": 3}, PriorityLevel.INFO), logs)
    apply_event(graph, GridEvent.create(EventType.CAPACITY_CHANGE, {"nodeId": "bairro-1", "capacity": -5},
                                        PriorityLevel.MEDIUM), logs)

    assert logs[0].level == LogLevel.WARNING
    assert logs[0].message == "Tipo de evento desconhecido: meteoro"
    assert logs[1].level == LogLevel.ERROR
    assert logs[1].message.startswith("Erro ao aplicar evento capacity_change")
    assert graph.get_node("bairro-1").capacity == 100


def test_random_events_are_valid():
    graph = build_grid()
    events = generate_random_events(graph, random.Random(7))

    assert len(events) == 1
    assert events[0].event_type in (EventType.DEMAND_CHANGE, EventType.OVERLOAD, EventType.CAPACITY_CHANGE)
    assert events[0].payload.node_id in graph.nodes
    assert generate_random_events(ElectricalNetworkGraph()) == []


# --- GridSimulator ---

def test_simulator_submit_and_step():
    print("--- Testando GridSimulator ---")
    sim = GridSimulator(graph=build_grid(), clock=lambda: 1_700_000_000.0)

    sim.submit_event({"type": "overload", "payload": {"nodeId": "bairro-2", "multiplier": 2}, "severity": 1})
    sim.submit_event({"type": "node_failure", "payload": {"nodeId": "usina"}, "severity": 0})
    assert sim.fifo.size() == 2
    assert sim.heap.size() == 2
    assert sim.heap.peek().event_type == EventType.NODE_FAILURE

    with pytest.raises(EventValidationError):
        sim.submit_event({"type": "overload", "payload": {}, "severity": 1})
    assert sim.fifo.size() == 2

    result = sim.step()
    # FIFO respeita a ordem de chegada: a sobrecarga vem antes da falha
    assert messages(result)[0] == "Processando evento: overload"
    assert result.pending_events == {"fifo": 1, "heap": 2}
    assert graph_demand(sim, "bairro-2") == pytest.approx(20)

    timestamp = 1_700_000_000_000
    assert sim.history.range_query(timestamp, timestamp) == [{"key": timestamp, "value": pytest.approx(70)}]

    as_json = result.to_dict(encode_json=True)
    assert as_json["pendingEvents"] == {"fifo": 1, "heap": 2}
    assert isinstance(as_json["logs"][0]["timestamp"], str)

    sim.reset_queues()
    assert sim.fifo.is_empty() and sim.heap.is_empty()
    print(">> SUCESSO: Eventos nas duas filas e consumo registrado no histórico.")


def graph_demand(sim, node_id):
    return sim.graph.get_node(node_id).demand


def test_zero_consumption_is_not_recorded():
    sim = GridSimulator(clock=lambda: 1.0)
    sim.step()
    assert sim.history.range_query(0, 10 ** 15) == []


def test_auto_events_when_fifo_is_empty():
    sim = GridSimulator(graph=build_grid(), rng=random.Random(42))
    result = sim.step(auto_events=True)

    assert messages(result)[0].startswith("Processando evento:")
    assert result.pending_events["fifo"] == 0
    assert result.pending_events["heap"] >= 1


def test_simulator_graph_uses_configured_utilization_scale():
    sim = GridSimulator(GridSettings(utilization_scale=100))
    sim.graph.add_node(NodeType.CONSUMER, 10000, demand=8999, node_id="quase")

    assert sim.graph.UTILIZATION_SCALE == 100
    assert [n.id for n in sim.graph.find_nodes_above_utilization(0.9)] == ["quase"]


def test_step_rejects_concurrent_cycle():
    sim = GridSimulator(graph=build_grid())
    sim._cycle_lock.acquire()
    try:
        with pytest.raises(SimulationBusyError):
            sim.step()
    finally:
        sim._cycle_lock.release()

    sim.step()


if __name__ == "__main__":
    test_quiet_cycle()
    test_demand_spike_triggers_critical_alert_and_auto_balance()
    test_node_failure_and_recovery()
    test_edge_overload()
    test_simulator_submit_and_step()
