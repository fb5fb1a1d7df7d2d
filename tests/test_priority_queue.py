import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ecogrid.core.simulation.event_queue import (
    EventType,
    GridEvent,
    MinHeapEventQueue,
    PriorityLevel,
)


def _event(severity: int, node_id: str = "n1") -> GridEvent:
    return GridEvent.create(EventType.NODE_FAILURE, {"nodeId": node_id}, severity)


def test_priority_logic():
    print("--- Testando Min-Heap de Eventos ---")
    heap = MinHeapEventQueue()

    heap.insert(_event(PriorityLevel.LOW, "info"))
    heap.insert(_event(PriorityLevel.MEDIUM, "falha-isolada"))
    heap.insert(_event(PriorityLevel.CRITICAL, "blackout"))
    heap.insert(_event(PriorityLevel.HIGH, "sobrecarga"))

    print(f"Eventos na fila: {heap.size()}")
    assert heap.peek().severity == PriorityLevel.CRITICAL

    order = []
    while not heap.is_empty():
        order.append(heap.extract_min().payload.node_id)
    print(f"Ordem de processamento: {order}")

    assert order == ["blackout", "sobrecarga", "falha-isolada", "info"]
    assert heap.extract_min() is None
    assert heap.peek() is None
    print(">> SUCESSO: O evento crítico furou a fila.")


def test_get_all_is_sorted_copy():
    heap = MinHeapEventQueue()
    for severity in [5, 0, 3, 1, 2, 0]:
        heap.insert(_event(severity))

    snapshot = heap.get_all()
    assert [e.severity for e in snapshot] == [0, 0, 1, 2, 3, 5]
    # Não consome o heap
    assert heap.size() == 6

    heap.clear()
    assert heap.is_empty()


def test_heap_order_ignores_payload_and_timestamps():
    heap = MinHeapEventQueue()
    heap.insert(GridEvent.create("custom_alarm", {"zone": "B"}, 2))
    heap.insert(GridEvent.create(EventType.DEMAND_CHANGE, {"nodeId": "a", "demand": 10}, 2))
    heap.insert(GridEvent.create(EventType.NODE_RECOVERY, {"nodeId": "a"}, 1))

    assert heap.extract_min().event_type == EventType.NODE_RECOVERY
    assert {heap.extract_min().severity, heap.extract_min().severity} == {2}


if __name__ == "__main__":
    test_priority_logic()
    test_get_all_is_sorted_copy()
    test_heap_order_ignores_payload_and_timestamps()
