import heapq
from collections import deque
from dataclasses import MISSING, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, Union

from dataclasses_json import LetterCase, dataclass_json


class EventType:
    DEMAND_CHANGE = "demand_change"
    NODE_FAILURE = "node_failure"
    NODE_RECOVERY = "node_recovery"
    OVERLOAD = "overload"
    CAPACITY_CHANGE = "capacity_change"
    # Eventos sintéticos gerados pela varredura de condições críticas
    CRITICAL_OVERLOAD = "critical_overload"
    CRITICAL_EDGE_OVERLOAD = "critical_edge_overload"
    CRITICAL_NODE_FAILURE = "critical_node_failure"


class PriorityLevel:
    """
    Define a criticidade.
    Menor número = Maior Prioridade (lógica de Min-Heap). Faixa válida: 0..5.
    """
    CRITICAL = 0  # Blackout, sobrecarga >= 95%
    HIGH = 1      # Sobrecarga iminente
    MEDIUM = 2    # Falhas isoladas, mudanças de rotina
    LOW = 3
    INFO = 5

    MIN = CRITICAL
    MAX = INFO


class EventValidationError(ValueError):
    """Evento rejeitado na fronteira da fila (tipo, severidade ou payload inválidos)."""


# --- Payloads tipados (um por tipo de evento) ---

@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class DemandChange:
    node_id: str
    demand: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class NodeFailure:
    node_id: str


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class NodeRecovery:
    node_id: str


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class Overload:
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    multiplier: Optional[float] = None  # ausente → multiplicador padrão da simulação (1.5)


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class CapacityChange:
    capacity: float
    node_id: Optional[str] = None
    edge_id: Optional[str] = None


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class CriticalOverload:
    node_id: str
    utilization: float
    demand: float
    capacity: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class CriticalEdgeOverload:
    edge_id: str
    utilization: float
    current_flow: float
    capacity: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class CriticalNodeFailure:
    inactive_count: int
    inactive_nodes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RawPayload:
    """Payload de tipo desconhecido: mantido como veio, sem interpretação."""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)


EventPayload = Union[
    DemandChange, NodeFailure, NodeRecovery, Overload, CapacityChange,
    CriticalOverload, CriticalEdgeOverload, CriticalNodeFailure, RawPayload,
]

PAYLOAD_TYPES: Dict[str, Type] = {
    EventType.DEMAND_CHANGE: DemandChange,
    EventType.NODE_FAILURE: NodeFailure,
    EventType.NODE_RECOVERY: NodeRecovery,
    EventType.OVERLOAD: Overload,
    EventType.CAPACITY_CHANGE: CapacityChange,
    EventType.CRITICAL_OVERLOAD: CriticalOverload,
    EventType.CRITICAL_EDGE_OVERLOAD: CriticalEdgeOverload,
    EventType.CRITICAL_NODE_FAILURE: CriticalNodeFailure,
}

_NUMERIC_FIELDS = ("demand", "capacity", "multiplier", "utilization", "current_flow")
_ID_FIELDS = ("node_id", "edge_id")


def decode_payload(event_type: str, data: Dict[str, Any]) -> EventPayload:
    """
    Converte o mapa camelCase do payload na variante tipada do evento.
    Tipos desconhecidos viram RawPayload (a simulação registra um aviso ao aplicá-los).
    """
    if not isinstance(data, dict):
        raise EventValidationError(f"Payload do evento {event_type} deve ser um objeto")

    payload_cls = PAYLOAD_TYPES.get(event_type)
    if payload_cls is None:
        return RawPayload(dict(data))

    try:
        payload = payload_cls.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise EventValidationError(f"Payload inválido para {event_type}: {e}") from e

    # dataclasses_json só avisa quando um campo obrigatório chega como null
    for f in fields(payload_cls):
        if f.default is MISSING and f.default_factory is MISSING and getattr(payload, f.name) is None:
            raise EventValidationError(f"Campo obrigatório '{f.name}' de {event_type} não pode ser nulo")

    for name in _ID_FIELDS:
        value = getattr(payload, name, None)
        if value is not None and (not isinstance(value, str) or not value):
            raise EventValidationError(f"Campo '{name}' de {event_type} deve ser um id não vazio")

    for name in _NUMERIC_FIELDS:
        value = getattr(payload, name, None)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise EventValidationError(f"Campo '{name}' de {event_type} deve ser numérico")

    if isinstance(payload, (Overload, CapacityChange)) and not (payload.node_id or payload.edge_id):
        raise EventValidationError(f"{event_type} exige nodeId ou edgeId")

    return payload


@dataclass(order=True, frozen=True)
class GridEvent:
    """
    Representa um evento na rede. Imutável depois de criado.
    @dataclass(order=True) compara apenas pela severidade (demais campos compare=False),
    então empates no heap ficam na ordem interna do heap.
    """
    severity: int
    event_type: str = field(compare=False)
    payload: EventPayload = field(compare=False, default_factory=RawPayload)
    created_at: datetime = field(compare=False, default_factory=datetime.now)

    def __post_init__(self):
        if isinstance(self.severity, bool) or not isinstance(self.severity, int):
            raise EventValidationError("Severidade deve ser um inteiro")
        if not PriorityLevel.MIN <= self.severity <= PriorityLevel.MAX:
            raise EventValidationError("Severidade deve estar entre 0 e 5")
        if not self.event_type or not isinstance(self.event_type, str):
            raise EventValidationError("Tipo do evento é obrigatório")

    @classmethod
    def create(cls, event_type: str, payload: Dict[str, Any], severity: int,
               created_at: Optional[datetime] = None) -> "GridEvent":
        """Fronteira da fila: decodifica o payload uma única vez."""
        return cls(
            severity=severity,
            event_type=event_type,
            payload=decode_payload(event_type, payload),
            created_at=created_at or datetime.now(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GridEvent":
        """Aceita o formato de fio {type, payload, severity, createdAt?}."""
        if not isinstance(data, dict):
            raise EventValidationError("Evento deve ser um objeto")
        if not isinstance(data.get("type"), str):
            raise EventValidationError("Campo obrigatório ausente ou inválido: type")
        if not isinstance(data.get("payload"), dict):
            raise EventValidationError("Campo obrigatório ausente ou inválido: payload")
        if "severity" not in data:
            raise EventValidationError("Campo obrigatório ausente: severity")

        created_at = data.get("createdAt")
        if isinstance(created_at, str):
            try:
                created_at = datetime.fromisoformat(created_at)
            except ValueError as e:
                raise EventValidationError(f"createdAt inválido: {created_at}") from e
        elif created_at is not None and not isinstance(created_at, datetime):
            raise EventValidationError("createdAt deve ser uma data ISO-8601")

        return cls.create(data["type"], data["payload"], data["severity"], created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "payload": self.payload.to_dict(),
            "severity": self.severity,
            "createdAt": self.created_at.isoformat(),
        }

    def __repr__(self):
        return f"[S{self.severity}] {self.event_type} {self.payload.to_dict()}"


class FIFOEventQueue:
    """Fila simples: ordem de chegada estrita, severidade ignorada."""
    def __init__(self):
        self._queue = deque()

    def enqueue(self, event: GridEvent):
        self._queue.append(event)

    def dequeue(self) -> Optional[GridEvent]:
        return self._queue.popleft() if self._queue else None

    def peek(self) -> Optional[GridEvent]:
        return self._queue[0] if self._queue else None

    def is_empty(self) -> bool:
        return len(self._queue) == 0

    def size(self) -> int:
        return len(self._queue)

    def get_all(self) -> List[GridEvent]:
        return list(self._queue)

    def clear(self):
        self._queue.clear()


class MinHeapEventQueue:
    """
    Min-Heap binário por severidade (alertas críticos pendentes).
    Complexidade: O(log n) para insert e extract_min.
    """
    def __init__(self):
        self._heap: List[GridEvent] = []

    def insert(self, event: GridEvent):
        heapq.heappush(self._heap, event)

    def extract_min(self) -> Optional[GridEvent]:
        """Remove e retorna o evento mais crítico."""
        if self.is_empty():
            return None
        return heapq.heappop(self._heap)

    def peek(self) -> Optional[GridEvent]:
        return self._heap[0] if not self.is_empty() else None

    def is_empty(self) -> bool:
        return len(self._heap) == 0

    def size(self) -> int:
        return len(self._heap)

    def get_all(self) -> List[GridEvent]:
        """Cópia ordenada por severidade, sem alterar o heap. O(n log n)."""
        return sorted(self._heap)

    def clear(self):
        self._heap.clear()
