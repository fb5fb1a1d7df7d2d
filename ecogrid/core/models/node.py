from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dataclasses_json import LetterCase, dataclass_json


class NodeType(str, Enum):
    PRODUCER = "producer"
    CONSUMER = "consumer"
    SUBSTATION = "substation"
    TRANSMISSION = "transmission"


class NodeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class NetworkNode:
    """
    Nó da rede elétrica (produtor, consumidor, subestação ou transmissão).
    A validação de valores (capacidade/demanda não negativas) é feita pelo grafo,
    que é o dono exclusivo dos nós.
    """
    id: str
    type: NodeType
    capacity: float
    demand: float = 0.0
    status: NodeStatus = NodeStatus.ACTIVE
    name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == NodeStatus.ACTIVE

    @property
    def utilization(self) -> Optional[float]:
        """Demanda / capacidade. Indefinida (None) para nós inativos ou sem capacidade."""
        if not self.is_active or self.capacity <= 0:
            return None
        return self.demand / self.capacity

    @property
    def spare_capacity(self) -> float:
        return self.capacity - self.demand

    def __repr__(self):
        return f"[{self.type.value}] {self.id} | Carga: {self.demand}/{self.capacity} ({self.status.value})"
