from dataclasses import dataclass
from typing import Optional

from dataclasses_json import LetterCase, dataclass_json


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class NetworkEdge:
    """
    Linha de transmissão (aresta não direcionada entre origin e destination).
    Perda aproximada na linha: P = I²R, com I = current_flow.
    """
    id: str
    origin: str
    destination: str
    resistance: float
    capacity: float
    current_flow: float = 0.0

    def connects(self, node_id: str) -> bool:
        return self.origin == node_id or self.destination == node_id

    def joins(self, a: str, b: str) -> bool:
        """Verdadeiro se a aresta liga o par não ordenado {a, b}."""
        return {self.origin, self.destination} == {a, b}

    @property
    def power_loss(self) -> float:
        return (self.current_flow ** 2) * self.resistance

    @property
    def utilization(self) -> Optional[float]:
        if self.capacity <= 0:
            return None
        return abs(self.current_flow) / self.capacity

    def __repr__(self):
        return f"Linha {self.origin}<->{self.destination} (Flow: {self.current_flow})"
