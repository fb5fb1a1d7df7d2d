import re
from typing import Callable, Optional

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

Heuristic = Callable[[str, str], float]


class EnergyHeuristics:
    """
    Funções heurísticas h(n) para o A* do EcoGrid+.
    Recebem os ids dos nós (atual, destino) e retornam o custo estimado.
    """

    @staticmethod
    def parse_leading_int(node_id: str) -> Optional[int]:
        """Prefixo inteiro do id ("12-norte" → 12). None se o id não começa com dígitos."""
        match = _LEADING_INT.match(node_id)
        return int(match.group(1)) if match else None

    @staticmethod
    def id_distance(node_id: str, target_id: str) -> float:
        """
        Heurística padrão: |int(a) - int(b)| sobre o prefixo numérico dos ids.
        Retorna 1 quando algum id não é numérico ou a diferença é zero.
        Não é admissível: serve apenas de viés de exploração.
        """
        a = EnergyHeuristics.parse_leading_int(node_id)
        b = EnergyHeuristics.parse_leading_int(target_id)
        if a is None or b is None:
            return 1.0
        return float(abs(a - b)) or 1.0

    @staticmethod
    def zero(node_id: str, target_id: str) -> float:
        """h(n) = 0: o A* se comporta como Dijkstra e o caminho é ótimo."""
        return 0.0
