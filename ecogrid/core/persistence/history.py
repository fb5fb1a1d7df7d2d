from typing import Any, Dict, List, Optional

from loguru import logger

from ecogrid.core.algorithms.prediction import HistoricalDataPoint
from ecogrid.core.config import GridSettings
from ecogrid.core.persistence.manager import PersistenceManager
from ecogrid.core.structures.b_plus_tree import BPlusTree


class HistoryStore:
    """
    Histórico de consumo: Árvore B+ (chave = timestamp em ms) + arquivo JSON.
    Sem `path` o histórico vive só em memória.
    """
    def __init__(self, tree: Optional[BPlusTree] = None, path: Optional[str] = None):
        self.tree = tree if tree is not None else BPlusTree()
        self.path = path

    @classmethod
    def open(cls, settings: Optional[GridSettings] = None) -> "HistoryStore":
        """Carrega o snapshot do disco ou cria uma árvore vazia da ordem configurada."""
        settings = settings or GridSettings()
        tree = PersistenceManager.load_history(settings.history_path)
        if tree is None:
            logger.info(f"Nenhum histórico em {settings.history_path}. Criando árvore B+ de ordem {settings.bplus_order}")
            tree = BPlusTree(order=settings.bplus_order)
        return cls(tree, settings.history_path)

    @property
    def is_persistent(self) -> bool:
        return self.path is not None

    def record(self, timestamp: float, value: Any):
        self.tree.insert(timestamp, value)

    def range_query(self, start: float, end: float) -> List[Dict[str, Any]]:
        if start > end:
            raise ValueError("O início do intervalo deve ser menor ou igual ao fim")
        return self.tree.range_query(start, end)

    def to_data_points(self, start: float, end: float) -> List[HistoricalDataPoint]:
        return [
            HistoricalDataPoint(timestamp=entry["key"], consumption=entry["value"])
            for entry in self.range_query(start, end)
        ]

    def get_tree_structure(self) -> Optional[Dict[str, Any]]:
        return self.tree.get_tree_structure()

    def get_stats(self) -> Dict[str, int]:
        return self.tree.get_stats()

    def persist(self):
        if self.path is None:
            return
        PersistenceManager.save_history(self.tree, self.path)

    def reload(self):
        """Descarta a árvore em memória e relê o arquivo (árvore vazia se não existir)."""
        if self.path is None:
            return
        order = self.tree.order
        self.tree = PersistenceManager.load_history(self.path) or BPlusTree(order=order)
