import json
import os
from typing import Any, Dict, Optional

from loguru import logger

from ecogrid.core.models.graph import ElectricalNetworkGraph
from ecogrid.core.structures.b_plus_tree import BPlusTree


class PersistenceError(RuntimeError):
    """Falha real de E/S ou arquivo corrompido (arquivo ausente não é erro)."""


class PersistenceManager:
    """
    Gerenciador de Persistência em JSON:
    1. Rede (nós, arestas e contador de ids) → data/network.json
    2. Histórico de consumo (Árvore B+) → data/history.json

    Arquivo inexistente significa "ainda não há dados"; qualquer outra falha
    levanta PersistenceError encadeado à causa.
    """
    PATH_NETWORK = "data/network.json"
    PATH_HISTORY = "data/history.json"

    # --- Utilitários de arquivo ---

    @staticmethod
    def _write_json(filepath: str, data: Dict[str, Any], what: str):
        try:
            directory = os.path.dirname(filepath)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = filepath + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, filepath)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Erro ao salvar {what}: {e}")
            raise PersistenceError(f"Falha ao salvar {what}: {e}") from e

    @staticmethod
    def _read_json(filepath: str, what: str) -> Optional[Dict[str, Any]]:
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Erro ao carregar {what}: {e}")
            raise PersistenceError(f"Falha ao carregar {what}: {e}") from e

    @staticmethod
    def _remove(filepath: str, what: str):
        try:
            os.remove(filepath)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error(f"Erro ao resetar {what}: {e}")
            raise PersistenceError(f"Falha ao resetar {what}: {e}") from e

    # --- PARTE 1: REDE (o Grafo) ---

    @staticmethod
    def save_network(graph: ElectricalNetworkGraph, filepath: str = PATH_NETWORK):
        PersistenceManager._write_json(filepath, graph.to_snapshot(), "rede")
        logger.debug(f"[Rede] Snapshot salvo em {filepath}")

    @staticmethod
    def load_network(graph: ElectricalNetworkGraph, filepath: str = PATH_NETWORK) -> bool:
        """
        Reconstrói o grafo a partir do arquivo.
        Retorna False (grafo intacto) se ainda não há snapshot.
        """
        data = PersistenceManager._read_json(filepath, "rede")
        if data is None:
            return False

        # restore valida tudo antes de trocar o conteúdo: snapshot inválido não destrói o atual
        try:
            graph.restore_snapshot(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Snapshot de rede corrompido em {filepath}: {e}")
            raise PersistenceError(f"Falha ao carregar rede: {e}") from e

        logger.info(f"[Rede] {len(graph.nodes)} nós e {len(graph.edges)} arestas carregados de {filepath}")
        return True

    @staticmethod
    def reset_network(filepath: str = PATH_NETWORK):
        PersistenceManager._remove(filepath, "rede")

    # --- PARTE 2: HISTÓRICO (Árvore B+) ---

    @staticmethod
    def save_history(tree: BPlusTree, filepath: str = PATH_HISTORY):
        PersistenceManager._write_json(filepath, tree.serialize(), "histórico")

    @staticmethod
    def load_history(filepath: str = PATH_HISTORY) -> Optional[BPlusTree]:
        data = PersistenceManager._read_json(filepath, "histórico")
        if data is None:
            return None
        try:
            return BPlusTree.deserialize(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Histórico corrompido em {filepath}: {e}")
            raise PersistenceError(f"Falha ao carregar histórico: {e}") from e

    @staticmethod
    def reset_history(filepath: str = PATH_HISTORY):
        PersistenceManager._remove(filepath, "histórico")
