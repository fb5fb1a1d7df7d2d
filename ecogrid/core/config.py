import os
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional


@dataclass(frozen=True)
class GridSettings:
    """
    Parâmetros operacionais do EcoGrid+.
    Valores padrão reproduzem o comportamento do motor de simulação;
    cada campo pode ser sobrescrito via variável de ambiente ECOGRID_<CAMPO>.
    """
    # --- Balanceamento / detecção de sobrecarga ---
    overload_threshold: float = 0.90      # utilização a partir da qual o nó é sobrecarregado
    critical_threshold: float = 0.95      # acima disso o alerta vira severidade 0
    transfer_fraction: float = 0.5        # fração da folga do receptor oferecida por transferência
    mass_failure_count: int = 3           # mais que isso de nós inativos = falha em massa
    default_overload_multiplier: float = 1.5
    max_balance_messages: int = 3         # detalhes do balanceador copiados para o log do ciclo

    # --- Índice AVL ---
    utilization_scale: int = 10000

    # --- Histórico (B+ Tree) ---
    bplus_order: int = 4

    # --- Persistência ---
    data_dir: str = "data"
    network_file: str = "network.json"
    history_file: str = "history.json"

    log_level: str = "INFO"

    def __post_init__(self):
        if not 0 < self.overload_threshold <= self.critical_threshold:
            raise ValueError("overload_threshold deve estar em (0, critical_threshold]")
        if not 0 < self.transfer_fraction <= 1:
            raise ValueError("transfer_fraction deve estar em (0, 1]")
        if self.bplus_order < 2:
            raise ValueError("A ordem da árvore B+ deve ser pelo menos 2")
        if self.utilization_scale <= 0:
            raise ValueError("utilization_scale deve ser positivo")

    @property
    def network_path(self) -> str:
        return os.path.join(self.data_dir, self.network_file)

    @property
    def history_path(self) -> str:
        return os.path.join(self.data_dir, self.history_file)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, prefix: str = "ECOGRID_") -> "GridSettings":
        """Constrói as configurações aplicando overrides ECOGRID_* do ambiente."""
        environ = os.environ if environ is None else environ
        base = cls()
        overrides = {}

        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            current = getattr(base, f.name)
            try:
                if isinstance(current, int):
                    overrides[f.name] = int(raw)
                elif isinstance(current, float):
                    overrides[f.name] = float(raw)
                else:
                    overrides[f.name] = raw
            except ValueError as e:
                raise ValueError(f"Valor inválido para {prefix}{f.name.upper()}: {raw!r}") from e

        return replace(base, **overrides) if overrides else base


DEFAULT_SETTINGS = GridSettings()
