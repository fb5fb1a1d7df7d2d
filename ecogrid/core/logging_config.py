import sys
from typing import Optional

from loguru import logger

from ecogrid.core.config import GridSettings

_CONFIGURED = False

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def _determine_level(settings: Optional[GridSettings] = None) -> str:
    # GridSettings.from_env já lê ECOGRID_LOG_LEVEL
    settings = settings or GridSettings.from_env()
    return settings.log_level.upper()


def configure_logging(level: Optional[str] = None, force: bool = False,
                      settings: Optional[GridSettings] = None) -> None:
    """
    Troca o sink padrão do loguru por um único sink em stderr.
    Nível: argumento `level`, senão `settings.log_level` (por padrão vindo do ambiente).
    Chamado pelos pontos de entrada (simulador, scripts); os módulos da
    biblioteca apenas usam `logger`.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return
    logger.remove()
    logger.add(sys.stderr, level=(level or _determine_level(settings)).upper(), format=LOG_FORMAT, colorize=True)
    _CONFIGURED = True
