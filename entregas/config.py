# entregas/config.py
"""
Configurações globais e valores padrão do núcleo de entregas.
"""

import os
from dataclasses import dataclass


# Caminho padrão do banco de dados SQLite
DB_PATH = os.environ.get("ENTREGAS_DB", os.path.join(os.getcwd(), "entregas.db"))


@dataclass
class DefaultConfig:
    """Valores padrão para parâmetros do sistema."""
    tolerancia_percentual: float = 0.01  # folga aceita na soma das proporções (100%)
    cache_ttl_segundos: float = 300.0  # validade do cache de catálogo
    sqlite_timeout_segundos: float = 30.0  # espera por lock de escrita


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()
