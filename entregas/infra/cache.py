"""
Cache do catálogo de produtos (proporções padrão) com TTL.

O cache é um objeto explícito, injetado em `ProdutoRepo`: não há estado
global de módulo. Gravações no catálogo feitas pelo repositório chamam
`invalidate()`; o TTL cobre alterações feitas por outros processos.
O commit atômico de entrega nunca usa o cache.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional

from entregas.config import DEFAULTS
from entregas.domain.models import Produto


class CatalogoCache:
    def __init__(self, ttl_segundos: float = DEFAULTS.cache_ttl_segundos, clock: Callable[[], float] = time.monotonic):
        self.ttl_segundos = float(ttl_segundos)
        self._clock = clock
        self._valor: Optional[List[Produto]] = None
        self._carregado_em: Optional[float] = None

    @property
    def valido(self) -> bool:
        if self._valor is None or self._carregado_em is None:
            return False
        return (self._clock() - self._carregado_em) < self.ttl_segundos

    def get(self, loader: Callable[[], List[Produto]]) -> List[Produto]:
        """Devolve o catálogo em cache ou recarrega via ``loader``."""
        if not self.valido:
            self._valor = list(loader())
            self._carregado_em = self._clock()
        return list(self._valor)

    def invalidate(self) -> None:
        self._valor = None
        self._carregado_em = None
