"""
UC: Validar estoque para um ou mais pedidos já resolvidos.

A demanda de todos os requisitos é somada por produto e comparada uma
única vez com o saldo vivo de cada produto. Nada é gravado: o resultado é
consultivo e pode ficar desatualizado logo em seguida. A garantia contra
saldo negativo é o commit atômico de cada entrega.
"""

from __future__ import annotations

from typing import Iterable, List

from entregas.config import DB_PATH
from entregas.domain.models import ItemFaltante, Requisito
from entregas.domain.policies import agregar_demanda, comparar_com_saldos
from entregas.infra.repositories import MovimentoRepo
from entregas.infra.logger import log_system_event


def validar_estoque(requisitos: Iterable[Requisito], db_path: str = DB_PATH) -> List[ItemFaltante]:
    """Relatório de faltas; lista vazia significa que todos podem seguir."""
    demanda = agregar_demanda(requisitos)
    repo = MovimentoRepo(db_path)
    saldos = {produto_id: repo.saldo(produto_id) for produto_id in demanda}
    faltantes = comparar_com_saldos(demanda, saldos)

    if faltantes:
        log_system_event(
            "estoque_insuficiente",
            {"faltantes": [f.as_dict() for f in faltantes]},
            level="warning",
        )
    else:
        log_system_event("estoque_validado", {"produtos": len(demanda)})
    return faltantes
