"""
UC: Resolver os itens necessários de um pedido de entrega.

Fluxo:
1) Carrega o pedido (e seus itens personalizados, se houver); só pedidos
   ainda agendados são resolvidos.
2) Lê o catálogo atual (via cache injetável, se informado).
3) Aplica `entregas.domain.alocacao.resolver_itens`.

Obs.:
- O resultado nunca é persistido: é recalculado a cada tentativa, para
  que a entrega siga as proporções vigentes e não as da data do agendamento.
- Itens ignorados e proporções fora de 100% viram avisos no `Requisito`.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from entregas.config import DB_PATH
from entregas.domain.alocacao import resolver_itens
from entregas.domain.errors import EntregaError, OrderNotFoundError
from entregas.domain.models import Requisito, STATUS_AGENDADO
from entregas.infra.cache import CatalogoCache
from entregas.infra.repositories import ParamsRepo, PedidoRepo, ProdutoRepo
from entregas.infra.logger import log_system_event


def resolver_pedido(pedido_id: str, db_path: str = DB_PATH, cache: Optional[CatalogoCache] = None) -> Requisito:
    """Lista (produto, quantidade) exigida pelo pedido agora."""
    pedido = PedidoRepo(db_path).get(pedido_id)
    if pedido is None:
        raise OrderNotFoundError(f"Agendamento {pedido_id} não encontrado no sistema.", pedido_id=pedido_id)
    if pedido.status != STATUS_AGENDADO:
        raise OrderNotFoundError(
            f"Entrega de {pedido.rotulo} já processada anteriormente (status: {pedido.status})",
            pedido_id=pedido_id,
        )

    catalogo = ProdutoRepo(db_path, cache=cache).get_catalogo()
    tolerancia = ParamsRepo(db_path).tolerancia_percentual()

    try:
        requisito = resolver_itens(pedido, catalogo, tolerancia)
    except EntregaError as e:
        log_system_event("resolver_pedido_error", {"pedido_id": pedido_id, "error": str(e)}, level="error")
        raise

    for aviso in requisito.avisos:
        log_system_event("resolver_pedido_aviso", {"pedido_id": pedido_id, "aviso": aviso}, level="warning")
    log_system_event("resolver_pedido", {"pedido_id": pedido_id, "total": requisito.total})
    return requisito


def resolver_pedidos(
    pedido_ids: Sequence[str],
    db_path: str = DB_PATH,
    cache: Optional[CatalogoCache] = None,
) -> Tuple[List[Requisito], List[Tuple[str, str]]]:
    """Resolve vários pedidos sem parar no primeiro erro.

    Returns:
        (requisitos resolvidos, [(pedido_id, mensagem de erro), ...])
    """
    requisitos: List[Requisito] = []
    erros: List[Tuple[str, str]] = []
    for pid in pedido_ids:
        try:
            requisitos.append(resolver_pedido(pid, db_path=db_path, cache=cache))
        except EntregaError as e:
            erros.append((pid, str(e)))
    return requisitos, erros
