"""
UC: Confirmar ENTREGAS em massa.

Etapas:
1) Resolve os itens de todos os pedidos. Qualquer falha aborta o lote
   inteiro antes de qualquer commit.
2) Valida a demanda AGREGADA do lote contra os saldos. Qualquer falta
   aborta o lote e devolve a tabela de faltas.
3) Faz o commit de cada pedido com seu próprio token. Falhas aqui (só
   possíveis por concorrência, já que a etapa 2 passou) ficam isoladas no
   pedido; o laço segue para os demais.
4) Nenhum sucesso = lote com falha; senão, sucesso parcial ou total.
"""

from __future__ import annotations

from typing import Optional, Sequence

from entregas.config import DB_PATH
from entregas.domain.models import ResultadoLote
from entregas.infra.cache import CatalogoCache
from entregas.infra.logger import log_system_event, log_transaction
from entregas.usecases.confirmar_entrega import gerar_id_execucao, registrar_entrega
from entregas.usecases.resolver_itens import resolver_pedidos
from entregas.usecases.validar_estoque import validar_estoque


def confirmar_entregas_em_massa(
    pedido_ids: Sequence[str],
    observacao: Optional[str] = None,
    db_path: str = DB_PATH,
    cache: Optional[CatalogoCache] = None,
) -> ResultadoLote:
    """Confirma vários pedidos de uma vez (ver etapas no docstring do módulo)."""
    # mesmo pedido duas vezes no lote dobraria a demanda validada
    ids = list(dict.fromkeys(pedido_ids))
    resultado = ResultadoLote(total_pedidos=len(ids))
    log_system_event("entrega_em_massa_start", {"pedidos": len(ids)})

    requisitos, erros = resolver_pedidos(ids, db_path=db_path, cache=cache)
    if erros:
        resultado.erros_resolucao = erros
        log_transaction("entrega_em_massa", {"pedidos": ids}, error=resultado.resumo())
        return resultado

    faltantes = validar_estoque(requisitos, db_path=db_path)
    if faltantes:
        resultado.faltantes = faltantes
        log_transaction("entrega_em_massa", {"pedidos": ids}, error=resultado.resumo())
        return resultado

    for req in requisitos:
        execucao_id = gerar_id_execucao()
        log_system_event("entrega_em_massa_item", {"pedido_id": req.pedido_id, "execucao_id": execucao_id})
        resultado.por_pedido[req.pedido_id] = registrar_entrega(
            req.pedido_id,
            execucao_id=execucao_id,
            observacao=observacao,
            db_path=db_path,
            cliente_nome=req.cliente_nome,
        )

    dados = {"pedidos": ids, "sucessos": resultado.sucessos, "falhas": len(resultado.falhas)}
    if resultado.sucessos == 0:
        log_transaction("entrega_em_massa", dados, error=resultado.resumo())
    else:
        log_transaction("entrega_em_massa", dados, result=resultado.status)
    return resultado
