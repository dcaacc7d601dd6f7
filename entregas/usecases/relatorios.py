# entregas/usecases/relatorios.py
"""
Relatórios do livro de estoque:
- saldos por produto
- necessidade dos pedidos pendentes x saldo (consultivo)

Ambos retornam (colunas, linhas, mensagem) para exibição tabular.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from entregas.config import DB_PATH
from entregas.domain.alocacao import ordenar_produtos, resolver_itens
from entregas.domain.errors import EntregaError
from entregas.domain.policies import agregar_demanda
from entregas.infra.cache import CatalogoCache
from entregas.infra.repositories import MovimentoRepo, ParamsRepo, PedidoRepo, ProdutoRepo
from entregas.infra.logger import log_system_event, log_database_operation


Relatorio = Tuple[List[str], List[list], Optional[str]]


# ----------------------
# 1) Saldos
# ----------------------

def relatorio_saldos(
    apenas_ativos: bool = True,
    db_path: str = DB_PATH,
    cache: Optional[CatalogoCache] = None,
) -> Relatorio:
    """Saldo atual de cada produto, na ordem do catálogo."""
    log_system_event("relatorio_saldos_start", {"apenas_ativos": apenas_ativos})
    try:
        catalogo = ProdutoRepo(db_path, cache=cache).get_catalogo()
        saldos = MovimentoRepo(db_path).saldos()
        log_database_operation("vw_saldo_produto", "SELECT_ALL", len(saldos))

        rows = [
            [p.id, p.nome, "sim" if p.ativo else "não", p.percentual, saldos.get(p.id, 0)]
            for p in ordenar_produtos(catalogo)
            if p.ativo or not apenas_ativos
        ]
        msg = None if rows else "Nenhum produto cadastrado."
        log_system_event("relatorio_saldos_success", {"produtos": len(rows)})
        return ["ID", "Produto", "Ativo", "%", "Saldo"], rows, msg
    except Exception as e:
        log_system_event("relatorio_saldos_error", {"error": str(e)}, level="error")
        raise


# ----------------------
# 2) Necessidade x saldo
# ----------------------

def relatorio_necessidade(db_path: str = DB_PATH, cache: Optional[CatalogoCache] = None) -> Relatorio:
    """Demanda somada de todos os pedidos agendados comparada ao saldo.

    Pedidos que não resolvem (sem proporções, sem itens válidos, ...) ficam
    de fora da soma e são listados na mensagem. Nada é gravado.
    """
    log_system_event("relatorio_necessidade_start")
    try:
        pedidos = PedidoRepo(db_path).pendentes()
        catalogo = ProdutoRepo(db_path, cache=cache).get_catalogo()
        tolerancia = ParamsRepo(db_path).tolerancia_percentual()
        log_database_operation("pedido", "SELECT_PENDENTES", len(pedidos))

        requisitos = []
        erros: List[str] = []
        for pedido in pedidos:
            try:
                requisitos.append(resolver_itens(pedido, catalogo, tolerancia))
            except EntregaError as e:
                log_system_event("relatorio_necessidade_ignorado", {"pedido_id": pedido.id, "error": str(e)}, level="warning")
                erros.append(f"{pedido.rotulo}: {e}")

        demanda = agregar_demanda(requisitos)
        saldos = MovimentoRepo(db_path).saldos(demanda.keys())

        ordem = {p.id: i for i, p in enumerate(ordenar_produtos(catalogo))}
        rows = []
        for produto_id in sorted(demanda, key=lambda pid: ordem.get(pid, len(ordem))):
            nome, necessario = demanda[produto_id]
            disponivel = saldos.get(produto_id, 0)
            rows.append([nome, necessario, disponivel, max(0, necessario - disponivel)])

        msg = None
        if not pedidos:
            msg = "Nenhum pedido agendado."
        elif erros:
            msg = "Pedidos não considerados:\n" + "\n".join(f"• {e}" for e in erros)

        log_system_event("relatorio_necessidade_success", {
            "pedidos": len(pedidos),
            "resolvidos": len(requisitos),
            "produtos": len(rows),
        })
        return ["Produto", "Necessário", "Disponível", "Falta"], rows, msg
    except Exception as e:
        log_system_event("relatorio_necessidade_error", {"error": str(e)}, level="error")
        raise
