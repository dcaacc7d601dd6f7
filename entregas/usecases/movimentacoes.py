# entregas/usecases/movimentacoes.py
"""
UC: Registrar movimentações manuais no livro de estoque.

- registrar_entrada(): produção que entra no estoque (sinal +1).
- registrar_ajuste(): correção de contagem, positiva ou negativa.
- run_entrada_lote(): entradas de uma planilha XLSX, todas ou nenhuma.

Obs.:
- Saídas NÃO passam por aqui: a única forma de baixar estoque por entrega
  é o commit idempotente em `confirmar_entrega`.
- Ajuste negativo que deixaria saldo < 0 é recusado.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from entregas.config import DB_PATH
from entregas.adapters.xlsx_loader import load_entradas_from_xlsx
from entregas.domain.errors import EntregaError, InvalidQuantityError
from entregas.domain.models import MOV_AJUSTE, MOV_ENTRADA, Movimento, Produto
from entregas.infra.repositories import MovimentoRepo, ProdutoRepo
from entregas.infra.logger import (
    log_transaction, log_movimento, log_database_operation,
    log_system_event, log_file_operation,
)


def _produto(ref: str, db_path: str) -> Produto:
    produto = ProdutoRepo(db_path).buscar(ref)
    if produto is None:
        raise EntregaError(f"Produto {ref!r} não cadastrado")
    return produto


def registrar_entrada(
    produto_ref: str,
    quantidade: int,
    observacao: Optional[str] = None,
    data: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Acrescenta uma ENTRADA de produção ao livro."""
    dados = {"produto": produto_ref, "quantidade": quantidade}
    log_system_event("entrada_start", dados)
    try:
        if not isinstance(quantidade, int) or quantidade <= 0:
            raise InvalidQuantityError(f"Quantidade de entrada inválida: {quantidade!r}")
        produto = _produto(produto_ref, db_path)
        mov = Movimento(
            produto_id=produto.id,
            tipo=MOV_ENTRADA,
            quantidade=quantidade,
            data_movimentacao=data,
            observacao=observacao,
            referencia_tipo="producao",
        )
        mov_id = MovimentoRepo(db_path).append(mov)
        log_database_operation("movimentacao_estoque", "INSERT", 1, produto_id=produto.id)
        log_movimento("entrada", produto.id, MOV_ENTRADA, quantidade, observacao=observacao)

        saldo = MovimentoRepo(db_path).saldo(produto.id)
        result = {"id": mov_id, "produto_id": produto.id, "produto": produto.nome,
                  "quantidade": quantidade, "saldo": saldo}
        log_transaction("entrada", dados, result=result)
        return result
    except Exception as e:
        log_transaction("entrada", dados, error=str(e))
        log_system_event("entrada_error", {**dados, "error": str(e)}, level="error")
        raise


def registrar_ajuste(
    produto_ref: str,
    delta: int,
    observacao: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Ajuste de inventário: `delta` > 0 soma, `delta` < 0 subtrai.

    Raises:
        InvalidQuantityError: delta zero ou não inteiro.
        InsufficientStockError: o ajuste deixaria o saldo negativo.
    """
    dados = {"produto": produto_ref, "delta": delta}
    log_system_event("ajuste_start", dados)
    try:
        if not isinstance(delta, int) or delta == 0:
            raise InvalidQuantityError(f"Ajuste inválido: {delta!r}")
        produto = _produto(produto_ref, db_path)
        mov = Movimento(
            produto_id=produto.id,
            tipo=MOV_AJUSTE,
            quantidade=abs(delta),
            sinal=1 if delta > 0 else -1,
            observacao=observacao,
            referencia_tipo="ajuste",
        )
        repo = MovimentoRepo(db_path)
        mov_id = repo.append(mov)
        log_movimento("ajuste", produto.id, MOV_AJUSTE, delta, observacao=observacao)

        result = {"id": mov_id, "produto_id": produto.id, "produto": produto.nome,
                  "delta": delta, "saldo": repo.saldo(produto.id)}
        log_transaction("ajuste", dados, result=result)
        return result
    except Exception as e:
        log_transaction("ajuste", dados, error=str(e))
        log_system_event("ajuste_error", {**dados, "error": str(e)}, level="error")
        raise


def run_entrada_lote(path: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Lê um XLSX de ENTRADAS e grava todas as linhas numa única transação.

    Qualquer linha inválida (produto desconhecido, quantidade não inteira
    ou <= 0) aborta o arquivo inteiro, com o número da linha na mensagem.
    """
    log_system_event("entrada_lote_start", {"file_path": path})
    log_file_operation("import", path)

    try:
        rows: List[Dict[str, Any]] = load_entradas_from_xlsx(path)
        log_file_operation("import", path, rows_processed=len(rows))

        prod_repo = ProdutoRepo(db_path)
        movimentos: List[Movimento] = []
        for row in rows:
            linha = row.get("linha")
            ref = row.get("produto")
            if not ref:
                raise EntregaError(f"Linha {linha}: produto não informado")
            produto = prod_repo.buscar(ref)
            if produto is None:
                raise EntregaError(f"Linha {linha}: produto {ref!r} não cadastrado")
            qtd = row.get("quantidade")
            if qtd is None or qtd <= 0:
                raise InvalidQuantityError(f"Linha {linha}: quantidade inválida para {produto.nome}")
            movimentos.append(Movimento(
                produto_id=produto.id,
                tipo=MOV_ENTRADA,
                quantidade=qtd,
                data_movimentacao=row.get("data"),
                observacao=row.get("observacao"),
                referencia_tipo="producao",
                referencia_id=path,
            ))

        MovimentoRepo(db_path).append_many(movimentos)
        log_database_operation("movimentacao_estoque", "INSERT_MANY", len(movimentos), file_path=path)
        for mov in movimentos:
            log_movimento("entrada_lote", mov.produto_id, MOV_ENTRADA, mov.quantidade)

        result = {
            "arquivo": path,
            "linhas_inseridas": len(movimentos),
            "quantidade_total": sum(m.quantidade for m in movimentos),
        }
        log_transaction("entrada_lote", {"file": path, "rows_count": len(rows)}, result=result)
        log_system_event("entrada_lote_success", {"file_path": path, "rows_inserted": len(movimentos)})
        return result

    except Exception as e:
        error_msg = str(e)
        log_transaction("entrada_lote", {"file": path}, error=error_msg)
        log_system_event("entrada_lote_error", {"file_path": path, "error": error_msg}, level="error")
        raise
