"""
UC: Confirmar ENTREGA (baixa idempotente no estoque).

- gerar_id_execucao(): token único por tentativa de entrega.
- registrar_entrega(): chama o commit atômico do banco e traduz o desfecho
  em um `ResultadoCommit` (nunca levanta para falhas de negócio).
- confirmar_entrega(): fluxo de um pedido: resolve, valida e só então
  faz o commit.

Obs.:
- Repetir `registrar_entrega` ou `confirmar_entrega` com o MESMO token é
  seguro (timeout, clique duplo): a segunda chamada devolve `ja_processada`
  sem mexer no estoque.
- Um token NOVO para um pedido já entregue é recusado no nível do pedido
  (`pedido_nao_encontrado`), não reenviado.
"""

from __future__ import annotations

import uuid
from typing import Optional

from entregas.config import DB_PATH
from entregas.domain.errors import (
    EntregaError,
    InsufficientStockError,
    InvalidQuantityError,
    OrderNotFoundError,
)
from entregas.domain.models import ItemRequerido, ResultadoCommit, StatusCommit
from entregas.infra.cache import CatalogoCache
from entregas.infra.repositories import EntregaRepo, ParamsRepo, PedidoRepo
from entregas.infra.logger import log_movimento, log_system_event, log_transaction
from entregas.usecases.resolver_itens import resolver_pedido
from entregas.usecases.validar_estoque import validar_estoque


def gerar_id_execucao() -> str:
    return str(uuid.uuid4())


def _status_para(erro: Exception) -> StatusCommit:
    if isinstance(erro, InsufficientStockError):
        return StatusCommit.ESTOQUE_INSUFICIENTE
    if isinstance(erro, OrderNotFoundError):
        return StatusCommit.PEDIDO_NAO_ENCONTRADO
    if isinstance(erro, InvalidQuantityError):
        return StatusCommit.QUANTIDADE_INVALIDA
    return StatusCommit.ERRO_DESCONHECIDO


def registrar_entrega(
    pedido_id: str,
    execucao_id: Optional[str] = None,
    observacao: Optional[str] = None,
    db_path: str = DB_PATH,
    cliente_nome: Optional[str] = None,
) -> ResultadoCommit:
    """Commit idempotente de uma entrega.

    Args:
        pedido_id: pedido a entregar.
        execucao_id: token da tentativa; se omitido, um novo é gerado.
            Para repetir a MESMA tentativa, reenvie o mesmo token.
        observacao: nota gravada nas movimentações de saída.
        db_path: caminho do SQLite.
        cliente_nome: apenas para mensagens.

    Returns:
        ResultadoCommit com o status da tentativa.
    """
    execucao_id = execucao_id or gerar_id_execucao()
    rotulo = cliente_nome or pedido_id
    dados = {"pedido_id": pedido_id, "execucao_id": execucao_id}
    log_system_event("registrar_entrega_start", dados)

    try:
        tolerancia = ParamsRepo(db_path).tolerancia_percentual()
        res = EntregaRepo(db_path).processar_entrega_idempotente(
            pedido_id, execucao_id, observacao, tolerancia=tolerancia
        )
        itens = [ItemRequerido(i["produto_id"], i["produto"], int(i["quantidade"])) for i in res["itens"]]
    except EntregaError as e:
        status = _status_para(e)
        if status is StatusCommit.ESTOQUE_INSUFICIENTE:
            mensagem = f"Estoque insuficiente detectado durante o processamento da entrega de {rotulo}. {e}"
        else:
            mensagem = str(e)
        log_transaction("registrar_entrega", dados, error=mensagem)
        return ResultadoCommit(
            pedido_id=pedido_id,
            execucao_id=execucao_id,
            status=status,
            mensagem=mensagem,
            cliente_nome=cliente_nome,
            faltantes=list(getattr(e, "faltantes", [])),
        )
    except Exception as e:
        # sqlite3.Error e qualquer falha inesperada viram desfecho do pedido
        mensagem = f"Erro ao confirmar entrega de {rotulo}: {e}"
        log_transaction("registrar_entrega", dados, error=mensagem)
        log_system_event(
            "registrar_entrega_error",
            {**dados, "error": str(e), "tipo": type(e).__name__},
            level="error",
        )
        return ResultadoCommit(pedido_id, execucao_id, StatusCommit.ERRO_DESCONHECIDO, mensagem, cliente_nome)

    if res["status"] == StatusCommit.JA_PROCESSADA.value:
        status = StatusCommit.JA_PROCESSADA
        mensagem = f"A entrega de {rotulo} já foi processada anteriormente."
    else:
        status = StatusCommit.SUCESSO
        mensagem = f"Entrega para {rotulo} confirmada com baixa automática no estoque."
        for item in itens:
            log_movimento("entrega", item.produto_id, "saida", -item.quantidade, **dados)

    log_transaction("registrar_entrega", dados, result=status.value)
    return ResultadoCommit(pedido_id, execucao_id, status, mensagem, cliente_nome, itens)


def confirmar_entrega(
    pedido_id: str,
    observacao: Optional[str] = None,
    execucao_id: Optional[str] = None,
    db_path: str = DB_PATH,
    cache: Optional[CatalogoCache] = None,
) -> ResultadoCommit:
    """Confirma um único pedido: resolve, valida e faz o commit.

    Erros de resolução (ConfigurationError, NoValidItemsError, ...) sobem
    como exceção. Falta de estoque na pré-validação devolve um resultado
    `estoque_insuficiente` sem tentar o commit.

    Um `execucao_id` já consumido vai direto ao commit, que devolve o
    desfecho gravado (`ja_processada`) sem resolver nem validar de novo.
    """
    if execucao_id and EntregaRepo(db_path).execucao_registrada(execucao_id):
        pedido = PedidoRepo(db_path).get(pedido_id)
        return registrar_entrega(
            pedido_id,
            execucao_id=execucao_id,
            observacao=observacao,
            db_path=db_path,
            cliente_nome=pedido.cliente_nome if pedido else None,
        )

    requisito = resolver_pedido(pedido_id, db_path=db_path, cache=cache)
    faltantes = validar_estoque([requisito], db_path=db_path)
    if faltantes:
        detalhes = "\n".join(f"• {f.mensagem()}" for f in faltantes)
        return ResultadoCommit(
            pedido_id=pedido_id,
            execucao_id=execucao_id or "",
            status=StatusCommit.ESTOQUE_INSUFICIENTE,
            mensagem=f"Os seguintes produtos não possuem estoque suficiente:\n{detalhes}",
            cliente_nome=requisito.cliente_nome,
            itens=requisito.itens,
            faltantes=faltantes,
        )
    return registrar_entrega(
        pedido_id,
        execucao_id=execucao_id,
        observacao=observacao,
        db_path=db_path,
        cliente_nome=requisito.cliente_nome,
    )
