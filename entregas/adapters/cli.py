# entregas/adapters/cli.py
"""
CLI do núcleo de entregas (Typer).

Comandos principais:
- migrate                        -> aplica migrações e cria views
- params set/get/show            -> parâmetros globais (tolerância, TTL do cache)
- produtos add/list              -> catálogo
- proporcoes set/show            -> proporções do pedido padrão
- pedidos add/lote/pendentes     -> agendamentos de entrega
- entrada / ajuste               -> movimentações manuais no livro
- entrada-lotes <xlsx>           -> entradas de produção a partir de um XLSX
- saldo                          -> saldo por produto
- resolver <pedido>              -> itens que o pedido exige agora
- validar <pedidos...>           -> confere a demanda somada contra o saldo
- confirmar <pedido>             -> baixa idempotente de uma entrega
- confirmar-lote <pedidos...>    -> confirmação em massa
- historico                      -> entregas processadas
- rel necessidade|saldos         -> relatórios
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from entregas.config import DB_PATH, DEFAULTS
from entregas.adapters.parsers import parse_itens_personalizados
from entregas.adapters.xlsx_loader import load_pedidos_from_xlsx
from entregas.domain.errors import EntregaError
from entregas.domain.models import (
    ItemFaltante, ResultadoCommit, ResultadoLote, StatusCommit, TIPO_PADRAO, TIPO_PERSONALIZADO,
)
from entregas.infra.cache import CatalogoCache
from entregas.infra.migrations import apply_migrations
from entregas.infra.views import create_views
from entregas.infra.repositories import EntregaRepo, ParamsRepo, PedidoRepo, ProdutoRepo
from entregas.infra.logger import log_file_operation, log_database_operation
from entregas.usecases.movimentacoes import registrar_entrada, registrar_ajuste, run_entrada_lote
from entregas.usecases.proporcoes import definir_proporcoes, listar_proporcoes
from entregas.usecases.resolver_itens import resolver_pedido, resolver_pedidos
from entregas.usecases.validar_estoque import validar_estoque
from entregas.usecases.confirmar_entrega import confirmar_entrega
from entregas.usecases.confirmar_em_massa import confirmar_entregas_em_massa
from entregas.usecases.relatorios import relatorio_necessidade, relatorio_saldos


app = typer.Typer(help="Entregas Confeitaria — CLI")
console = Console()


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2))


def _cache(db_path: str) -> CatalogoCache:
    return CatalogoCache(ParamsRepo(db_path).cache_ttl_segundos())


def _falhar(msg: str, title: str = "Erro") -> None:
    console.print(Panel(msg, title=title, border_style="red"))
    raise typer.Exit(code=1)


def _display_table(data: List[Dict[str, Any]], title: str = "Resultado") -> None:
    """Exibe uma lista de dicts em tabela Rich (colunas = chaves do 1º item)."""
    if not data:
        console.print(Panel("Nenhum dado encontrado", title=title, border_style="yellow"))
        return

    table = Table(title=title, box=box.ROUNDED)
    columns = list(data[0].keys())
    for column in columns:
        if column.lower() in ["quantidade", "saldo", "necessario", "disponivel", "faltante", "percentual", "total"]:
            table.add_column(column, justify="right")
        else:
            table.add_column(column)
    for row in data:
        table.add_row(*[str(row.get(col, "")) for col in columns])
    console.print(table)


def _display_relatorio(columns: List[str], rows: List[list], msg: Optional[str], title: str) -> None:
    if rows:
        table = Table(title=title, box=box.ROUNDED)
        for col in columns:
            table.add_column(col)
        for r in rows:
            table.add_row(*[str(v) for v in r])
        console.print(table)
    if msg:
        console.print(Panel(msg, title=title, border_style="yellow"))


def _display_faltantes(faltantes: List[ItemFaltante], title: str = "Estoque insuficiente") -> None:
    _display_table([f.as_dict() for f in faltantes], title=title)


def _display_commit(res: ResultadoCommit) -> None:
    cor = {
        StatusCommit.SUCESSO: "green",
        StatusCommit.JA_PROCESSADA: "cyan",
    }.get(res.status, "red")
    linhas = [
        f"Pedido: {res.pedido_id}",
        f"Execução: {res.execucao_id or '-'}",
        f"Status: {res.status.value}",
        "",
        res.mensagem,
    ]
    console.print(Panel("\n".join(linhas), title="Confirmação de Entrega", border_style=cor))
    if res.itens and res.ok:
        _display_table(
            [{"produto": i.produto_nome, "quantidade": i.quantidade} for i in res.itens],
            title="Itens baixados",
        )
    if res.faltantes:
        _display_faltantes(res.faltantes)


def _display_lote(res: ResultadoLote) -> None:
    cor = {"sucesso": "green", "parcial": "yellow"}.get(res.status, "red")
    console.print(Panel(res.resumo(), title=f"Entrega em massa ({res.status})", border_style=cor))
    if res.faltantes:
        _display_faltantes(res.faltantes)
    if res.por_pedido:
        _display_table(
            [
                {"pedido": pid, "cliente": r.cliente_nome or "", "status": r.status.value, "execucao": r.execucao_id}
                for pid, r in res.por_pedido.items()
            ],
            title="Pedidos",
        )


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


params_app = typer.Typer(help="Gerenciar parâmetros globais (tolerância e cache).")
app.add_typer(params_app, name="params")


@params_app.command("set")
def cmd_params_set(
    tolerancia_percentual: Optional[float] = typer.Option(None, help="Folga na soma das proporções (ex.: 0.01)"),
    cache_ttl_segundos: Optional[float] = typer.Option(None, help="Validade do cache do catálogo (s)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Define parâmetros globais (apenas os informados são alterados)."""
    items: List[tuple[str, str]] = []
    if tolerancia_percentual is not None:
        if tolerancia_percentual < 0:
            _falhar("Tolerância não pode ser negativa.")
        items.append(("tolerancia_percentual", str(tolerancia_percentual)))
    if cache_ttl_segundos is not None:
        items.append(("cache_ttl_segundos", str(cache_ttl_segundos)))
    if not items:
        typer.echo("Nada a alterar. Informe pelo menos um parâmetro.")
        raise typer.Exit(code=1)
    ParamsRepo(db_path).set_many(items)
    typer.echo(">> Parâmetros atualizados.")


@params_app.command("get")
def cmd_params_get(
    chave: str = typer.Argument(..., help="Ex.: tolerancia_percentual | cache_ttl_segundos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra um parâmetro específico."""
    val = ParamsRepo(db_path).get(chave)
    typer.echo("(None)" if val is None else val)


@params_app.command("show")
def cmd_params_show(
    as_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Exibe os parâmetros efetivos (com fallback para defaults)."""
    repo = ParamsRepo(db_path)
    out = {
        "tolerancia_percentual": repo.tolerancia_percentual(),
        "cache_ttl_segundos": repo.cache_ttl_segundos(),
        "_defaults": {
            "tolerancia_percentual": DEFAULTS.tolerancia_percentual,
            "cache_ttl_segundos": DEFAULTS.cache_ttl_segundos,
        },
        "_db": db_path,
    }
    if as_json:
        _print_json(out)
        return
    table = Table(title="Parâmetros do Sistema")
    table.add_column("Parâmetro")
    table.add_column("Valor Atual")
    table.add_column("Valor Padrão")
    for param in ["tolerancia_percentual", "cache_ttl_segundos"]:
        table.add_row(param, str(out[param]), str(out["_defaults"][param]))
    console.print(table)
    console.print(f"[dim]Banco de dados: {db_path}[/dim]")


# -----------------------
# catálogo e proporções
# -----------------------

produtos_app = typer.Typer(help="Catálogo de produtos")
app.add_typer(produtos_app, name="produtos")


@produtos_app.command("add")
def cmd_produtos_add(
    produto_id: str = typer.Argument(..., help="Código do produto"),
    nome: Optional[str] = typer.Option(None, help="Nome (padrão: o código)"),
    ordem: Optional[int] = typer.Option(None, help="Ordem da categoria (desempate)"),
    inativo: bool = typer.Option(False, "--inativo", help="Cadastra como inativo"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Cadastra ou atualiza um produto (mantém o percentual atual)."""
    repo = ProdutoRepo(db_path)
    atual = next((p for p in repo.get_all() if p["id"] == produto_id), None)
    repo.upsert([{
        "id": produto_id,
        "nome": nome or (atual["nome"] if atual else produto_id),
        "ativo": 0 if inativo else 1,
        "ordem_categoria": ordem if ordem is not None else (atual["ordem_categoria"] if atual else None),
        "percentual": 0.0 if inativo else (atual["percentual"] if atual else 0.0),
    }])
    log_database_operation("produto", "UPSERT", 1, id=produto_id)
    typer.echo(f">> Produto {produto_id} gravado.")


@produtos_app.command("list")
def cmd_produtos_list(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Lista o catálogo."""
    _display_table(ProdutoRepo(db_path).get_all(), title="Produtos")


proporcoes_app = typer.Typer(help="Proporções do pedido padrão")
app.add_typer(proporcoes_app, name="proporcoes")


@proporcoes_app.command("set")
def cmd_proporcoes_set(
    pares: List[str] = typer.Argument(..., help="PRODUTO=PERCENTUAL (ex.: brigadeiro=60 beijinho=40)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Define as proporções; a soma precisa fechar 100%."""
    percentuais: Dict[str, float] = {}
    for par in pares:
        ref, sep, pct = par.rpartition("=")
        if not sep or not ref.strip():
            _falhar(f"Par inválido: {par!r} (use PRODUTO=PERCENTUAL)")
        try:
            percentuais[ref.strip()] = float(pct.replace(",", "."))
        except ValueError:
            _falhar(f"Percentual inválido em {par!r}")
    try:
        definir_proporcoes(percentuais, db_path=db_path)
    except EntregaError as e:
        _falhar(str(e), title="Proporções")
    typer.echo(">> Proporções atualizadas.")


@proporcoes_app.command("show")
def cmd_proporcoes_show(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Mostra as proporções vigentes."""
    _display_table(listar_proporcoes(db_path=db_path), title="Proporções")


# -----------------------
# pedidos
# -----------------------

pedidos_app = typer.Typer(help="Agendamentos de entrega")
app.add_typer(pedidos_app, name="pedidos")


@pedidos_app.command("add")
def cmd_pedidos_add(
    pedido_id: str = typer.Argument(..., help="Código do agendamento"),
    cliente: str = typer.Option(..., help="Nome do cliente"),
    quantidade: int = typer.Option(0, help="Quantidade total (pedido padrão)"),
    itens: Optional[str] = typer.Option(None, help="Itens personalizados, ex.: 'brigadeiro: 10; beijinho: 5'"),
    cliente_id: Optional[str] = typer.Option(None, help="Código do cliente (padrão: o nome)"),
    data_prevista: Optional[str] = typer.Option(None, help="YYYY-MM-DD"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Agenda (ou atualiza) um pedido."""
    try:
        lista = parse_itens_personalizados(itens)
    except ValueError as e:
        _falhar(str(e))
    PedidoRepo(db_path).upsert([{
        "id": pedido_id,
        "cliente_id": cliente_id or cliente,
        "cliente_nome": cliente,
        "quantidade_total": quantidade or sum(i["quantidade"] for i in lista),
        "tipo_pedido": TIPO_PERSONALIZADO if lista else TIPO_PADRAO,
        "itens": lista,
        "data_prevista": data_prevista,
    }])
    typer.echo(f">> Pedido {pedido_id} agendado.")


@pedidos_app.command("lote")
def cmd_pedidos_lote(path: str = typer.Argument(..., help="XLSX de PEDIDOS"), db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Importa agendamentos a partir de um XLSX."""
    log_file_operation("import", path)
    try:
        rows = load_pedidos_from_xlsx(path)
    except ValueError as e:
        _falhar(str(e), title="Pedidos em Lote")
    validos = [r for r in rows if r.get("id") and r.get("cliente_id")]
    for r in validos:
        if not r.get("quantidade_total"):
            r["quantidade_total"] = sum(i["quantidade"] for i in r["itens"])
    PedidoRepo(db_path).upsert(validos)
    log_file_operation("import", path, rows_processed=len(validos))
    console.print(Panel(
        f"Total de registros: {len(rows)}\nImportados: {len(validos)}\nIgnorados: {len(rows) - len(validos)}",
        title="Pedidos em Lote",
    ))


@pedidos_app.command("pendentes")
def cmd_pedidos_pendentes(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Lista os pedidos ainda agendados."""
    _display_table(
        [
            {"pedido": p.id, "cliente": p.rotulo, "tipo": p.tipo_pedido,
             "quantidade": p.quantidade_total, "data prevista": p.data_prevista or ""}
            for p in PedidoRepo(db_path).pendentes()
        ],
        title="Pedidos Agendados",
    )


# -----------------------
# comandos de movimentação
# -----------------------

@app.command("entrada")
def cmd_entrada(
    produto: str = typer.Argument(..., help="Código ou nome do produto"),
    quantidade: int = typer.Argument(..., help="Quantidade produzida"),
    obs: Optional[str] = typer.Option(None, "--obs", help="Observação"),
    data: Optional[str] = typer.Option(None, help="Data da entrada (YYYY-MM-DD)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Registra uma entrada de produção."""
    try:
        rec = registrar_entrada(produto, quantidade, observacao=obs, data=data, db_path=db_path)
    except EntregaError as e:
        _falhar(str(e), title="Entrada")
    _display_table([rec], title="Entrada Registrada")


@app.command("ajuste")
def cmd_ajuste(
    produto: str = typer.Argument(..., help="Código ou nome do produto"),
    quantidade: int = typer.Argument(..., help="Quantidade do ajuste (positiva)"),
    negativo: bool = typer.Option(False, "--negativo", help="Subtrai do saldo em vez de somar"),
    obs: Optional[str] = typer.Option(None, "--obs", help="Motivo do ajuste"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Ajuste de inventário (contagem física)."""
    if quantidade <= 0:
        _falhar("Informe uma quantidade positiva; use --negativo para subtrair.")
    try:
        rec = registrar_ajuste(produto, -quantidade if negativo else quantidade, observacao=obs, db_path=db_path)
    except EntregaError as e:
        _falhar(str(e), title="Ajuste")
    _display_table([rec], title="Ajuste Registrado")


@app.command("entrada-lotes")
def cmd_entrada_lotes(
    path: str = typer.Argument(..., help="Caminho do XLSX de ENTRADAS"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Registra entradas em lote a partir de um XLSX."""
    try:
        info = run_entrada_lote(path, db_path=db_path)
    except (EntregaError, ValueError) as e:
        _falhar(str(e), title="Entradas em Lote")
    console.print(Panel(
        f"Arquivo: {info['arquivo']}\nLinhas inseridas: {info['linhas_inseridas']}\n"
        f"Quantidade total: {info['quantidade_total']}",
        title="Processamento de Entradas em Lote",
    ))


@app.command("saldo")
def cmd_saldo(
    todos: bool = typer.Option(False, "--todos", help="Inclui produtos inativos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Saldo atual por produto."""
    columns, rows, msg = relatorio_saldos(apenas_ativos=not todos, db_path=db_path)
    _display_relatorio(columns, rows, msg, title="Saldos")


# -----------------------
# comandos de entrega
# -----------------------

@app.command("resolver")
def cmd_resolver(
    pedido: str = typer.Argument(..., help="Código do agendamento"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra os itens que o pedido exige com as proporções vigentes."""
    try:
        req = resolver_pedido(pedido, db_path=db_path)
    except EntregaError as e:
        _falhar(str(e), title="Resolver Pedido")
    _display_table(
        [{"produto_id": i.produto_id, "produto": i.produto_nome, "quantidade": i.quantidade} for i in req.itens],
        title=f"Itens de {req.cliente_nome or req.pedido_id} (total {req.total})",
    )
    for aviso in req.avisos:
        console.print(f"[yellow]Aviso:[/] {aviso}")


@app.command("validar")
def cmd_validar(
    pedidos: List[str] = typer.Argument(..., help="Códigos dos agendamentos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Confere se o saldo atende à demanda somada dos pedidos (não grava nada)."""
    cache = _cache(db_path)
    requisitos, erros = resolver_pedidos(pedidos, db_path=db_path, cache=cache)
    if erros:
        _falhar("\n".join(f"• {pid}: {msg}" for pid, msg in erros), title="Não foi possível calcular itens")
    faltantes = validar_estoque(requisitos, db_path=db_path)
    if faltantes:
        _display_faltantes(faltantes)
        raise typer.Exit(code=1)
    console.print(Panel(f"Estoque suficiente para {len(requisitos)} pedido(s).", border_style="green"))


@app.command("confirmar")
def cmd_confirmar(
    pedido: str = typer.Argument(..., help="Código do agendamento"),
    execucao: Optional[str] = typer.Option(None, "--execucao", help="Token da tentativa (reenvie o mesmo para repetir)"),
    obs: Optional[str] = typer.Option(None, "--obs", help="Observação da entrega"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Confirma a entrega com baixa automática no estoque."""
    try:
        res = confirmar_entrega(pedido, observacao=obs, execucao_id=execucao, db_path=db_path)
    except EntregaError as e:
        _falhar(str(e), title="Confirmação de Entrega")
    _display_commit(res)
    if not res.ok:
        raise typer.Exit(code=1)


@app.command("confirmar-lote")
def cmd_confirmar_lote(
    pedidos: List[str] = typer.Argument(..., help="Códigos dos agendamentos"),
    obs: Optional[str] = typer.Option(None, "--obs", help="Observação das entregas"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Confirma vários pedidos de uma vez."""
    res = confirmar_entregas_em_massa(pedidos, observacao=obs, db_path=db_path, cache=_cache(db_path))
    _display_lote(res)
    if not res.ok:
        raise typer.Exit(code=1)


@app.command("historico")
def cmd_historico(
    pedido: Optional[str] = typer.Option(None, help="Filtra por agendamento"),
    cliente: Optional[str] = typer.Option(None, help="Filtra por código do cliente"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Entregas já processadas."""
    rows = EntregaRepo(db_path).historico(pedido_id=pedido, cliente_id=cliente)
    _display_table(
        [
            {
                "data": r["data_execucao"],
                "pedido": r["pedido_id"],
                "cliente": r["cliente_nome"] or r["cliente_id"],
                "itens": ", ".join(f"{i['produto']}={i['quantidade']}" for i in r["itens"]),
                "execucao": r["execucao_id"],
            }
            for r in rows
        ],
        title="Histórico de Entregas",
    )


# -----------------------
# relatórios
# -----------------------

rel_app = typer.Typer(help="Relatórios")
app.add_typer(rel_app, name="rel")


@rel_app.command("necessidade")
def rel_necessidade(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Demanda dos pedidos agendados x saldo atual."""
    columns, rows, msg = relatorio_necessidade(db_path=db_path)
    _display_relatorio(columns, rows, msg, title="Necessidade dos Pedidos Agendados")


@rel_app.command("saldos")
def rel_saldos(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Saldo de todos os produtos (inclusive inativos)."""
    columns, rows, msg = relatorio_saldos(apenas_ativos=False, db_path=db_path)
    _display_relatorio(columns, rows, msg, title="Saldos")


def main():
    app()


if __name__ == "__main__":
    main()
