import json
from pathlib import Path

import pandas as pd
from typer.testing import CliRunner

from entregas.adapters.cli import app
from entregas.infra.repositories import EntregaRepo, MovimentoRepo, PedidoRepo

runner = CliRunner()


def _migrate(tmp_path: Path) -> str:
    db_path = str(tmp_path / "entregas_test.sqlite")
    result = runner.invoke(app, ["migrate", "--db", db_path])
    assert result.exit_code == 0, result.output
    return db_path


def _catalogo(db_path: str) -> None:
    for args in (["BRI", "--nome", "Brigadeiro", "--ordem", "1"], ["BEI", "--nome", "Beijinho", "--ordem", "1"]):
        result = runner.invoke(app, ["produtos", "add", *args, "--db", db_path])
        assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["proporcoes", "set", "Brigadeiro=60", "Beijinho=40", "--db", db_path])
    assert result.exit_code == 0, result.output


def test_cli_migrate_and_params_show(tmp_path: Path):
    db_path = _migrate(tmp_path)
    result = runner.invoke(app, ["params", "show", "--json", "--db", db_path])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["tolerancia_percentual"] == 0.01
    assert data["cache_ttl_segundos"] == 300.0


def test_cli_params_set_and_get(tmp_path: Path):
    db_path = _migrate(tmp_path)
    result = runner.invoke(app, ["params", "set", "--db", db_path, "--tolerancia-percentual", "0.5"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["params", "get", "tolerancia_percentual", "--db", db_path])
    assert result.exit_code == 0
    assert result.stdout.strip() == "0.5"

    result = runner.invoke(app, ["params", "set", "--db", db_path])
    assert result.exit_code == 1


def test_cli_proporcoes_soma_invalida(tmp_path: Path):
    db_path = _migrate(tmp_path)
    runner.invoke(app, ["produtos", "add", "BRI", "--db", db_path])
    result = runner.invoke(app, ["proporcoes", "set", "BRI=90", "--db", db_path])
    assert result.exit_code == 1
    result = runner.invoke(app, ["proporcoes", "set", "BRI", "--db", db_path])
    assert result.exit_code == 1


def test_cli_fluxo_entrega(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)

    assert runner.invoke(app, ["entrada", "BRI", "10", "--db", db_path]).exit_code == 0
    assert runner.invoke(app, ["entrada", "Beijinho", "10", "--db", db_path]).exit_code == 0
    result = runner.invoke(app, ["pedidos", "add", "AG1", "--cliente", "Padaria Sol", "--quantidade", "7", "--db", db_path])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["resolver", "AG1", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "Brigadeiro" in result.output

    result = runner.invoke(app, ["validar", "AG1", "--db", db_path])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["confirmar", "AG1", "--execucao", "exec-1", "--obs", "rota", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "sucesso" in result.output
    assert MovimentoRepo(db_path).saldos() == {"BRI": 6, "BEI": 7}

    # repetir o mesmo token não baixa de novo
    result = runner.invoke(app, ["confirmar", "AG1", "--execucao", "exec-1", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "ja_processada" in result.output
    assert MovimentoRepo(db_path).saldos() == {"BRI": 6, "BEI": 7}

    assert len(EntregaRepo(db_path).historico()) == 1
    assert runner.invoke(app, ["historico", "--db", db_path]).exit_code == 0


def test_cli_confirmar_sem_estoque(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    runner.invoke(app, ["pedidos", "add", "AG1", "--cliente", "Sol", "--itens", "Brigadeiro: 3", "--db", db_path])

    result = runner.invoke(app, ["validar", "AG1", "--db", db_path])
    assert result.exit_code == 1

    result = runner.invoke(app, ["confirmar", "AG1", "--db", db_path])
    assert result.exit_code == 1
    assert "estoque_insuficiente" in result.output


def test_cli_confirmar_pedido_inexistente(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    result = runner.invoke(app, ["confirmar", "NOPE", "--db", db_path])
    assert result.exit_code == 1


def test_cli_confirmar_lote(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    runner.invoke(app, ["entrada", "BRI", "20", "--db", db_path])
    runner.invoke(app, ["pedidos", "add", "AG1", "--cliente", "Sol", "--itens", "BRI: 5", "--db", db_path])
    runner.invoke(app, ["pedidos", "add", "AG2", "--cliente", "Lua", "--itens", "BRI: 6", "--db", db_path])

    result = runner.invoke(app, ["confirmar-lote", "AG1", "AG2", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert MovimentoRepo(db_path).saldo("BRI") == 9
    assert PedidoRepo(db_path).pendentes() == []


def test_cli_ajuste_e_saldo(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    runner.invoke(app, ["entrada", "BRI", "5", "--db", db_path])
    assert runner.invoke(app, ["ajuste", "BRI", "2", "--negativo", "--db", db_path]).exit_code == 0
    assert runner.invoke(app, ["ajuste", "BRI", "9", "--negativo", "--db", db_path]).exit_code == 1
    assert MovimentoRepo(db_path).saldo("BRI") == 3
    result = runner.invoke(app, ["saldo", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "Brigadeiro" in result.output


def test_cli_lotes_xlsx(tmp_path: Path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    entradas = str(tmp_path / "entradas.xlsx")
    pd.DataFrame({"Produto": ["BRI", "BEI"], "Quantidade": ["8", "4"]}).to_excel(entradas, index=False)
    pedidos = str(tmp_path / "pedidos.xlsx")
    pd.DataFrame({
        "Pedido": ["AG1", "AG2"],
        "Cliente": ["Sol", "Lua"],
        "Quantidade Total": ["5", None],
        "Itens": [None, "Beijinho: 2"],
    }).to_excel(pedidos, index=False)

    result = runner.invoke(app, ["entrada-lotes", entradas, "--db", db_path])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["pedidos", "lote", pedidos, "--db", db_path])
    assert result.exit_code == 0, result.output
    assert PedidoRepo(db_path).get("AG2").quantidade_total == 2

    result = runner.invoke(app, ["rel", "necessidade", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "Beijinho" in result.output


def test_cli_confirmar_repetido_apos_esgotar_estoque(tmp_path):
    db_path = _migrate(tmp_path)
    _catalogo(db_path)
    runner.invoke(app, ["entrada", "BRI", "3", "--db", db_path])
    runner.invoke(app, ["pedidos", "add", "AG1", "--cliente", "Sol", "--itens", "BRI: 3", "--db", db_path])

    result = runner.invoke(app, ["confirmar", "AG1", "--execucao", "tok-1", "--db", db_path])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["confirmar", "AG1", "--execucao", "tok-1", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "ja_processada" in result.output
    assert MovimentoRepo(db_path).saldo("BRI") == 0
