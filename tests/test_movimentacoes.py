import pandas as pd
import pytest

from entregas.domain.errors import EntregaError, InsufficientStockError, InvalidQuantityError
from entregas.infra.migrations import apply_migrations
from entregas.infra.views import create_views
from entregas.infra.repositories import MovimentoRepo, ProdutoRepo
from entregas.usecases.movimentacoes import registrar_ajuste, registrar_entrada, run_entrada_lote


def _db(tmp_path):
    db = str(tmp_path / "t.sqlite")
    apply_migrations(db)
    create_views(db)
    ProdutoRepo(db).upsert([
        {"id": "BRI", "nome": "Brigadeiro", "percentual": 60},
        {"id": "BEI", "nome": "Beijinho", "percentual": 40},
    ])
    return db


def test_registrar_entrada_por_nome(tmp_path):
    db = _db(tmp_path)
    rec = registrar_entrada("brigadeiro", 12, observacao="fornada 1", data="2025-03-01", db_path=db)
    assert rec["produto_id"] == "BRI"
    assert rec["saldo"] == 12
    mov = MovimentoRepo(db).listar(produto_id="BRI")[0]
    assert (mov["tipo"], mov["sinal"], mov["data_movimentacao"]) == ("entrada", 1, "2025-03-01")


@pytest.mark.parametrize("qtd", [0, -2, 1.5])
def test_registrar_entrada_quantidade_invalida(tmp_path, qtd):
    db = _db(tmp_path)
    with pytest.raises(InvalidQuantityError):
        registrar_entrada("BRI", qtd, db_path=db)


def test_registrar_entrada_produto_desconhecido(tmp_path):
    db = _db(tmp_path)
    with pytest.raises(EntregaError):
        registrar_entrada("Pudim", 3, db_path=db)


def test_registrar_ajuste_positivo_e_negativo(tmp_path):
    db = _db(tmp_path)
    registrar_entrada("BEI", 10, db_path=db)
    assert registrar_ajuste("BEI", -4, observacao="quebra", db_path=db)["saldo"] == 6
    assert registrar_ajuste("BEI", 1, db_path=db)["saldo"] == 7
    sinais = [m["sinal"] for m in MovimentoRepo(db).listar(produto_id="BEI") if m["tipo"] == "ajuste"]
    assert sorted(sinais) == [-1, 1]


def test_registrar_ajuste_nao_deixa_saldo_negativo(tmp_path):
    db = _db(tmp_path)
    registrar_entrada("BEI", 2, db_path=db)
    with pytest.raises(InsufficientStockError):
        registrar_ajuste("BEI", -3, db_path=db)
    assert MovimentoRepo(db).saldo("BEI") == 2


def test_registrar_ajuste_zero(tmp_path):
    db = _db(tmp_path)
    with pytest.raises(InvalidQuantityError):
        registrar_ajuste("BEI", 0, db_path=db)


def _xlsx(tmp_path, data):
    path = str(tmp_path / "entradas.xlsx")
    pd.DataFrame(data).to_excel(path, index=False)
    return path


def test_run_entrada_lote(tmp_path):
    db = _db(tmp_path)
    path = _xlsx(tmp_path, {
        "Produto": ["Brigadeiro", "BEI", "brigadeiro"],
        "Qtd": ["10 UN - Unidades", "5", "3"],
        "Data de entrada": ["2025-01-02", "03/01/2025", ""],
        "Obs": ["forno 1", None, None],
    })
    res = run_entrada_lote(path, db_path=db)
    assert res["linhas_inseridas"] == 3
    assert res["quantidade_total"] == 18
    assert MovimentoRepo(db).saldos() == {"BRI": 13, "BEI": 5}


def test_run_entrada_lote_tudo_ou_nada(tmp_path):
    db = _db(tmp_path)
    path = _xlsx(tmp_path, {
        "Produto": ["Brigadeiro", "Pudim"],
        "Quantidade": ["10", "5"],
    })
    with pytest.raises(EntregaError) as exc:
        run_entrada_lote(path, db_path=db)
    assert "Linha 3" in str(exc.value)
    assert MovimentoRepo(db).saldo("BRI") == 0


def test_run_entrada_lote_quantidade_fracionada(tmp_path):
    db = _db(tmp_path)
    path = _xlsx(tmp_path, {"Produto": ["Brigadeiro"], "Quantidade": ["2.5 UN"]})
    with pytest.raises(InvalidQuantityError):
        run_entrada_lote(path, db_path=db)
