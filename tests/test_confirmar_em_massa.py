from unittest import mock

from entregas.domain.models import Movimento, ResultadoCommit, StatusCommit, STATUS_AGENDADO, STATUS_ENTREGUE
from entregas.infra.db import connect
from entregas.infra.migrations import apply_migrations
from entregas.infra.views import create_views
from entregas.infra.repositories import EntregaRepo, MovimentoRepo, PedidoRepo, ProdutoRepo
from entregas.usecases.confirmar_em_massa import confirmar_entregas_em_massa
from entregas.usecases.confirmar_entrega import registrar_entrega


def _db(tmp_path, saldo_bri=20, saldo_bei=20):
    db = str(tmp_path / "t.sqlite")
    apply_migrations(db)
    create_views(db)
    ProdutoRepo(db).upsert([
        {"id": "BRI", "nome": "Brigadeiro", "ordem_categoria": 1, "percentual": 60},
        {"id": "BEI", "nome": "Beijinho", "ordem_categoria": 1, "percentual": 40},
    ])
    MovimentoRepo(db).append(Movimento("BRI", "entrada", saldo_bri))
    MovimentoRepo(db).append(Movimento("BEI", "entrada", saldo_bei))
    PedidoRepo(db).upsert([
        {"id": "AG1", "cliente_id": "C1", "cliente_nome": "Padaria Sol", "quantidade_total": 10},
        {"id": "AG2", "cliente_id": "C2", "cliente_nome": "Café Lua", "quantidade_total": 5,
         "itens": [{"produto": "Brigadeiro", "quantidade": 5}]},
        {"id": "AG3", "cliente_id": "C3", "cliente_nome": "Bar Zé", "quantidade_total": 4,
         "itens": [{"produto": "Beijinho", "quantidade": 4}]},
    ])
    return db


def _movimentos(db):
    with connect(db) as c:
        return c.execute("SELECT COUNT(*) FROM movimentacao_estoque").fetchone()[0]


def test_lote_sucesso_total(tmp_path):
    db = _db(tmp_path)
    res = confirmar_entregas_em_massa(["AG1", "AG2", "AG3"], observacao="rota sul", db_path=db)
    assert res.status == "sucesso"
    assert res.ok
    assert res.sucessos == 3
    assert "3 de 3 entregas confirmadas" in res.resumo()
    # AG1: 6 BRI + 4 BEI; AG2: 5 BRI; AG3: 4 BEI
    assert MovimentoRepo(db).saldos() == {"BRI": 9, "BEI": 12}
    tokens = {r.execucao_id for r in res.por_pedido.values()}
    assert len(tokens) == 3
    assert all(PedidoRepo(db).get(pid).status == STATUS_ENTREGUE for pid in ["AG1", "AG2", "AG3"])


def test_lote_aborta_se_demanda_somada_excede_saldo(tmp_path):
    # BRI: AG1 pede 6, AG2 pede 5 = 11 > 10
    db = _db(tmp_path, saldo_bri=10)
    n = _movimentos(db)
    res = confirmar_entregas_em_massa(["AG1", "AG2", "AG3"], db_path=db)
    assert res.abortado
    assert res.status == "abortado"
    assert not res.ok
    assert [(f.produto_id, f.necessario, f.disponivel) for f in res.faltantes] == [("BRI", 11, 10)]
    assert res.por_pedido == {}
    assert _movimentos(db) == n
    assert "não possuem estoque suficiente" in res.resumo()


def test_lote_aborta_em_erro_de_resolucao(tmp_path):
    db = _db(tmp_path)
    PedidoRepo(db).upsert([{"id": "AG0", "cliente_id": "C0", "quantidade_total": 0}])
    n = _movimentos(db)
    res = confirmar_entregas_em_massa(["AG1", "AG0", "NOPE"], db_path=db)
    assert res.abortado
    assert [pid for pid, _ in res.erros_resolucao] == ["AG0", "NOPE"]
    assert _movimentos(db) == n
    assert PedidoRepo(db).get("AG1").status == STATUS_AGENDADO


def test_lote_ignora_ids_repetidos(tmp_path):
    db = _db(tmp_path, saldo_bri=5)
    res = confirmar_entregas_em_massa(["AG2", "AG2"], db_path=db)
    assert res.total_pedidos == 1
    assert res.status == "sucesso"
    assert MovimentoRepo(db).saldo("BRI") == 0


def test_lote_falha_de_commit_fica_isolada(tmp_path):
    db = _db(tmp_path)
    original = EntregaRepo.processar_entrega_idempotente

    def commit_com_concorrencia(self, pedido_id, execucao_id, observacao=None, tolerancia=0.01):
        if pedido_id == "AG2":
            # outro operador consome o brigadeiro entre a validação e o commit
            MovimentoRepo(self.db_path).append(Movimento("BRI", "ajuste", 10, sinal=-1))
        return original(self, pedido_id, execucao_id, observacao, tolerancia)

    with mock.patch.object(EntregaRepo, "processar_entrega_idempotente", commit_com_concorrencia):
        res = confirmar_entregas_em_massa(["AG1", "AG2", "AG3"], db_path=db)

    assert res.status == "parcial"
    assert res.ok
    assert res.sucessos == 2
    assert res.por_pedido["AG2"].status is StatusCommit.ESTOQUE_INSUFICIENTE
    assert [pid for pid, _, _ in res.falhas] == ["AG2"]
    assert "2 de 3 entregas confirmadas" in res.resumo()
    assert PedidoRepo(db).get("AG2").status == STATUS_AGENDADO
    assert PedidoRepo(db).get("AG3").status == STATUS_ENTREGUE
    # 20 - 6 (AG1) - 10 (ajuste); AG2 não baixou nada
    assert MovimentoRepo(db).saldo("BRI") == 4


def test_lote_nenhum_sucesso_e_falha(tmp_path):
    db = _db(tmp_path)
    with mock.patch(
        "entregas.usecases.confirmar_em_massa.registrar_entrega",
        side_effect=lambda pid, **kw: _falha(pid, kw["execucao_id"]),
    ):
        res = confirmar_entregas_em_massa(["AG2", "AG3"], db_path=db)
    assert res.status == "falha"
    assert not res.ok
    assert res.sucessos == 0


def _falha(pid, execucao_id):
    return ResultadoCommit(pid, execucao_id, StatusCommit.ERRO_DESCONHECIDO, "falhou", pid)


def test_lote_pedido_ja_entregue_nao_entra_na_demanda(tmp_path):
    db = _db(tmp_path, saldo_bri=15)
    PedidoRepo(db).upsert([
        {"id": "AG9", "cliente_id": "C9", "cliente_nome": "Doceria Mar", "quantidade_total": 10,
         "itens": [{"produto": "BRI", "quantidade": 10}]},
    ])
    assert registrar_entrega("AG9", db_path=db).status is StatusCommit.SUCESSO
    n = _movimentos(db)

    res = confirmar_entregas_em_massa(["AG9", "AG2"], db_path=db)
    assert res.abortado
    assert res.faltantes == []
    assert [pid for pid, _ in res.erros_resolucao] == ["AG9"]
    assert "já processada" in res.erros_resolucao[0][1]
    assert _movimentos(db) == n

    # sem o pedido entregue, o saldo restante atende AG2
    res = confirmar_entregas_em_massa(["AG2"], db_path=db)
    assert res.status == "sucesso"
    assert MovimentoRepo(db).saldo("BRI") == 0


def test_lote_erro_inesperado_no_commit_nao_interrompe(tmp_path):
    db = _db(tmp_path)
    original = EntregaRepo.processar_entrega_idempotente

    def commit_com_defeito(self, pedido_id, execucao_id, observacao=None, tolerancia=0.01):
        if pedido_id == "AG2":
            raise ValueError("itens_json corrompido")
        return original(self, pedido_id, execucao_id, observacao, tolerancia)

    with mock.patch.object(EntregaRepo, "processar_entrega_idempotente", commit_com_defeito):
        res = confirmar_entregas_em_massa(["AG1", "AG2", "AG3"], db_path=db)

    assert res.status == "parcial"
    assert res.sucessos == 2
    assert res.por_pedido["AG2"].status is StatusCommit.ERRO_DESCONHECIDO
    assert PedidoRepo(db).get("AG3").status == STATUS_ENTREGUE
