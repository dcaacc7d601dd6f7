import pytest

from entregas.domain.alocacao import resolver_itens
from entregas.domain.errors import (
    ConfigurationError,
    InvalidQuantityError,
    NoValidItemsError,
    OrderNotFoundError,
)
from entregas.domain.models import Pedido, Produto, STATUS_ENTREGUE, TIPO_PERSONALIZADO
from entregas.infra.migrations import apply_migrations
from entregas.infra.views import create_views
from entregas.infra.repositories import PedidoRepo, ProdutoRepo
from entregas.usecases.resolver_itens import resolver_pedido, resolver_pedidos


CATALOGO = [
    Produto("BRI", "Brigadeiro", ativo=1, ordem_categoria=1, percentual=60),
    Produto("BEI", "Beijinho", ativo=1, ordem_categoria=1, percentual=40),
    Produto("CAS", "Casadinho", ativo=0, ordem_categoria=2, percentual=0),
    Produto("OLH", "Olho de sogra", ativo=1, ordem_categoria=2, percentual=0),
]


def _pedido(**kw):
    base = dict(id="AG1", cliente_id="C1", cliente_nome="Padaria Sol", quantidade_total=7)
    base.update(kw)
    return Pedido(**base)


# -------------------------
# domínio (puro)
# -------------------------

def test_padrao_usa_proporcoes_do_catalogo():
    req = resolver_itens(_pedido(), CATALOGO)
    assert [(i.produto_id, i.quantidade) for i in req.itens] == [("BEI", 3), ("BRI", 4)]
    assert req.total == 7
    assert req.avisos == []


def test_padrao_ignora_inativos_e_zerados():
    catalogo = CATALOGO + [Produto("X", "Inativo", ativo=0, percentual=50)]
    req = resolver_itens(_pedido(quantidade_total=10), catalogo)
    assert {i.produto_id for i in req.itens} == {"BRI", "BEI"}


def test_padrao_sem_proporcoes_falha():
    catalogo = [Produto("A", "A", percentual=0), Produto("B", "B", ativo=0, percentual=100)]
    with pytest.raises(ConfigurationError) as exc:
        resolver_itens(_pedido(), catalogo)
    assert exc.value.pedido_id == "AG1"


def test_padrao_soma_fora_de_100_gera_aviso_e_normaliza():
    catalogo = [Produto("A", "A", percentual=30), Produto("B", "B", percentual=30)]
    req = resolver_itens(_pedido(quantidade_total=10), catalogo)
    assert req.total == 10
    assert len(req.avisos) == 1


@pytest.mark.parametrize("total", [0, -3])
def test_quantidade_total_invalida(total):
    with pytest.raises(InvalidQuantityError):
        resolver_itens(_pedido(quantidade_total=total), CATALOGO)


def test_personalizado_casa_por_nome_e_id():
    itens = [
        {"produto": "brigadeiro", "quantidade": 5},
        {"produto": "BEI", "quantidade": 2},
        {"produto": "  Brigadeiro ", "quantidade": 1},
    ]
    req = resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)
    assert [(i.produto_id, i.quantidade) for i in req.itens] == [("BEI", 2), ("BRI", 6)]


def test_personalizado_ignora_desconhecido_inativo_e_zero():
    itens = [
        {"produto": "Brigadeiro", "quantidade": 5},
        {"produto": "Pudim", "quantidade": 3},
        {"produto": "Casadinho", "quantidade": 2},
        {"produto": "Beijinho", "quantidade": 0},
    ]
    req = resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)
    assert [(i.produto_id, i.quantidade) for i in req.itens] == [("BRI", 5)]
    assert len(req.avisos) == 2


def test_personalizado_sem_item_valido():
    itens = [{"produto": "Pudim", "quantidade": 3}]
    with pytest.raises(NoValidItemsError):
        resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)


def test_personalizado_sem_itens():
    with pytest.raises(NoValidItemsError):
        resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=[]), CATALOGO)


def test_personalizado_quantidade_negativa():
    itens = [{"produto": "Brigadeiro", "quantidade": -1}]
    with pytest.raises(InvalidQuantityError):
        resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)


@pytest.mark.parametrize("qtd", [2.9, "2.5", "muito", True])
def test_personalizado_quantidade_nao_inteira(qtd):
    itens = [{"produto": "Brigadeiro", "quantidade": qtd}]
    with pytest.raises(InvalidQuantityError):
        resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)


def test_personalizado_aceita_inteiro_em_texto_ou_float():
    itens = [{"produto": "Brigadeiro", "quantidade": "3"}, {"produto": "Beijinho", "quantidade": 2.0}]
    req = resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), CATALOGO)
    assert [(i.produto_id, i.quantidade) for i in req.itens] == [("BEI", 2), ("BRI", 3)]


def test_personalizado_nao_usa_proporcoes():
    catalogo = [Produto("A", "Alfajor", percentual=0)]
    itens = [{"produto": "Alfajor", "quantidade": 4}]
    req = resolver_itens(_pedido(tipo_pedido=TIPO_PERSONALIZADO, itens_personalizados=itens), catalogo)
    assert req.total == 4


# -------------------------
# use case (SQLite)
# -------------------------

def _seed(db_path):
    apply_migrations(db_path)
    create_views(db_path)
    ProdutoRepo(db_path).upsert([
        {"id": "BRI", "nome": "Brigadeiro", "ordem_categoria": 1, "percentual": 60},
        {"id": "BEI", "nome": "Beijinho", "ordem_categoria": 1, "percentual": 40},
    ])
    PedidoRepo(db_path).upsert([
        {"id": "AG1", "cliente_id": "C1", "cliente_nome": "Padaria Sol", "quantidade_total": 7},
        {"id": "AG2", "cliente_id": "C2", "cliente_nome": "Café Lua", "quantidade_total": 4,
         "itens": [{"produto": "Beijinho", "quantidade": 4}]},
        {"id": "AG3", "cliente_id": "C3", "cliente_nome": "Bar Zé", "quantidade_total": 0},
    ])


def test_resolver_pedido_padrao(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    req = resolver_pedido("AG1", db_path=db)
    assert req.cliente_nome == "Padaria Sol"
    assert {i.produto_id: i.quantidade for i in req.itens} == {"BRI": 4, "BEI": 3}


def test_resolver_pedido_personalizado(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    req = resolver_pedido("AG2", db_path=db)
    assert [(i.produto_id, i.quantidade) for i in req.itens] == [("BEI", 4)]


def test_resolver_pedido_inexistente(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    with pytest.raises(OrderNotFoundError):
        resolver_pedido("NOPE", db_path=db)


def test_resolver_usa_proporcoes_vigentes(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    ProdutoRepo(db).definir_percentuais({"BRI": 100})
    req = resolver_pedido("AG1", db_path=db)
    assert {i.produto_id: i.quantidade for i in req.itens} == {"BRI": 7}


def test_resolver_pedidos_coleta_erros(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    requisitos, erros = resolver_pedidos(["AG1", "AG3", "NOPE"], db_path=db)
    assert [r.pedido_id for r in requisitos] == ["AG1"]
    assert [pid for pid, _ in erros] == ["AG3", "NOPE"]


def test_resolver_pedido_ja_entregue(tmp_path):
    db = str(tmp_path / "t.sqlite")
    _seed(db)
    PedidoRepo(db).upsert([
        {"id": "AG9", "cliente_id": "C9", "cliente_nome": "Doceria Mar", "quantidade_total": 3,
         "status": STATUS_ENTREGUE},
    ])
    with pytest.raises(OrderNotFoundError, match="já processada"):
        resolver_pedido("AG9", db_path=db)
    _, erros = resolver_pedidos(["AG1", "AG9"], db_path=db)
    assert [pid for pid, _ in erros] == ["AG9"]
