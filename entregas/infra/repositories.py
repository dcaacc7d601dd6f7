# entregas/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Classes:
- ParamsRepo
- ProdutoRepo      (catálogo + proporções padrão)
- PedidoRepo       (agendamentos de entrega e itens personalizados)
- MovimentoRepo    (livro de estoque: saldo e append)
- EntregaRepo      (commit atômico e idempotente de uma entrega)
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .cache import CatalogoCache
from .db import connect, transacao
from entregas.config import DEFAULTS
from entregas.domain.alocacao import resolver_itens, normalizar_ref
from entregas.domain.errors import EntregaError, InsufficientStockError, OrderNotFoundError
from entregas.domain.models import (
    ItemFaltante,
    Movimento,
    MOV_SAIDA,
    Pedido,
    Produto,
    STATUS_AGENDADO,
    STATUS_ENTREGUE,
    TIPO_PADRAO,
    TIPO_PERSONALIZADO,
)


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


def _rows(cur) -> List[Dict[str, Any]]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def _agora() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _fetch_catalogo(conn) -> List[Produto]:
    cur = conn.execute(
        """SELECT id, nome, ativo, ordem_categoria, percentual
           FROM produto"""
    )
    return [Produto.from_row(r) for r in _rows(cur)]


def _fetch_itens_pedido(conn, pedido_id: str) -> List[Dict[str, Any]]:
    cur = conn.execute(
        """SELECT produto_ref AS produto, quantidade
           FROM pedido_item WHERE pedido_id = ? ORDER BY id""",
        (pedido_id,),
    )
    return _rows(cur)


def _fetch_pedido(conn, pedido_id: str) -> Optional[Pedido]:
    cur = conn.execute(
        """SELECT pe.id, pe.cliente_id, cl.nome AS cliente_nome, pe.quantidade_total,
                  pe.tipo_pedido, pe.status, pe.data_prevista
           FROM pedido pe LEFT JOIN cliente cl ON cl.id = pe.cliente_id
           WHERE pe.id = ?""",
        (pedido_id,),
    )
    rows = _rows(cur)
    if not rows:
        return None
    pedido = Pedido.from_row(rows[0])
    if pedido.personalizado:
        pedido.itens_personalizados = _fetch_itens_pedido(conn, pedido.id)
    return pedido


def _saldo(conn, produto_id: str) -> int:
    row = conn.execute(
        "SELECT COALESCE(SUM(quantidade * sinal), 0) FROM movimentacao_estoque WHERE produto_id = ?",
        (produto_id,),
    ).fetchone()
    return int(row[0] or 0)


def _insert_movimento(conn, mov: Movimento) -> int:
    cur = conn.execute(
        """
        INSERT INTO movimentacao_estoque
            (produto_id, tipo, quantidade, sinal, data_movimentacao, observacao,
             referencia_tipo, referencia_id, execucao_id)
        VALUES
            (:produto_id, :tipo, :quantidade, :sinal, :data_movimentacao, :observacao,
             :referencia_tipo, :referencia_id, :execucao_id)
        """,
        {**asdict(mov), "data_movimentacao": mov.data_movimentacao or _agora()},
    )
    return int(cur.lastrowid)


# -------------------------
# Params
# -------------------------

class ParamsRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def set_many(self, items: Iterable[Tuple[str, str]]) -> None:
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO params (chave, valor)
                VALUES (?, ?)
                ON CONFLICT(chave) DO UPDATE SET valor=excluded.valor
                """,
                list(items),
            )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT valor FROM params WHERE chave = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_float(self, key: str, default: float) -> float:
        v = self.get(key, None)
        if v is None:
            return default
        try:
            return float(v)
        except ValueError:
            return default

    def tolerancia_percentual(self) -> float:
        return self.get_float("tolerancia_percentual", DEFAULTS.tolerancia_percentual)

    def cache_ttl_segundos(self) -> float:
        return self.get_float("cache_ttl_segundos", DEFAULTS.cache_ttl_segundos)


# -------------------------
# Produto
# -------------------------

class ProdutoRepo:
    def __init__(self, db_path: str, cache: Optional[CatalogoCache] = None):
        self.db_path = db_path
        self.cache = cache

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate()

    def upsert(self, rows: Iterable[Dict[str, Any]]) -> None:
        rows = [_as_dict(r) for r in rows]
        with connect(self.db_path) as c:
            for r in rows:
                payload = {
                    "id": r["id"],
                    "nome": r.get("nome") or r["id"],
                    "ativo": int(r.get("ativo", 1) or 0),
                    "ordem_categoria": r.get("ordem_categoria"),
                    "percentual": float(r.get("percentual") or 0.0),
                }
                c.execute(
                    """
                    INSERT INTO produto (id, nome, ativo, ordem_categoria, percentual)
                    VALUES (:id, :nome, :ativo, :ordem_categoria, :percentual)
                    ON CONFLICT(id) DO UPDATE SET
                        nome=excluded.nome,
                        ativo=excluded.ativo,
                        ordem_categoria=excluded.ordem_categoria,
                        percentual=excluded.percentual
                    """,
                    payload,
                )
        self._invalidate()

    def get_all(self) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            cur = c.execute(
                """SELECT id, nome, ativo, ordem_categoria, percentual
                   FROM produto ORDER BY nome"""
            )
            return _rows(cur)

    def _carregar_catalogo(self) -> List[Produto]:
        with connect(self.db_path) as c:
            return _fetch_catalogo(c)

    def get_catalogo(self) -> List[Produto]:
        """Catálogo completo (ativos e inativos), via cache quando houver."""
        if self.cache is None:
            return self._carregar_catalogo()
        return self.cache.get(self._carregar_catalogo)

    def buscar(self, ref: str) -> Optional[Produto]:
        """Localiza produto por id ou nome (sem diferenciar caixa)."""
        alvo = normalizar_ref(ref)
        catalogo = self.get_catalogo()
        for p in catalogo:
            if normalizar_ref(p.id) == alvo:
                return p
        for p in catalogo:
            if normalizar_ref(p.nome) == alvo:
                return p
        return None

    def definir_percentuais(self, percentuais: Mapping[str, float]) -> None:
        """Grava as proporções informadas; produtos não listados ficam com 0."""
        with connect(self.db_path) as c:
            c.execute("UPDATE produto SET percentual = 0")
            c.executemany(
                "UPDATE produto SET percentual = ? WHERE id = ?",
                [(float(v), k) for k, v in percentuais.items()],
            )
        self._invalidate()


# -------------------------
# Pedido
# -------------------------

class PedidoRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert(self, rows: Iterable[Dict[str, Any]]) -> None:
        """Grava pedidos (e clientes); itens personalizados são substituídos."""
        rows = [_as_dict(r) for r in rows]
        with connect(self.db_path) as c:
            for r in rows:
                c.execute(
                    """
                    INSERT INTO cliente (id, nome) VALUES (?, ?)
                    ON CONFLICT(id) DO UPDATE SET nome=COALESCE(excluded.nome, cliente.nome)
                    """,
                    (r["cliente_id"], r.get("cliente_nome")),
                )
                c.execute(
                    """
                    INSERT INTO pedido (id, cliente_id, quantidade_total, tipo_pedido, status, data_prevista)
                    VALUES (:id, :cliente_id, :quantidade_total, :tipo_pedido, :status, :data_prevista)
                    ON CONFLICT(id) DO UPDATE SET
                        cliente_id=excluded.cliente_id,
                        quantidade_total=excluded.quantidade_total,
                        tipo_pedido=excluded.tipo_pedido,
                        data_prevista=excluded.data_prevista
                    """,
                    {
                        "id": r["id"],
                        "cliente_id": r["cliente_id"],
                        "quantidade_total": int(r.get("quantidade_total") or 0),
                        "tipo_pedido": r.get("tipo_pedido") or (TIPO_PERSONALIZADO if r.get("itens") else TIPO_PADRAO),
                        "status": r.get("status") or STATUS_AGENDADO,
                        "data_prevista": r.get("data_prevista"),
                    },
                )
                c.execute("DELETE FROM pedido_item WHERE pedido_id = ?", (r["id"],))
                itens = r.get("itens") or []
                c.executemany(
                    "INSERT INTO pedido_item (pedido_id, produto_ref, quantidade) VALUES (?, ?, ?)",
                    [(r["id"], str(i["produto"]), i["quantidade"]) for i in itens],
                )

    def get(self, pedido_id: str) -> Optional[Pedido]:
        with connect(self.db_path) as c:
            return _fetch_pedido(c, pedido_id)

    def itens_personalizados(self, pedido_id: str) -> Optional[List[Dict[str, Any]]]:
        """Itens escolhidos pelo operador; None para pedidos padrão."""
        with connect(self.db_path) as c:
            row = c.execute("SELECT tipo_pedido FROM pedido WHERE id = ?", (pedido_id,)).fetchone()
            if row is None or (row[0] or "").strip().lower() != TIPO_PERSONALIZADO.lower():
                return None
            return _fetch_itens_pedido(c, pedido_id)

    def pendentes(self) -> List[Pedido]:
        with connect(self.db_path) as c:
            ids = [r[0] for r in c.execute(
                "SELECT id FROM vw_pedidos_pendentes ORDER BY data_prevista, id"
            ).fetchall()]
            return [_fetch_pedido(c, pid) for pid in ids]


# -------------------------
# Livro de estoque
# -------------------------

class MovimentoRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def append(self, mov: Movimento) -> int:
        """Acrescenta uma movimentação; recusa se o saldo ficaria negativo."""
        with transacao(self.db_path) as c:
            row = c.execute("SELECT nome FROM produto WHERE id = ?", (mov.produto_id,)).fetchone()
            if row is None:
                raise EntregaError(f"Produto {mov.produto_id} não cadastrado")
            if mov.efeito < 0:
                saldo = _saldo(c, mov.produto_id)
                if saldo + mov.efeito < 0:
                    falta = ItemFaltante(mov.produto_id, row[0], -mov.efeito, saldo)
                    raise InsufficientStockError(f"Saldo insuficiente. {falta.mensagem()}", [falta])
            return _insert_movimento(c, mov)

    def append_many(self, movimentos: Iterable[Movimento]) -> int:
        """Acrescenta várias movimentações de uma vez (todas ou nenhuma)."""
        movimentos = list(movimentos)
        with transacao(self.db_path) as c:
            efeito: Dict[str, int] = {}
            for mov in movimentos:
                row = c.execute("SELECT nome FROM produto WHERE id = ?", (mov.produto_id,)).fetchone()
                if row is None:
                    raise EntregaError(f"Produto {mov.produto_id} não cadastrado")
                efeito[mov.produto_id] = efeito.get(mov.produto_id, 0) + mov.efeito
                _insert_movimento(c, mov)
            for produto_id, delta in efeito.items():
                if _saldo(c, produto_id) < 0:
                    raise InsufficientStockError(f"Saldo de {produto_id} ficaria negativo ({delta:+d})")
        return len(movimentos)

    def saldo(self, produto_id: str) -> int:
        with connect(self.db_path) as c:
            return _saldo(c, produto_id)

    def saldos(self, produto_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        with connect(self.db_path) as c:
            rows = _rows(c.execute("SELECT produto_id, saldo FROM vw_saldo_produto"))
        out = {r["produto_id"]: int(r["saldo"] or 0) for r in rows}
        if produto_ids is None:
            return out
        return {pid: out.get(pid, 0) for pid in produto_ids}

    def listar(self, produto_id: Optional[str] = None, limite: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = """SELECT id, produto_id, tipo, quantidade, sinal, data_movimentacao, observacao,
                        referencia_tipo, referencia_id, execucao_id
                 FROM movimentacao_estoque"""
        params: List[Any] = []
        if produto_id is not None:
            sql += " WHERE produto_id = ?"
            params.append(produto_id)
        sql += " ORDER BY id DESC"
        if limite is not None:
            sql += " LIMIT ?"
            params.append(int(limite))
        with connect(self.db_path) as c:
            return _rows(c.execute(sql, params))


# -------------------------
# Entrega (commit atômico)
# -------------------------

class EntregaRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def processar_entrega_idempotente(
        self,
        pedido_id: str,
        execucao_id: str,
        observacao: Optional[str] = None,
        tolerancia: float = DEFAULTS.tolerancia_percentual,
    ) -> Dict[str, Any]:
        """Baixa o estoque de uma entrega em uma única transação.

        Dentro de BEGIN IMMEDIATE: se o token já foi consumido por este
        pedido, devolve o resultado anterior sem gravar nada; senão
        recalcula os itens a partir do catálogo atual, confere cada saldo
        vivo, grava uma saída por produto, registra o token e marca o
        pedido como entregue. Qualquer exceção desfaz tudo.

        Returns:
            dict com status ('sucesso' | 'ja_processada'), pedido_id,
            execucao_id, itens e data_execucao.

        Raises:
            OrderNotFoundError, InvalidQuantityError, ConfigurationError,
            NoValidItemsError, InsufficientStockError, EntregaError.
        """
        with transacao(self.db_path) as c:
            anterior = c.execute(
                "SELECT pedido_id, itens_json, data_execucao FROM entrega_execucao WHERE execucao_id = ?",
                (execucao_id,),
            ).fetchone()
            if anterior is not None:
                if anterior["pedido_id"] != pedido_id:
                    raise EntregaError(
                        f"Execução {execucao_id} já utilizada para outro pedido",
                        pedido_id=pedido_id,
                    )
                return {
                    "status": "ja_processada",
                    "pedido_id": pedido_id,
                    "execucao_id": execucao_id,
                    "itens": json.loads(anterior["itens_json"]),
                    "data_execucao": anterior["data_execucao"],
                }

            pedido = _fetch_pedido(c, pedido_id)
            if pedido is None:
                raise OrderNotFoundError(f"Agendamento {pedido_id} não encontrado", pedido_id=pedido_id)
            if pedido.status != STATUS_AGENDADO:
                raise OrderNotFoundError(
                    f"Entrega de {pedido.rotulo} já processada anteriormente (status: {pedido.status})",
                    pedido_id=pedido_id,
                )

            requisito = resolver_itens(pedido, _fetch_catalogo(c), tolerancia)
            itens = [i for i in requisito.itens if i.quantidade > 0]

            faltantes = []
            for item in itens:
                disponivel = _saldo(c, item.produto_id)
                if disponivel < item.quantidade:
                    faltantes.append(ItemFaltante(item.produto_id, item.produto_nome, item.quantidade, disponivel))
            if faltantes:
                detalhes = "; ".join(f.mensagem() for f in faltantes)
                raise InsufficientStockError(
                    f"Saldo insuficiente para {pedido.rotulo}: {detalhes}",
                    faltantes,
                    pedido_id=pedido_id,
                )

            agora = _agora()
            for item in itens:
                _insert_movimento(c, Movimento(
                    produto_id=item.produto_id,
                    tipo=MOV_SAIDA,
                    quantidade=item.quantidade,
                    data_movimentacao=agora,
                    observacao=observacao or f"Entrega {pedido.rotulo}",
                    referencia_tipo="entrega",
                    referencia_id=pedido_id,
                    execucao_id=execucao_id,
                ))

            itens_json = [
                {"produto_id": i.produto_id, "produto": i.produto_nome, "quantidade": i.quantidade}
                for i in itens
            ]
            c.execute(
                """
                INSERT INTO entrega_execucao
                    (execucao_id, pedido_id, cliente_id, quantidade_total, itens_json, observacao, data_execucao)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (execucao_id, pedido_id, pedido.cliente_id, pedido.quantidade_total,
                 json.dumps(itens_json, ensure_ascii=False), observacao, agora),
            )
            c.execute(
                "UPDATE pedido SET status = ?, data_entrega = ? WHERE id = ?",
                (STATUS_ENTREGUE, agora, pedido_id),
            )
            return {
                "status": "sucesso",
                "pedido_id": pedido_id,
                "execucao_id": execucao_id,
                "itens": itens_json,
                "data_execucao": agora,
            }

    def execucao_registrada(self, execucao_id: str) -> bool:
        """True se o token já foi consumido por alguma entrega."""
        with connect(self.db_path) as c:
            row = c.execute("SELECT 1 FROM entrega_execucao WHERE execucao_id = ?", (execucao_id,)).fetchone()
        return row is not None

    def historico(self, pedido_id: Optional[str] = None, cliente_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Entregas processadas (uma linha por token consumido)."""
        sql = """SELECT e.execucao_id, e.pedido_id, e.cliente_id, cl.nome AS cliente_nome,
                        e.quantidade_total, e.itens_json, e.observacao, e.data_execucao
                 FROM entrega_execucao e LEFT JOIN cliente cl ON cl.id = e.cliente_id"""
        conds, params = [], []
        if pedido_id is not None:
            conds.append("e.pedido_id = ?")
            params.append(pedido_id)
        if cliente_id is not None:
            conds.append("e.cliente_id = ?")
            params.append(cliente_id)
        if conds:
            sql += " WHERE " + " AND ".join(conds)
        sql += " ORDER BY e.data_execucao DESC"
        with connect(self.db_path) as c:
            rows = _rows(c.execute(sql, params))
        for r in rows:
            r["itens"] = json.loads(r.pop("itens_json") or "[]")
        return rows
