# entregas/infra/migrations.py
"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (catálogo, pedidos, livro de movimentações)
V2: token de execução nas movimentações + registro de entregas processadas
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Parâmetros K/V
    """
    CREATE TABLE IF NOT EXISTS params (
        chave TEXT PRIMARY KEY,
        valor TEXT
    );
    """,
    # Catálogo de produtos finais com proporção padrão
    """
    CREATE TABLE IF NOT EXISTS produto (
        id TEXT PRIMARY KEY,
        nome TEXT NOT NULL,
        ativo INTEGER NOT NULL DEFAULT 1,
        ordem_categoria INTEGER,
        percentual REAL NOT NULL DEFAULT 0
            CHECK (percentual >= 0 AND percentual <= 100)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS cliente (
        id TEXT PRIMARY KEY,
        nome TEXT
    );
    """,
    # Agendamentos de entrega
    """
    CREATE TABLE IF NOT EXISTS pedido (
        id TEXT PRIMARY KEY,
        cliente_id TEXT NOT NULL,
        quantidade_total INTEGER NOT NULL,
        tipo_pedido TEXT NOT NULL DEFAULT 'Padrão', -- 'Padrão' | 'Personalizado'
        status TEXT NOT NULL DEFAULT 'Agendado',   -- 'Agendado' | 'Entregue'
        data_prevista TEXT,
        data_entrega TEXT,
        FOREIGN KEY (cliente_id) REFERENCES cliente(id)
    );
    """,
    # Itens escolhidos pelo operador (apenas pedidos personalizados)
    """
    CREATE TABLE IF NOT EXISTS pedido_item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        pedido_id TEXT NOT NULL,
        produto_ref TEXT NOT NULL, -- nome ou id do produto
        quantidade INTEGER NOT NULL,
        FOREIGN KEY (pedido_id) REFERENCES pedido(id) ON DELETE CASCADE
    );
    """,
    # Livro de estoque (append-only)
    """
    CREATE TABLE IF NOT EXISTS movimentacao_estoque (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        produto_id TEXT NOT NULL,
        tipo TEXT NOT NULL CHECK (tipo IN ('entrada', 'saida', 'ajuste')),
        quantidade INTEGER NOT NULL CHECK (quantidade > 0),
        sinal INTEGER NOT NULL CHECK (sinal IN (1, -1)),
        data_movimentacao TEXT NOT NULL,
        observacao TEXT,
        referencia_tipo TEXT,
        referencia_id TEXT,
        FOREIGN KEY (produto_id) REFERENCES produto(id)
    );
    """,
]

SCHEMA_V2: List[str] = [
    # Um registro por token consumido; também é o histórico de entregas
    """
    CREATE TABLE IF NOT EXISTS entrega_execucao (
        execucao_id TEXT PRIMARY KEY,
        pedido_id TEXT NOT NULL,
        cliente_id TEXT,
        quantidade_total INTEGER,
        itens_json TEXT NOT NULL,
        observacao TEXT,
        data_execucao TEXT NOT NULL,
        FOREIGN KEY (pedido_id) REFERENCES pedido(id)
    );
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "movimentacao_estoque", "execucao_id", "execucao_id TEXT")
    for sql in SCHEMA_V2:
        conn.executescript(sql)


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2
