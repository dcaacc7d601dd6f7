# entregas/infra/views.py
"""
Criação de views auxiliares para consultas frequentes.

Views criadas:
- vw_saldo_produto:     saldo por produto (soma assinada das movimentações).
- vw_pedidos_pendentes: pedidos agendados com o nome do cliente.

Obs.:
- As views assumem que as migrações V1→V2 já foram aplicadas.
- Um conjunto de índices úteis também é criado, caso não existam.
"""

from __future__ import annotations

from .db import connect


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        c.executescript(
            """
            ---------------------------
            -- Saldo por produto (inclui produtos sem movimentação)
            ---------------------------
            DROP VIEW IF EXISTS vw_saldo_produto;
            CREATE VIEW vw_saldo_produto AS
            SELECT
                p.id   AS produto_id,
                p.nome AS produto_nome,
                p.ativo,
                COALESCE(SUM(m.quantidade * m.sinal), 0) AS saldo
            FROM produto p
            LEFT JOIN movimentacao_estoque m ON m.produto_id = p.id
            GROUP BY p.id, p.nome, p.ativo;

            ---------------------------
            -- Pedidos aguardando entrega
            ---------------------------
            DROP VIEW IF EXISTS vw_pedidos_pendentes;
            CREATE VIEW vw_pedidos_pendentes AS
            SELECT
                pe.id,
                pe.cliente_id,
                cl.nome AS cliente_nome,
                pe.quantidade_total,
                pe.tipo_pedido,
                pe.status,
                date(pe.data_prevista) AS data_prevista
            FROM pedido pe
            LEFT JOIN cliente cl ON cl.id = pe.cliente_id
            WHERE pe.status = 'Agendado';
            """
        )

        c.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_mov_produto   ON movimentacao_estoque(produto_id);
            CREATE INDEX IF NOT EXISTS idx_mov_data      ON movimentacao_estoque(data_movimentacao);
            CREATE INDEX IF NOT EXISTS idx_mov_execucao  ON movimentacao_estoque(execucao_id);
            CREATE INDEX IF NOT EXISTS idx_pedido_status ON pedido(status);
            CREATE INDEX IF NOT EXISTS idx_pedido_item   ON pedido_item(pedido_id);
            CREATE INDEX IF NOT EXISTS idx_exec_pedido   ON entrega_execucao(pedido_id);
            """
        )
