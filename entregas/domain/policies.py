"""
Políticas de validação de estoque e de configuração de proporções.

Este módulo contém as regras puras usadas pela camada de aplicação para
agregar a demanda de vários pedidos, compará-la com os saldos do livro
de estoque e validar a configuração de proporções padrão antes de
gravá-la.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Tuple

from .errors import ConfigurationError
from .models import ItemFaltante, Requisito


def agregar_demanda(requisitos: Iterable[Requisito]) -> Dict[str, Tuple[str, int]]:
    """Soma as quantidades por produto em todos os requisitos.

    A validação de um lote precisa olhar a demanda combinada: checar
    pedido a pedido deixaria passar um lote que, somado, excede o saldo.

    Args:
        requisitos: requisitos resolvidos de um ou mais pedidos.

    Returns:
        produto_id -> (nome do produto, quantidade total). Produtos com
        quantidade zero não entram.
    """
    demanda: Dict[str, Tuple[str, int]] = {}
    for req in requisitos:
        for item in req.itens:
            if not item.produto_id or int(item.quantidade) <= 0:
                continue
            nome, qtd = demanda.get(item.produto_id, (item.produto_nome, 0))
            demanda[item.produto_id] = (nome, qtd + int(item.quantidade))
    return demanda


def comparar_com_saldos(
    demanda: Mapping[str, Tuple[str, int]],
    saldos: Mapping[str, int],
) -> List[ItemFaltante]:
    """Gera uma entrada de falta para cada produto com saldo abaixo da demanda.

    Produtos sem saldo conhecido são tratados como saldo zero.
    """
    faltantes: List[ItemFaltante] = []
    for produto_id, (nome, necessario) in demanda.items():
        disponivel = int(saldos.get(produto_id, 0) or 0)
        if disponivel < necessario:
            faltantes.append(ItemFaltante(produto_id, nome, necessario, disponivel))
    return faltantes


def validar_proporcoes(percentuais: Mapping[str, float], tolerancia: float = 0.01) -> float:
    """Valida proporções na hora de configurar (não na hora de alocar).

    Regras:
        - cada percentual em [0, 100];
        - soma dos percentuais = 100 dentro de ``tolerancia``.

    Returns:
        A soma calculada.

    Raises:
        ConfigurationError: se alguma regra for violada.
    """
    total = 0.0
    for produto_id, pct in percentuais.items():
        try:
            val = float(pct)
        except (TypeError, ValueError):
            raise ConfigurationError(f"percentual inválido para {produto_id}: {pct!r}")
        if val < 0 or val > 100:
            raise ConfigurationError(f"percentual fora de 0..100 para {produto_id}: {val}")
        total += val
    if abs(total - 100.0) > tolerancia:
        raise ConfigurationError(f"A soma dos percentuais deve ser exatamente 100% (atual: {total:.2f}%)")
    return total
