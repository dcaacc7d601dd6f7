"""
Exceções de domínio do núcleo de entregas.

Todas carregam dados suficientes para serem exibidas diretamente a um
operador (nome do produto, quantidades, pedido), sem novas consultas.
"""

from __future__ import annotations

from typing import List, Optional


class EntregaError(Exception):
    """Base das falhas de negócio de uma entrega."""

    def __init__(self, message: str, pedido_id: Optional[str] = None):
        super().__init__(message)
        self.pedido_id = pedido_id


class ConfigurationError(EntregaError):
    """Não há produtos ativos com proporção positiva (ou proporções inválidas)."""


class NoValidItemsError(EntregaError):
    """Pedido personalizado sem nenhum item casado com produto ativo."""


class OrderNotFoundError(EntregaError):
    """Pedido inexistente ou que não está mais pendente de entrega."""


class InvalidQuantityError(EntregaError):
    """Quantidade total não positiva ou quantidade de item negativa."""


class InsufficientStockError(EntregaError):
    """Saldo insuficiente para um ou mais produtos."""

    def __init__(self, message: str, faltantes: Optional[List] = None, pedido_id: Optional[str] = None):
        super().__init__(message, pedido_id=pedido_id)
        self.faltantes = list(faltantes or [])
