"""
Modelos (dataclasses) do domínio de entregas.

Observação importante:
- Os repositórios devolvem dicionários; os use cases convertem para estas
  dataclasses na fronteira (ver `Produto.from_row` / `Pedido.from_row`).
- `Requisito`, `ItemFaltante`, `ResultadoCommit` e `ResultadoLote` são
  efêmeros: nunca persistidos, recalculados a cada tentativa.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


TIPO_PADRAO = "Padrão"
TIPO_PERSONALIZADO = "Personalizado"

STATUS_AGENDADO = "Agendado"
STATUS_ENTREGUE = "Entregue"

MOV_ENTRADA = "entrada"
MOV_SAIDA = "saida"
MOV_AJUSTE = "ajuste"
TIPOS_MOVIMENTO = (MOV_ENTRADA, MOV_SAIDA, MOV_AJUSTE)


@dataclass
class Produto:
    """Produto final do catálogo, com sua proporção padrão."""
    id: str
    nome: str
    ativo: int = 1                         # 0/1
    ordem_categoria: Optional[int] = None  # desempate determinístico
    percentual: float = 0.0                # 0..100

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Produto":
        ordem = row.get("ordem_categoria")
        return cls(
            id=str(row["id"]),
            nome=str(row.get("nome") or row["id"]),
            ativo=int(row.get("ativo") or 0),
            ordem_categoria=int(ordem) if ordem is not None else None,
            percentual=float(row.get("percentual") or 0.0),
        )


@dataclass
class Pedido:
    """Agendamento de entrega para um cliente."""
    id: str
    cliente_id: str
    cliente_nome: Optional[str] = None
    quantidade_total: int = 0
    tipo_pedido: str = TIPO_PADRAO
    status: str = STATUS_AGENDADO
    itens_personalizados: Optional[List[Dict[str, Any]]] = None
    data_prevista: Optional[str] = None

    @property
    def personalizado(self) -> bool:
        return (self.tipo_pedido or "").strip().lower() == TIPO_PERSONALIZADO.lower()

    @property
    def rotulo(self) -> str:
        """Identificação amigável (nome do cliente ou id do pedido)."""
        return self.cliente_nome or self.id

    @classmethod
    def from_row(cls, row: Dict[str, Any], itens: Optional[List[Dict[str, Any]]] = None) -> "Pedido":
        return cls(
            id=str(row["id"]),
            cliente_id=str(row.get("cliente_id") or ""),
            cliente_nome=row.get("cliente_nome"),
            quantidade_total=int(row.get("quantidade_total") or 0),
            tipo_pedido=row.get("tipo_pedido") or TIPO_PADRAO,
            status=row.get("status") or STATUS_AGENDADO,
            itens_personalizados=itens,
            data_prevista=row.get("data_prevista"),
        )


@dataclass
class ItemRequerido:
    produto_id: str
    produto_nome: str
    quantidade: int


@dataclass
class Requisito:
    """Itens necessários para atender um pedido (resolvidos agora)."""
    pedido_id: str
    cliente_nome: Optional[str]
    itens: List[ItemRequerido] = field(default_factory=list)
    avisos: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(i.quantidade for i in self.itens)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pedido_id": self.pedido_id,
            "cliente": self.cliente_nome,
            "itens": [
                {"produto_id": i.produto_id, "produto": i.produto_nome, "quantidade": i.quantidade}
                for i in self.itens
            ],
            "avisos": list(self.avisos),
        }


@dataclass
class Movimento:
    """Registro append-only do livro de estoque."""
    produto_id: str
    tipo: str
    quantidade: int
    sinal: Optional[int] = None
    data_movimentacao: Optional[str] = None
    observacao: Optional[str] = None
    referencia_tipo: Optional[str] = None
    referencia_id: Optional[str] = None
    execucao_id: Optional[str] = None

    def __post_init__(self):
        if self.tipo not in TIPOS_MOVIMENTO:
            raise ValueError(f"tipo de movimentação inválido: {self.tipo!r}")
        if self.sinal is None:
            self.sinal = -1 if self.tipo == MOV_SAIDA else 1
        if self.tipo == MOV_ENTRADA and self.sinal != 1:
            raise ValueError("entrada deve ter sinal +1")
        if self.tipo == MOV_SAIDA and self.sinal != -1:
            raise ValueError("saída deve ter sinal -1")
        if self.sinal not in (1, -1):
            raise ValueError("sinal deve ser +1 ou -1")

    @property
    def efeito(self) -> int:
        return int(self.quantidade) * int(self.sinal)


@dataclass
class ItemFaltante:
    produto_id: str
    produto_nome: str
    necessario: int
    disponivel: int

    @property
    def faltante(self) -> int:
        return self.necessario - self.disponivel

    def mensagem(self) -> str:
        return (
            f"{self.produto_nome}: necessário {self.necessario}, "
            f"disponível {self.disponivel} (falta {self.faltante})"
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "produto_id": self.produto_id,
            "produto": self.produto_nome,
            "necessario": self.necessario,
            "disponivel": self.disponivel,
            "faltante": self.faltante,
        }


class StatusCommit(str, Enum):
    """Desfecho de uma tentativa de confirmação de entrega."""
    SUCESSO = "sucesso"
    JA_PROCESSADA = "ja_processada"
    ESTOQUE_INSUFICIENTE = "estoque_insuficiente"
    PEDIDO_NAO_ENCONTRADO = "pedido_nao_encontrado"
    QUANTIDADE_INVALIDA = "quantidade_invalida"
    ERRO_DESCONHECIDO = "erro_desconhecido"


@dataclass
class ResultadoCommit:
    pedido_id: str
    execucao_id: str
    status: StatusCommit
    mensagem: str
    cliente_nome: Optional[str] = None
    itens: List[ItemRequerido] = field(default_factory=list)
    faltantes: List[ItemFaltante] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # ja_processada é sucesso "após o fato"
        return self.status in (StatusCommit.SUCESSO, StatusCommit.JA_PROCESSADA)


@dataclass
class ResultadoLote:
    """Resultado agregado de uma confirmação em massa."""
    total_pedidos: int
    por_pedido: Dict[str, ResultadoCommit] = field(default_factory=dict)
    faltantes: List[ItemFaltante] = field(default_factory=list)
    erros_resolucao: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def abortado(self) -> bool:
        """Lote interrompido antes de qualquer commit."""
        return bool(self.faltantes or self.erros_resolucao)

    @property
    def sucessos(self) -> int:
        return sum(1 for r in self.por_pedido.values() if r.ok)

    @property
    def falhas(self) -> List[Tuple[str, str, str]]:
        """(pedido_id, cliente, motivo) de cada commit que falhou."""
        return [
            (pid, r.cliente_nome or pid, r.mensagem)
            for pid, r in self.por_pedido.items()
            if not r.ok
        ]

    @property
    def ok(self) -> bool:
        return not self.abortado and self.sucessos > 0

    @property
    def status(self) -> str:
        if self.abortado:
            return "abortado"
        if self.sucessos == 0:
            return "falha"
        if self.falhas:
            return "parcial"
        return "sucesso"

    def resumo(self) -> str:
        if self.erros_resolucao:
            detalhes = "\n".join(f"• {quem}: {msg}" for quem, msg in self.erros_resolucao)
            return f"Não foi possível calcular itens para alguns pedidos:\n{detalhes}"
        if self.faltantes:
            detalhes = "\n".join(f"• {f.mensagem()}" for f in self.faltantes)
            return f"Os seguintes produtos não possuem estoque suficiente:\n{detalhes}"
        if self.sucessos == 0:
            detalhes = "\n".join(f"{cli}: {motivo}" for _, cli, motivo in self.falhas)
            return detalhes or "Nenhuma entrega foi processada com sucesso."
        if self.falhas:
            erros = ", ".join(f"{cli}: {motivo}" for _, cli, motivo in self.falhas)
            return f"{self.sucessos} de {self.total_pedidos} entregas confirmadas. Erros: {erros}"
        return (
            f"{self.sucessos} de {self.total_pedidos} entregas confirmadas "
            "com baixa automática no estoque."
        )
