"""
Alocação de quantidades por produto e resolução dos itens de um pedido.

O pedido "padrão" informa apenas a quantidade total; a divisão entre
produtos vem das proporções configuradas no catálogo. Arredondar cada
parcela isoladamente pode perder ou duplicar unidades, então usamos o
método dos maiores restos:

    1. bruto_i = total * p_i / soma(p)
    2. base_i  = floor(bruto_i)
    3. as unidades restantes (total - soma(base)) vão, uma a uma, para os
       produtos com maior parte fracionária; empates seguem a ordem do
       catálogo (ordem da categoria, depois nome).

A aritmética é feita com `fractions.Fraction` para que empates sejam
empates de verdade (33.33 * 3 em float não é 99.99).

Todas as funções deste módulo são puras: não fazem I/O e podem ser
chamadas de qualquer lugar, inclusive de dentro da transação de commit.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError, InvalidQuantityError, NoValidItemsError
from .models import ItemRequerido, Pedido, Produto, Requisito


def _as_fraction(valor: Any) -> Fraction:
    if isinstance(valor, Fraction):
        return valor
    if isinstance(valor, int):
        return Fraction(valor)
    return Fraction(str(valor))


def alocar(
    percentuais: Mapping[str, float],
    quantidade_total: int,
    ordem: Sequence[str],
) -> Dict[str, int]:
    """Distribui ``quantidade_total`` entre produtos pelas proporções.

    Args:
        percentuais: produto_id -> percentual (0..100). Tratados como pesos
            relativos: se não somarem 100, são normalizados pela soma.
        quantidade_total: total de unidades (>= 0).
        ordem: sequência de produto_id usada no desempate. Produtos ausentes
            de ``ordem`` vão para o fim, ordenados pelo id.

    Returns:
        Mapeamento produto_id -> quantidade inteira, cuja soma é exatamente
        ``quantidade_total``.

    Raises:
        InvalidQuantityError: ``quantidade_total`` negativo ou não inteiro.
        ConfigurationError: percentual fora de [0, 100], ou todos nulos com
            ``quantidade_total > 0``.
    """
    if isinstance(quantidade_total, bool) or int(quantidade_total) != quantidade_total:
        raise InvalidQuantityError(f"quantidade total deve ser inteira: {quantidade_total!r}")
    quantidade_total = int(quantidade_total)
    if quantidade_total < 0:
        raise InvalidQuantityError("quantidade total não pode ser negativa")

    pesos: Dict[str, Fraction] = {}
    for produto_id, pct in percentuais.items():
        p = _as_fraction(pct)
        if p < 0 or p > 100:
            raise ConfigurationError(f"percentual fora de 0..100 para {produto_id}: {pct}")
        pesos[produto_id] = p

    posicoes = [pid for pid in ordem if pid in pesos]
    vistos = set(posicoes)
    posicoes += sorted(pid for pid in pesos if pid not in vistos)

    soma = sum(pesos.values(), Fraction(0))
    if soma == 0:
        if quantidade_total == 0:
            return {pid: 0 for pid in posicoes}
        raise ConfigurationError("nenhuma proporção positiva para distribuir a quantidade")

    base: Dict[str, int] = {}
    resto: Dict[str, Fraction] = {}
    for pid in posicoes:
        bruto = quantidade_total * pesos[pid] / soma
        piso = bruto.numerator // bruto.denominator
        base[pid] = piso
        resto[pid] = bruto - piso

    sobra = quantidade_total - sum(base.values())
    # sort é estável: empate na fração mantém a posição em `posicoes`
    candidatos = sorted(range(len(posicoes)), key=lambda i: -resto[posicoes[i]])
    for i in candidatos[:sobra]:
        base[posicoes[i]] += 1

    return {pid: base[pid] for pid in posicoes}


def verificar_balanco(percentuais: Mapping[str, float], tolerancia: float = 0.01) -> Optional[str]:
    """Retorna um aviso se as proporções não somam 100% (dentro da tolerância)."""
    soma = sum(float(p) for p in percentuais.values())
    if abs(soma - 100.0) > tolerancia:
        return f"Proporções somam {soma:.2f}% (esperado 100%); usando pesos relativos."
    return None


def chave_desempate(produto: Produto):
    """Ordem da categoria (vazia por último), depois nome, depois id."""
    return (
        produto.ordem_categoria is None,
        produto.ordem_categoria or 0,
        produto.nome.casefold(),
        produto.id,
    )


def ordenar_produtos(produtos: Iterable[Produto]) -> List[Produto]:
    return sorted(produtos, key=chave_desempate)


def normalizar_ref(ref: Any) -> str:
    return " ".join(str(ref).split()).casefold()


def _indexar_catalogo(catalogo: Iterable[Produto]) -> Dict[str, Produto]:
    """Índice de produtos ativos por id e por nome normalizado."""
    idx: Dict[str, Produto] = {}
    for p in catalogo:
        if not p.ativo:
            continue
        idx.setdefault(normalizar_ref(p.nome), p)
    # ids têm precedência sobre nomes homônimos
    for p in catalogo:
        if p.ativo:
            idx[normalizar_ref(p.id)] = p
    return idx


def _resolver_padrao(pedido: Pedido, catalogo: Sequence[Produto], tolerancia: float) -> Requisito:
    elegiveis = ordenar_produtos(p for p in catalogo if p.ativo and p.percentual > 0)
    if not elegiveis:
        raise ConfigurationError(
            f"Configuração incompleta para {pedido.rotulo}: não há proporções padrão "
            "configuradas ou produtos ativos.",
            pedido_id=pedido.id,
        )
    percentuais = {p.id: p.percentual for p in elegiveis}
    quantidades = alocar(percentuais, pedido.quantidade_total, [p.id for p in elegiveis])

    avisos: List[str] = []
    aviso = verificar_balanco(percentuais, tolerancia)
    if aviso:
        avisos.append(aviso)

    itens = [ItemRequerido(p.id, p.nome, quantidades[p.id]) for p in elegiveis]
    return Requisito(pedido.id, pedido.cliente_nome, itens, avisos)


def _resolver_personalizado(pedido: Pedido, catalogo: Sequence[Produto]) -> Requisito:
    idx = _indexar_catalogo(catalogo)
    avisos: List[str] = []
    somas: Dict[str, int] = {}
    produtos: Dict[str, Produto] = {}

    for item in pedido.itens_personalizados or []:
        ref = item.get("produto")
        if ref is None:
            ref = item.get("produto_id")
        bruto = item.get("quantidade")
        try:
            valor = Fraction(0) if bruto in (None, "") else _as_fraction(bruto)
        except (TypeError, ValueError, ZeroDivisionError):
            valor = None
        if isinstance(bruto, bool) or valor is None or valor.denominator != 1:
            raise InvalidQuantityError(
                f"Quantidade inválida para o item {ref!r} de {pedido.rotulo}: {bruto!r}",
                pedido_id=pedido.id,
            )
        qtd = int(valor)
        if qtd < 0:
            raise InvalidQuantityError(
                f"Quantidade negativa para o item {ref!r} de {pedido.rotulo}",
                pedido_id=pedido.id,
            )
        produto = idx.get(normalizar_ref(ref)) if ref is not None else None
        if produto is None:
            avisos.append(f"Produto {ref!r} não encontrado ou inativo; item ignorado.")
            continue
        if qtd == 0:
            continue
        produtos[produto.id] = produto
        somas[produto.id] = somas.get(produto.id, 0) + qtd

    if not somas:
        raise NoValidItemsError(
            f"Itens personalizados inválidos para {pedido.rotulo}: nenhum item válido encontrado.",
            pedido_id=pedido.id,
        )

    itens = [
        ItemRequerido(p.id, p.nome, somas[p.id])
        for p in ordenar_produtos(produtos.values())
    ]
    return Requisito(pedido.id, pedido.cliente_nome, itens, avisos)


def resolver_itens(pedido: Pedido, catalogo: Sequence[Produto], tolerancia: float = 0.01) -> Requisito:
    """Lista canônica (produto, quantidade) para atender ``pedido``.

    Pedidos personalizados usam os itens escolhidos pelo operador; os
    demais são alocados pelas proporções do catálogo atual.
    """
    if pedido.quantidade_total <= 0:
        raise InvalidQuantityError(
            f"Quantidade inválida para {pedido.rotulo}: a quantidade total deve ser maior que zero.",
            pedido_id=pedido.id,
        )
    if pedido.personalizado and pedido.itens_personalizados:
        return _resolver_personalizado(pedido, catalogo)
    if pedido.personalizado:
        raise NoValidItemsError(
            f"Pedido personalizado de {pedido.rotulo} sem itens informados.",
            pedido_id=pedido.id,
        )
    return _resolver_padrao(pedido, catalogo, tolerancia)
