"""
Utilidades de parsing para quantidades e listas de itens.

Este módulo fornece funções para interpretar strings digitadas pelo
operador ou vindas de planilhas: quantidades inteiras com unidade
("10 UN - Unidades") e listas de itens personalizados
("Brigadeiro: 10; Beijinho: 5" ou JSON).
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

_NUM_RE = re.compile(r"[-+]?\d+(?:[.,]\d+)?")
_ITEM_SEP_RE = re.compile(r"[;\n,]")
_PAR_RE = re.compile(r"^(?P<ref>.+?)\s*[:=]\s*(?P<qtd>[-+]?\d+)$")


def parse_quantidade_int(txt: Any) -> Optional[int]:
    """Interpreta uma quantidade inteira, com ou sem unidade.

    Exemplos:
        "10 UN - Unidades" → 10
        "12,0"             → 12
        7                  → 7
        "2.5 UN"           → None  (fracionado não é aceito)
        ""                 → None

    Args:
        txt: Texto (ou número) a ser interpretado.

    Returns:
        O inteiro, ou None se não houver número inteiro reconhecível.
    """
    if txt is None:
        return None
    if isinstance(txt, bool):
        return None
    if isinstance(txt, int):
        return txt
    if isinstance(txt, float):
        return int(txt) if txt.is_integer() else None
    s = str(txt).strip()
    if not s:
        return None
    head = s.split("-", 1)[0].strip() if not s.startswith("-") else s
    m = _NUM_RE.search(head)
    if not m:
        return None
    val = float(m.group(0).replace(",", "."))
    if not val.is_integer():
        return None
    return int(val)


def parse_itens_personalizados(txt: Any) -> List[Dict[str, Any]]:
    """Interpreta a lista de itens de um pedido personalizado.

    Formatos aceitos:
        - JSON: ``[{"produto": "Brigadeiro", "quantidade": 10}, ...]``
        - texto: ``"Brigadeiro: 10; Beijinho = 5"`` (separadores ``;``, ``,``
          ou quebra de linha; ``:`` ou ``=`` entre produto e quantidade)

    Returns:
        Lista de dicts ``{"produto": str, "quantidade": int}``; vazia se
        ``txt`` for vazio.

    Raises:
        ValueError: trecho que não segue nenhum dos formatos.
    """
    if txt is None:
        return []
    if isinstance(txt, list):
        itens = []
        for i in txt:
            qtd = parse_quantidade_int(i["quantidade"])
            if qtd is None:
                raise ValueError(f"Quantidade inválida para {i['produto']!r}: {i['quantidade']!r}")
            itens.append({"produto": str(i["produto"]).strip(), "quantidade": qtd})
        return itens
    s = str(txt).strip()
    if not s:
        return []
    if s.startswith("["):
        try:
            dados = json.loads(s)
        except json.JSONDecodeError as e:
            raise ValueError(f"JSON de itens inválido: {e}") from e
        return parse_itens_personalizados(dados)

    itens: List[Dict[str, Any]] = []
    for trecho in _ITEM_SEP_RE.split(s):
        trecho = trecho.strip()
        if not trecho:
            continue
        m = _PAR_RE.match(trecho)
        if not m:
            raise ValueError(f"Item inválido: {trecho!r} (use 'produto: quantidade')")
        qtd = int(m.group("qtd"))
        itens.append({"produto": m.group("ref").strip(), "quantidade": qtd})
    return itens
