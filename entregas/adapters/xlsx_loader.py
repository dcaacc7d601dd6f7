# entregas/adapters/xlsx_loader.py
"""
Loaders para planilhas (XLSX) de ENTRADAS de produção e de PEDIDOS.

Essas funções:
- leem planilhas XLSX usando pandas;
- normalizam cabeçalhos (acentos, variações, sinônimos);
- retornam listas de dicionários com as chaves esperadas pelos use cases.

Observações:
- Quantidades são convertidas para int com `parse_quantidade_int`
  (None quando a célula não tem um inteiro reconhecível).
- Datas são normalizadas para ISO (YYYY-MM-DD) quando possível.
- Itens personalizados seguem o formato de `parse_itens_personalizados`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import pandas as pd
import re
from datetime import datetime

from entregas.adapters.parsers import parse_itens_personalizados, parse_quantidade_int


# ---------------------------
# utilitários de normalização
# ---------------------------

def _slug(s: str) -> str:
    """Normaliza cabeçalhos: minúsculas, sem acentos, sem não-alfanumérico."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüç", "aaaaaeeeeiiiiooooouuuuc"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key):
    """Lê um valor da linha do pandas tratando NA como None."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def _first_nonnull(*vals):
    for v in vals:
        if v is not None and not pd.isna(v):
            return v
    return None


def _to_date_iso(val: Any) -> Optional[str]:
    """Converte valor para data ISO (YYYY-MM-DD) se possível."""
    if val is None or pd.isna(val):
        return None
    if isinstance(val, pd.Timestamp):
        return val.date().isoformat()
    s = str(val).strip()
    if not s:
        return None
    # ISO primeiro: dayfirst=True inverteria dia/mês de "2025-01-02"
    try:
        return datetime.strptime(s[:10], "%Y-%m-%d").date().isoformat()
    except ValueError:
        pass
    d = pd.to_datetime(s, dayfirst=True, errors="coerce")
    if pd.isna(d):
        return None
    return d.date().isoformat()


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomeia colunas com base em sinônimos/variações."""
    aliases = {
        # produto
        "produto": "produto",
        "produto id": "produto",
        "codigo": "produto",
        "cod": "produto",
        "sabor": "produto",
        "nome do produto": "produto",

        "quantidade": "quantidade",
        "qtde": "quantidade",
        "qtd": "quantidade",
        "quantidade produzida": "quantidade",

        "data": "data",
        "data entrada": "data",
        "data de entrada": "data",
        "data producao": "data",

        "observacao": "observacao",
        "obs": "observacao",
        "observacoes": "observacao",

        # pedido
        "pedido": "id",
        "id": "id",
        "agendamento": "id",
        "cliente id": "cliente_id",
        "codigo cliente": "cliente_id",
        "cliente": "cliente_nome",
        "nome cliente": "cliente_nome",
        "quantidade total": "quantidade_total",
        "qtd total": "quantidade_total",
        "quantidade padrao": "quantidade_total",
        "tipo": "tipo_pedido",
        "tipo pedido": "tipo_pedido",
        "itens": "itens",
        "itens personalizados": "itens",
        "data prevista": "data_prevista",
        "proxima entrega": "data_prevista",
    }

    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = aliases.get(key, key)
    return df.rename(columns=new_cols)


def _read(path: str) -> pd.DataFrame:
    df = pd.read_excel(path, dtype="string")
    for c in df.columns:
        df[c] = df[c].astype("string")
    return _normalize_columns(df)


# ---------------------------
# loaders públicos (XLSX)
# ---------------------------

def load_entradas_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lê XLSX de ENTRADAS (produção) para o livro de estoque.

    Campos de saída (chaves do dict por linha):
      - linha: número da linha na planilha (para mensagens de erro)
      - produto: str | None (id ou nome)
      - quantidade: int | None
      - data: ISO date | None
      - observacao: str | None
    """
    df = _read(path)
    out: List[Dict[str, Any]] = []
    for pos, (_, row) in enumerate(df.iterrows(), start=2):
        out.append({
            "linha": pos,
            "produto": _safe_get(row, "produto"),
            "quantidade": parse_quantidade_int(_safe_get(row, "quantidade")),
            "data": _to_date_iso(_safe_get(row, "data")),
            "observacao": _safe_get(row, "observacao"),
        })
    return out


def load_pedidos_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lê XLSX de PEDIDOS (agendamentos de entrega).

    Campos de saída:
      - id, cliente_id, cliente_nome: str | None
      - quantidade_total: int | None
      - tipo_pedido: 'Padrão' | 'Personalizado'
      - itens: lista de {produto, quantidade} (vazia para pedido padrão)
      - data_prevista: ISO date | None

    Raises:
        ValueError: célula de itens em formato inválido.
    """
    df = _read(path)
    out: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        itens = parse_itens_personalizados(_safe_get(row, "itens"))
        tipo = _safe_get(row, "tipo_pedido")
        if tipo is None:
            tipo = "Personalizado" if itens else "Padrão"
        elif _slug(tipo).startswith("personaliz"):
            tipo = "Personalizado"
        else:
            tipo = "Padrão"
        cliente_nome = _safe_get(row, "cliente_nome")
        out.append({
            "id": _safe_get(row, "id"),
            "cliente_id": _first_nonnull(_safe_get(row, "cliente_id"), cliente_nome),
            "cliente_nome": cliente_nome,
            "quantidade_total": parse_quantidade_int(_safe_get(row, "quantidade_total")),
            "tipo_pedido": tipo,
            "itens": itens,
            "data_prevista": _to_date_iso(_safe_get(row, "data_prevista")),
        })
    return out
