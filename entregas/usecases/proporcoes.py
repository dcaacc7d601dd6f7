# entregas/usecases/proporcoes.py
"""
UC: Configurar as proporções do pedido padrão.

A soma é validada aqui, na configuração; a alocação só normaliza o que
estiver gravado. Produtos não informados ficam com 0%.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from entregas.config import DB_PATH
from entregas.domain.alocacao import ordenar_produtos
from entregas.domain.errors import ConfigurationError
from entregas.domain.policies import validar_proporcoes
from entregas.infra.cache import CatalogoCache
from entregas.infra.repositories import ParamsRepo, ProdutoRepo
from entregas.infra.logger import log_transaction, log_system_event


def definir_proporcoes(
    percentuais_por_ref: Mapping[str, float],
    db_path: str = DB_PATH,
    cache: Optional[CatalogoCache] = None,
) -> Dict[str, float]:
    """Grava as proporções (ref de produto -> %).

    Returns:
        Mapa produto_id -> percentual efetivamente gravado.

    Raises:
        ConfigurationError: produto desconhecido ou inativo, percentual fora
            de 0..100 ou soma diferente de 100 (± tolerância).
    """
    dados = {"percentuais": dict(percentuais_por_ref)}
    try:
        repo = ProdutoRepo(db_path, cache=cache)
        por_id: Dict[str, float] = {}
        for ref, pct in percentuais_por_ref.items():
            produto = repo.buscar(ref)
            if produto is None:
                raise ConfigurationError(f"Produto {ref!r} não cadastrado")
            if not produto.ativo:
                raise ConfigurationError(f"Produto {produto.nome} está inativo")
            por_id[produto.id] = por_id.get(produto.id, 0.0) + float(pct)

        tolerancia = ParamsRepo(db_path).tolerancia_percentual()
        total = validar_proporcoes(por_id, tolerancia)
        repo.definir_percentuais(por_id)

        log_transaction("definir_proporcoes", dados, result={"soma": total})
        return por_id
    except Exception as e:
        log_transaction("definir_proporcoes", dados, error=str(e))
        log_system_event("definir_proporcoes_error", {"error": str(e)}, level="error")
        raise


def listar_proporcoes(db_path: str = DB_PATH, cache: Optional[CatalogoCache] = None) -> List[Dict[str, object]]:
    catalogo = ProdutoRepo(db_path, cache=cache).get_catalogo()
    return [
        {"produto_id": p.id, "produto": p.nome, "ativo": bool(p.ativo), "percentual": p.percentual}
        for p in ordenar_produtos(catalogo)
    ]
