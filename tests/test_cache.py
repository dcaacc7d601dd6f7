from entregas.domain.models import Produto
from entregas.infra.cache import CatalogoCache


class _Relogio:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def test_cache_recarrega_apos_ttl():
    relogio = _Relogio()
    cache = CatalogoCache(ttl_segundos=10, clock=relogio)
    chamadas = []

    def loader():
        chamadas.append(1)
        return [Produto("A", "A", percentual=100)]

    cache.get(loader)
    relogio.t = 9.9
    cache.get(loader)
    assert len(chamadas) == 1
    relogio.t = 10.0
    cache.get(loader)
    assert len(chamadas) == 2


def test_cache_invalidate():
    cache = CatalogoCache(ttl_segundos=60)
    chamadas = []

    def loader():
        chamadas.append(1)
        return []

    cache.get(loader)
    cache.invalidate()
    assert not cache.valido
    cache.get(loader)
    assert len(chamadas) == 2


def test_cache_devolve_copia():
    cache = CatalogoCache()
    lista = cache.get(lambda: [Produto("A", "A")])
    lista.clear()
    assert len(cache.get(lambda: [])) == 1
