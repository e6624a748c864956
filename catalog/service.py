from typing import Iterable, List, Optional, Protocol

from catalog.models import Catalog, Category, Product


class CatalogService(Protocol):
    def snapshot(self) -> Catalog: ...


class StaticCatalogService:
    def __init__(self, catalog: Catalog):
        self._catalog = catalog

    def snapshot(self) -> Catalog:
        return self._catalog


DEFAULT_CATEGORIES = [
    "Agriculture Products",
    "Beverage Products",
    "Food Products",
    "Musical Instrument Products",
    "Textile Products",
]

DEFAULT_TEXTILES = [
    "Gonggwna",
    "Bodo Sifung",
    "Bodo Serza / Bodo Serja",
    "Bodo Kham",
    "Bodo Jotha",
    "Bodo Thorka",
    "Bodo Dokhona",
    "Bodo Aronai",
    "Bodo Gamsa",
    "Bodo Gongar Dunja",
    "Bodo Keradapini",
]


def default_catalog() -> Catalog:
    categories = [Category(id=i, name=name) for i, name in enumerate(DEFAULT_CATEGORIES, 1)]
    textile_id = categories[-1].id
    products = [
        Product(id=i, name=name, category_id=textile_id)
        for i, name in enumerate(DEFAULT_TEXTILES, 1)
    ]
    return Catalog(categories=tuple(categories), products=tuple(products))


def products_by_categories(catalog: Catalog, category_ids: Optional[Iterable[int]]) -> List[Product]:
    if not category_ids:
        return []
    return catalog.products_in(category_ids)
