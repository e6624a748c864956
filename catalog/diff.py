from typing import Iterable, List, NamedTuple, Set

from catalog.models import Catalog, Category, Product
from catalog.service import CatalogService
from registry.identity import Identity
from registry.identity_registry import IdentityRegistry
from registry.models import Registration


class CatalogDiff(NamedTuple):
    categories: List[Category]
    products: List[Product]
    claimed_category_ids: Set[int]
    claimed_product_ids: Set[int]


def claimed_ids(registrations: Iterable[Registration]):
    categories: Set[int] = set()
    products: Set[int] = set()
    for registration in registrations:
        categories.update(registration.category_ids)
        products.update(registration.product_ids)
    return categories, products


class CatalogDiffCalculator:
    """
    Categories/products an identity has not yet claimed.

    Always computed from a fresh catalog snapshot and a fresh registry lookup;
    commit-time checks depend on that.
    """

    def __init__(self, catalog_service: CatalogService, registry: IdentityRegistry):
        self.catalog_service = catalog_service
        self.registry = registry

    def available_categories(self, identity: Identity) -> List[Category]:
        return self.diff(self.registry.find_by_identity(identity)).categories

    def available_products(self, identity: Identity) -> List[Product]:
        return self.diff(self.registry.find_by_identity(identity)).products

    def diff(self, prior_registrations: Iterable[Registration]) -> CatalogDiff:
        catalog: Catalog = self.catalog_service.snapshot()
        used_categories, used_products = claimed_ids(prior_registrations)
        return CatalogDiff(
            categories=[c for c in catalog.categories if c.id not in used_categories],
            products=[p for p in catalog.products if p.id not in used_products],
            claimed_category_ids=used_categories,
            claimed_product_ids=used_products,
        )
