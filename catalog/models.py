from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    category_id: int = Field(..., description="Owning category, fixed for the product's lifetime")
    description: Optional[str] = None


class Catalog(BaseModel):
    """Immutable snapshot of all categories and products, kept in id order."""

    model_config = ConfigDict(frozen=True)

    categories: Tuple[Category, ...] = ()
    products: Tuple[Product, ...] = ()

    @field_validator("categories", "products")
    @classmethod
    def _in_id_order(cls, items):
        return tuple(sorted(items, key=lambda item: item.id))

    @model_validator(mode="after")
    def _check_products(self) -> "Catalog":
        known = {c.id for c in self.categories}
        orphans = [p.id for p in self.products if p.category_id not in known]
        if orphans:
            raise ValueError(f"Products reference unknown categories: {orphans}")
        return self

    def category_ids(self) -> List[int]:
        return [c.id for c in self.categories]

    def product_ids(self) -> List[int]:
        return [p.id for p in self.products]

    def category(self, category_id: int) -> Optional[Category]:
        return self._categories_by_id().get(category_id)

    def product(self, product_id: int) -> Optional[Product]:
        return self._products_by_id().get(product_id)

    def products_in(self, category_ids: Iterable[int]) -> List[Product]:
        wanted = set(category_ids)
        return [p for p in self.products if p.category_id in wanted]

    def _categories_by_id(self) -> Dict[int, Category]:
        return {c.id: c for c in self.categories}

    def _products_by_id(self) -> Dict[int, Product]:
        return {p.id: p for p in self.products}
