from typing import Callable, Iterable

import psycopg
from psycopg.rows import dict_row

from catalog.models import Catalog, Category, Product

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS product_categories (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        category_id INTEGER NOT NULL REFERENCES product_categories(id),
        description TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
]


class PostgresCatalogService:
    """Reads the catalog tables; every snapshot is a fresh query."""

    def __init__(self, connect: Callable[[], psycopg.Connection]):
        self._connect = connect

    def setup(self) -> None:
        with self._connect() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    def seed(self, catalog: Catalog) -> None:
        with self._connect() as conn:
            for category in catalog.categories:
                conn.execute(
                    "INSERT INTO product_categories (id, name, description) VALUES (%s, %s, %s) "
                    "ON CONFLICT (id) DO NOTHING",
                    (category.id, category.name, category.description),
                )
            for product in catalog.products:
                conn.execute(
                    "INSERT INTO products (id, name, category_id, description) VALUES (%s, %s, %s, %s) "
                    "ON CONFLICT (id) DO NOTHING",
                    (product.id, product.name, product.category_id, product.description),
                )

    def snapshot(self) -> Catalog:
        with self._connect() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, name, description FROM product_categories ORDER BY id")
                categories: Iterable[dict] = cur.fetchall()
                cur.execute("SELECT id, name, category_id, description FROM products ORDER BY id")
                products: Iterable[dict] = cur.fetchall()
        return Catalog(
            categories=tuple(Category(**row) for row in categories),
            products=tuple(Product(**row) for row in products),
        )
