import io

import pytest
from PIL import Image

from catalog.models import Catalog, Category, Product
from catalog.service import StaticCatalogService
from documents.storage import InMemoryDocumentStorage
from registry.models import DocumentUpload
from registry.store import InMemoryRegistrationStore
from service.container import Services


@pytest.fixture
def catalog():
    return Catalog(
        categories=(
            Category(id=1, name="Textile Products"),
            Category(id=2, name="Food Products"),
            Category(id=3, name="Beverage Products"),
        ),
        products=(
            Product(id=10, name="Bodo Aronai", category_id=1),
            Product(id=11, name="Bodo Dokhona", category_id=1),
            Product(id=20, name="Napham", category_id=2),
            Product(id=21, name="Ondla", category_id=2),
            Product(id=30, name="Jou Bidwi", category_id=3),
        ),
    )


@pytest.fixture
def services(catalog):
    return Services(StaticCatalogService(catalog), InMemoryRegistrationStore(), InMemoryDocumentStorage())


@pytest.fixture
def make_image():
    def _make(color="white", size=(40, 20), fmt="PNG"):
        out = io.BytesIO()
        Image.new("RGB", size, color).save(out, format=fmt)
        return out.getvalue()

    return _make


@pytest.fixture
def documents(make_image):
    return {
        "aadharCard": DocumentUpload(filename="aadhar.jpg", content=make_image(fmt="JPEG")),
        "signature": DocumentUpload(filename="signature.png", content=make_image("black")),
        "photo": DocumentUpload(filename="photo.png", content=make_image("navy")),
    }


@pytest.fixture
def personal_info():
    return {
        "name": "Rina Basumatary",
        "address": "Kokrajhar, Assam",
        "age": 34,
        "gender": "female",
        "phone": "9876543210",
    }


@pytest.fixture
def detail():
    def _detail(product_id, **overrides):
        data = {
            "productId": product_id,
            "annualProduction": "120",
            "unit": "kg",
            "areaOfProduction": "2 bigha",
            "yearsOfProduction": "6",
            "annualTurnover": "1.5",
        }
        data.update(overrides)
        return data

    return _detail


@pytest.fixture
def register_new(services, personal_info, documents, detail):
    """Commit a new registration claiming ``categories`` with ``existing`` products."""

    def _register(identity, categories=(1,), existing=(10,), selected=()):
        return services.builder.create_new(
            identity=identity,
            personal_info=personal_info,
            category_ids=categories,
            existing_product_ids=existing,
            production_details=[detail(p) for p in existing],
            documents=documents,
            selected_product_ids=selected,
        )

    return _register
