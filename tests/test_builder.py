import pytest

from catalog.service import StaticCatalogService
from documents.storage import InMemoryDocumentStorage
from registry.errors import CatalogConflictError, DuplicateIdentityError, InputError, NotFoundError
from registry.store import InMemoryRegistrationStore
from service.container import Services

AADHAR = "123456789012"


def test_new_registration_stores_documents_and_details(services, register_new):
    registration = register_new({"aadharNumber": "1234-5678-9012"}, selected=(20,))

    assert registration.identity.aadhar_number == AADHAR
    assert registration.product_ids == {10, 20}
    assert registration.detail_for(10).product_name == "Bodo Aronai"
    assert registration.reused_files is False
    assert registration.documents.missing_mandatory() == []
    assert len(services.storage) == 3
    assert services.storage.read(registration.documents.photo)


def test_second_new_registration_is_a_duplicate(register_new):
    register_new({"aadharNumber": AADHAR})

    with pytest.raises(DuplicateIdentityError) as exc:
        register_new({"aadharNumber": AADHAR, "voterId": "ABC1234567"}, categories=(2,), existing=(20,))

    assert exc.value.field == "aadharNumber"
    assert "Rina Basumatary" in exc.value.message


def test_duplicate_is_detected_through_voter_id(register_new):
    register_new({"voterId": "ABC1234567"})

    with pytest.raises(DuplicateIdentityError):
        register_new({"voterId": "abc1234567"})


def test_new_registration_requires_mandatory_documents(services, personal_info, documents, detail):
    del documents["signature"]

    with pytest.raises(InputError) as exc:
        services.builder.create_new(
            identity={"aadharNumber": AADHAR},
            personal_info=personal_info,
            category_ids=[1],
            existing_product_ids=[10],
            production_details=[detail(10)],
            documents=documents,
        )

    assert exc.value.field == "signature"
    assert len(services.storage) == 0


@pytest.mark.parametrize(
    "categories, existing, selected, details, field",
    [
        ([], [10], [], [10], "productCategoryIds"),
        ([99], [10], [], [10], "productCategoryIds"),
        ([1], [], [], [], "existingProducts"),
        ([1], [20], [], [20], "existingProducts"),
        ([1], [10], [10], [10], "selectedProducts"),
        ([1], [10], [], [], "productionDetails"),
        ([1], [10], [], [11], "productionDetails"),
    ],
)
def test_claim_shape_is_validated(services, personal_info, documents, detail, categories, existing, selected, details, field):
    with pytest.raises(InputError) as exc:
        services.builder.create_new(
            identity={"aadharNumber": AADHAR},
            personal_info=personal_info,
            category_ids=categories,
            existing_product_ids=existing,
            production_details=[detail(p) for p in details],
            documents=documents,
            selected_product_ids=selected,
        )

    assert exc.value.field == field


def test_incomplete_production_detail_is_rejected(services, personal_info, documents, detail):
    with pytest.raises(InputError) as exc:
        services.builder.create_new(
            identity={"aadharNumber": AADHAR},
            personal_info=personal_info,
            category_ids=[1],
            existing_product_ids=[10],
            production_details=[detail(10, annualTurnover="  ")],
            documents=documents,
        )

    assert "annualTurnover" in exc.value.message


def test_future_products_need_no_details(register_new):
    registration = register_new({"aadharNumber": AADHAR}, selected=(11, 30))

    assert registration.selected_product_ids == (11, 30)
    assert registration.detail_for(30) is None


def test_additional_registration_reuses_base_documents(services, register_new, detail):
    base = register_new({"aadharNumber": AADHAR, "voterId": "ABC1234567"})

    additional = services.builder.create_additional(
        base.id,
        identity={"voterId": "ABC1234567"},
        category_ids=[2],
        existing_product_ids=[20],
        production_details=[detail(20)],
        selected_product_ids=[30],
    )

    assert additional.base_registration_id == base.id
    assert additional.reused_files is True
    assert additional.documents == base.documents
    assert additional.personal_info == base.personal_info
    assert additional.identity == base.identity
    assert len(services.storage) == 3


@pytest.mark.parametrize(
    "categories, existing, conflict",
    [
        ([1], [11], ([1], [])),
        ([2], [21], ([], [21])),
        ([1, 2], [11, 21], ([1], [21])),
    ],
)
def test_additional_with_claimed_ids_conflicts(services, register_new, detail, categories, existing, conflict):
    base = register_new({"aadharNumber": AADHAR}, categories=(1,), existing=(10,), selected=(21,))

    with pytest.raises(CatalogConflictError) as exc:
        services.builder.create_additional(
            base.id,
            identity={"aadharNumber": AADHAR},
            category_ids=categories,
            existing_product_ids=existing,
            production_details=[detail(p) for p in existing],
        )

    assert (exc.value.category_ids, exc.value.product_ids) == conflict
    assert len(services.store.all()) == 1


def test_additional_requires_existing_base(services, detail):
    with pytest.raises(NotFoundError):
        services.builder.create_additional(
            42,
            identity={"aadharNumber": AADHAR},
            category_ids=[1],
            existing_product_ids=[10],
            production_details=[detail(10)],
        )


def test_additional_rejects_base_of_another_identity(services, register_new, detail):
    other = register_new({"aadharNumber": "999988887777"})

    with pytest.raises(NotFoundError) as exc:
        services.builder.create_additional(
            other.id,
            identity={"aadharNumber": AADHAR},
            category_ids=[2],
            existing_product_ids=[20],
            production_details=[detail(20)],
        )

    assert exc.value.field == "baseRegistrationId"


class _FailingInsertStore(InMemoryRegistrationStore):
    def insert(self, new):
        raise RuntimeError("insert failed")


def test_failed_insert_leaves_no_stored_documents(catalog, personal_info, documents, detail):
    services = Services(StaticCatalogService(catalog), _FailingInsertStore(), InMemoryDocumentStorage())

    with pytest.raises(RuntimeError):
        services.builder.create_new(
            identity={"aadharNumber": AADHAR},
            personal_info=personal_info,
            category_ids=[1],
            existing_product_ids=[10],
            production_details=[detail(10)],
            documents=documents,
        )

    assert len(services.storage) == 0
    assert services.store.locks.active_keys() == []
