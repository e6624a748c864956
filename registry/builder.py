import logging
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
from uuid import uuid4

from catalog.diff import CatalogDiffCalculator
from catalog.models import Catalog
from catalog.service import CatalogService
from documents.storage import DocumentStorage
from registry.errors import CatalogConflictError, DuplicateIdentityError, InputError, NotFoundError
from registry.identity import Identity
from registry.identity_registry import IdentityRegistry
from registry.models import (
    DOCUMENT_SLOTS,
    MANDATORY_DOCUMENT_SLOTS,
    DocumentBundleRef,
    DocumentUpload,
    NewRegistration,
    PersonalInfo,
    ProductionDetail,
    Registration,
    parse_model,
)
from registry.store import RegistrationStore

logger = logging.getLogger(__name__)

DetailInput = Union[ProductionDetail, Mapping]


class Claim(NamedTuple):
    category_ids: Tuple[int, ...]
    existing_product_ids: Tuple[int, ...]
    selected_product_ids: Tuple[int, ...]
    production_details: Tuple[ProductionDetail, ...]

    def product_ids(self) -> List[int]:
        return list(self.existing_product_ids) + list(self.selected_product_ids)


def _unique(ids: Iterable[int]) -> Tuple[int, ...]:
    seen: Dict[int, None] = {}
    for value in ids or ():
        try:
            seen[int(value)] = None
        except (TypeError, ValueError) as exc:
            raise InputError(f"Invalid id: {value!r}") from exc
    return tuple(seen)


def validate_claim(
    catalog: Catalog,
    category_ids: Iterable[int],
    existing_product_ids: Iterable[int],
    selected_product_ids: Iterable[int],
    production_details: Sequence[DetailInput],
) -> Claim:
    """Shape checks shared by new and additional registrations."""
    categories = _unique(category_ids)
    existing = _unique(existing_product_ids)
    selected = _unique(selected_product_ids)

    if not categories:
        raise InputError("At least one product category is required", field="productCategoryIds")
    if any(catalog.category(c) is None for c in categories):
        raise InputError("One or more invalid product category IDs", field="productCategoryIds")

    if not existing:
        raise InputError("At least one existing product is required", field="existingProducts")
    for product_id in existing + selected:
        if catalog.product(product_id) is None:
            raise InputError(f"Unknown product id {product_id}", field="existingProducts")
    outside = [p for p in existing if catalog.product(p).category_id not in categories]
    if outside:
        raise InputError(
            f"Existing products {outside} are not in the selected categories",
            field="existingProducts",
        )
    overlap = sorted(set(existing) & set(selected))
    if overlap:
        raise InputError(f"Products {overlap} are both existing and selected", field="selectedProducts")

    details: Dict[int, ProductionDetail] = {}
    for raw in production_details or ():
        detail = parse_model(ProductionDetail, raw)
        if detail.product_id not in existing and detail.product_id not in selected:
            raise InputError(
                f"Production details given for unselected product {detail.product_id}",
                field="productionDetails",
            )
        if detail.product_name is None:
            detail = detail.model_copy(update={"product_name": catalog.product(detail.product_id).name})
        details[detail.product_id] = detail

    for product_id in existing:
        detail = details.get(product_id)
        if detail is None:
            raise InputError(f"Production details missing for product {product_id}", field="productionDetails")
        if not detail.is_complete():
            raise InputError(
                f"Incomplete production details for product {product_id}: {', '.join(detail.missing_fields())}",
                field="productionDetails",
            )

    ordered = tuple(details[p] for p in existing + selected if p in details)
    return Claim(categories, existing, selected, ordered)


class RegistrationBuilder:
    """
    Commits registrations. Both paths are check-then-insert and run inside the
    store's per-identity serialization so the checks still hold at insert time.
    """

    def __init__(
        self,
        store: RegistrationStore,
        registry: IdentityRegistry,
        diff_calculator: CatalogDiffCalculator,
        catalog_service: CatalogService,
        storage: DocumentStorage,
    ):
        self.store = store
        self.registry = registry
        self.diff_calculator = diff_calculator
        self.catalog_service = catalog_service
        self.storage = storage

    @staticmethod
    def _identity(identity: Union[Identity, Mapping]) -> Identity:
        if isinstance(identity, Identity):
            return Identity.parse(identity.aadhar_number, identity.voter_id)
        if isinstance(identity, Mapping):
            return Identity.parse(identity.get("aadharNumber"), identity.get("voterId"))
        raise InputError("Either Aadhar Number or Voter ID is required")

    @staticmethod
    def _uploads(documents: Optional[Mapping[str, Optional[DocumentUpload]]]) -> Dict[str, DocumentUpload]:
        uploads: Dict[str, DocumentUpload] = {}
        for slot, upload in (documents or {}).items():
            if slot not in DOCUMENT_SLOTS:
                raise InputError(f"Unknown document slot {slot}", field=slot)
            if upload is None:
                continue
            if isinstance(upload, (bytes, bytearray)):
                upload = DocumentUpload(filename=f"{slot}.bin", content=bytes(upload))
            if upload.content:
                uploads[slot] = upload

        missing = [slot for slot in MANDATORY_DOCUMENT_SLOTS if slot not in uploads]
        if missing:
            raise InputError(f"Missing required documents: {', '.join(missing)}", field=missing[0])
        return uploads

    def _store_documents(self, uploads: Mapping[str, DocumentUpload]) -> DocumentBundleRef:
        bundle_key = uuid4().hex
        refs: Dict[str, str] = {}
        try:
            for slot, upload in uploads.items():
                refs[slot] = self.storage.save(bundle_key, slot, upload.filename, upload.content)
        except Exception:
            self._discard_documents(refs.values())
            raise
        return DocumentBundleRef.model_validate(refs)

    def _discard_documents(self, references: Iterable[str]) -> None:
        references = list(references)
        for reference in references:
            self.storage.delete(reference)
        logger.info("Discarded %d stored document(s) of an uncommitted registration", len(references))

    def create_new(
        self,
        identity: Union[Identity, Mapping],
        personal_info: Union[PersonalInfo, Mapping],
        category_ids: Iterable[int],
        existing_product_ids: Iterable[int],
        production_details: Sequence[DetailInput],
        documents: Mapping[str, Optional[DocumentUpload]],
        selected_product_ids: Iterable[int] = (),
    ) -> Registration:
        identity = self._identity(identity)
        personal = parse_model(PersonalInfo, personal_info)
        claim = validate_claim(
            self.catalog_service.snapshot(),
            category_ids,
            existing_product_ids,
            selected_product_ids,
            production_details,
        )
        uploads = self._uploads(documents)

        with self.store.serialized(self.registry.lock_keys(identity)):
            priors = self.registry.find_by_identity(identity)
            if priors:
                logger.warning("Rejected new registration for %s: already registered as %s", identity, [r.id for r in priors])
                owner = priors[-1]
                field = "aadharNumber" if identity.aadhar_number and identity.aadhar_number == owner.identity.aadhar_number else "voterId"
                raise DuplicateIdentityError(
                    f"This identity is already registered by {owner.personal_info.name}",
                    registration_ids=[r.id for r in priors],
                    field=field,
                )

            documents = self._store_documents(uploads)
            try:
                registration = self.store.insert(
                    NewRegistration(
                        identity=identity,
                        personal_info=personal,
                        category_ids=claim.category_ids,
                        existing_product_ids=claim.existing_product_ids,
                        selected_product_ids=claim.selected_product_ids,
                        production_details=claim.production_details,
                        documents=documents,
                    )
                )
            except Exception:
                self._discard_documents(documents.as_slots().values())
                raise

        logger.info(
            "Created registration %s for %s (categories=%s, products=%s)",
            registration.id,
            identity,
            list(registration.category_ids),
            sorted(registration.product_ids),
        )
        return registration

    def create_additional(
        self,
        base_registration_id: int,
        identity: Union[Identity, Mapping],
        category_ids: Iterable[int],
        existing_product_ids: Iterable[int],
        production_details: Sequence[DetailInput],
        selected_product_ids: Iterable[int] = (),
    ) -> Registration:
        identity = self._identity(identity)
        claim = validate_claim(
            self.catalog_service.snapshot(),
            category_ids,
            existing_product_ids,
            selected_product_ids,
            production_details,
        )

        base = self.store.get(base_registration_id)
        if base is None or not identity.matches(base.identity):
            raise NotFoundError("Base registration not found", field="baseRegistrationId")

        with self.store.serialized(self.registry.lock_keys(identity, base)):
            diff = self.diff_calculator.diff(self.registry.find_by_identity(identity))
            available_categories = {c.id for c in diff.categories}
            available_products = {p.id for p in diff.products}

            taken_categories = [c for c in claim.category_ids if c not in available_categories]
            taken_products = [p for p in claim.product_ids() if p not in available_products]
            if taken_categories or taken_products:
                logger.warning(
                    "Catalog conflict for %s: categories=%s products=%s",
                    identity,
                    taken_categories,
                    taken_products,
                )
                raise CatalogConflictError(taken_categories, taken_products)

            registration = self.store.insert(
                NewRegistration(
                    identity=base.identity,
                    personal_info=base.personal_info,
                    category_ids=claim.category_ids,
                    existing_product_ids=claim.existing_product_ids,
                    selected_product_ids=claim.selected_product_ids,
                    production_details=claim.production_details,
                    documents=base.documents,
                    base_registration_id=base.id,
                )
            )

        logger.info(
            "Created additional registration %s on base %s for %s",
            registration.id,
            base.id,
            identity,
        )
        return registration
