from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from catalog.models import Category, Product
from registry.models import DocumentBundleRef, DocumentUpload, ProductionDetail, VerificationResult


class Step(IntEnum):
    IDENTITY_CHECK = 0
    PERSONAL_INFO = 1
    DOCUMENTS = 2
    CATEGORIES = 3
    EXISTING_PRODUCTS = 4
    PRODUCTION_DETAILS = 5
    DONE = 6


class Mode(str, Enum):
    NEW = "new"
    ADDITIONAL = "additional"


IDENTITY_FIELDS = ("aadhar_number", "voter_id")
PERSONAL_FIELDS = ("name", "address", "age", "gender", "phone", "email", "pan_number")

AADHAR_FRONT = "aadharCardFront"
AADHAR_BACK = "aadharCardBack"
UPLOAD_SLOTS = (AADHAR_FRONT, AADHAR_BACK, "panCard", "proofOfProduction", "signature", "photo")
MERGED_AADHAR_FILENAME = "aadhar-combined.jpg"


class WizardDraft(BaseModel):
    """
    Everything one intake run has collected so far. Immutable: reducers return
    updated copies via ``model_copy``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    step: Step = Step.IDENTITY_CHECK
    mode: Optional[Mode] = None

    aadhar_number: str = Field(default="", description="12 digit Aadhar number as typed")
    voter_id: str = Field(default="", description="Voter ID as typed")

    name: str = ""
    address: str = ""
    age: str = ""
    gender: str = ""
    phone: str = Field(default="", description="Contact phone number")
    email: str = ""
    pan_number: str = Field(default="", description="Permanent Account Number")
    prefilled_fields: Tuple[str, ...] = ()

    verification: Optional[VerificationResult] = None
    verification_ticket: Optional[str] = None
    base_registration_id: Optional[int] = None
    inherited_documents: DocumentBundleRef = Field(default_factory=DocumentBundleRef)

    uploads: Dict[str, DocumentUpload] = Field(default_factory=dict)
    merged_aadhar: Optional[DocumentUpload] = None
    compose_ticket: Optional[str] = None
    compose_error: Optional[str] = None

    category_ids: Tuple[int, ...] = ()
    existing_product_ids: Tuple[int, ...] = ()
    production_details: Dict[int, ProductionDetail] = Field(default_factory=dict)
    selected_product_ids: Tuple[int, ...] = ()

    submit_ticket: Optional[str] = None
    registration_id: Optional[int] = None
    reused_files: bool = False

    validation_errors: Dict[str, str] = Field(default_factory=dict)
    last_error: Optional[str] = None
    conflicting_category_ids: Tuple[int, ...] = ()
    conflicting_product_ids: Tuple[int, ...] = ()

    @property
    def is_additional(self) -> bool:
        return self.mode == Mode.ADDITIONAL

    @property
    def offered_categories(self) -> Tuple[Category, ...]:
        """Full catalog for a fresh identity, the unclaimed remainder otherwise."""
        return self.verification.available_categories if self.verification else ()

    @property
    def offered_products(self) -> Tuple[Product, ...]:
        return self.verification.available_products if self.verification else ()

    def products_for_chosen_categories(self) -> List[Product]:
        chosen = set(self.category_ids)
        return [p for p in self.offered_products if p.category_id in chosen]

    def future_product_choices(self) -> List[Product]:
        existing = set(self.existing_product_ids)
        return [p for p in self.offered_products if p.id not in existing]

    def inherited(self, slot: str) -> bool:
        if not self.is_additional:
            return False
        if slot in (AADHAR_FRONT, AADHAR_BACK):
            slot = "aadharCard"
        return self.inherited_documents.get(slot) is not None

    def has_document(self, slot: str) -> bool:
        if slot == "aadharCard":
            fresh = self.merged_aadhar is not None
        else:
            fresh = slot in self.uploads
        return fresh or self.inherited(slot)

    def documents_for_submission(self) -> Dict[str, DocumentUpload]:
        docs = {slot: upload for slot, upload in self.uploads.items() if slot not in (AADHAR_FRONT, AADHAR_BACK)}
        if self.merged_aadhar is not None:
            docs["aadharCard"] = self.merged_aadhar
        return docs

    def identity_payload(self) -> Dict[str, Optional[str]]:
        return {"aadharNumber": self.aadhar_number or None, "voterId": self.voter_id or None}

    def personal_payload(self) -> Dict[str, Optional[str]]:
        return {
            "name": self.name,
            "address": self.address,
            "age": self.age,
            "gender": self.gender,
            "phone": self.phone,
            "email": self.email or None,
            "panNumber": self.pan_number or None,
        }
