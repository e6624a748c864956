from datetime import datetime
from typing import Annotated, Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, ValidationError
from pydantic.alias_generators import to_camel

from catalog.models import Category, Product
from registry.errors import InputError
from registry.identity import Identity

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

DOCUMENT_SLOTS = ("aadharCard", "panCard", "proofOfProduction", "signature", "photo")
MANDATORY_DOCUMENT_SLOTS = ("aadharCard", "signature", "photo")

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` into ``model``, reporting the first problem as an InputError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise InputError(f"Invalid {field or model.__name__}: {first['msg']}", field=field) from exc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class PersonalInfo(CamelModel):
    name: NonBlank
    address: NonBlank
    age: int = Field(..., gt=0)
    gender: NonBlank
    phone: NonBlank
    email: Optional[EmailStr] = None
    pan_number: Optional[str] = None


class ProductionDetail(CamelModel):
    product_id: int
    product_name: Optional[str] = None
    annual_production: str = ""
    unit: str = "kg"
    area_of_production: str = ""
    years_of_production: str = ""
    annual_turnover: str = ""
    turnover_unit: Optional[str] = "lakh"
    additional_notes: Optional[str] = None

    def missing_fields(self) -> List[str]:
        required = {
            "annualProduction": self.annual_production,
            "unit": self.unit,
            "areaOfProduction": self.area_of_production,
            "yearsOfProduction": self.years_of_production,
            "annualTurnover": self.annual_turnover,
        }
        return [name for name, value in required.items() if not str(value or "").strip()]

    def is_complete(self) -> bool:
        return not self.missing_fields()


class DocumentUpload(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes


class DocumentBundleRef(CamelModel):
    """Storage references for the five document slots of a registration."""

    aadhar_card: Optional[str] = None
    pan_card: Optional[str] = None
    proof_of_production: Optional[str] = None
    signature: Optional[str] = None
    photo: Optional[str] = None

    def get(self, slot: str) -> Optional[str]:
        return self.as_slots().get(slot)

    def as_slots(self) -> Dict[str, str]:
        return {k: v for k, v in self.model_dump(by_alias=True).items() if v}

    def missing_mandatory(self) -> List[str]:
        present = self.as_slots()
        return [slot for slot in MANDATORY_DOCUMENT_SLOTS if slot not in present]


class NewRegistration(CamelModel):
    identity: Identity
    personal_info: PersonalInfo
    category_ids: Tuple[int, ...]
    existing_product_ids: Tuple[int, ...]
    selected_product_ids: Tuple[int, ...] = ()
    production_details: Tuple[ProductionDetail, ...] = ()
    documents: DocumentBundleRef = Field(default_factory=DocumentBundleRef)
    base_registration_id: Optional[int] = None


class Registration(NewRegistration):
    id: int
    created_at: datetime

    @property
    def product_ids(self) -> FrozenSet[int]:
        return frozenset(self.existing_product_ids) | frozenset(self.selected_product_ids)

    @property
    def reused_files(self) -> bool:
        return self.base_registration_id is not None

    def detail_for(self, product_id: int) -> Optional[ProductionDetail]:
        for detail in self.production_details:
            if detail.product_id == product_id:
                return detail
        return None


class PriorRegistrationSummary(CamelModel):
    id: int
    category_ids: List[int]
    category_names: List[str]
    selected_product_ids: List[int]
    existing_product_ids: List[int]
    registration_date: datetime


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: Identity
    is_registered: bool
    prior_registrations: Tuple[Registration, ...] = ()
    existing_registrations: Tuple[PriorRegistrationSummary, ...] = ()
    available_categories: Tuple[Category, ...] = ()
    available_products: Tuple[Product, ...] = ()
    name: Optional[str] = None
    latest_registration_date: Optional[datetime] = None

    @property
    def base_registration(self) -> Optional[Registration]:
        return self.prior_registrations[0] if self.prior_registrations else None

    @property
    def latest_registration(self) -> Optional[Registration]:
        return self.prior_registrations[-1] if self.prior_registrations else None

    def user_data(self) -> Optional[Dict[str, Any]]:
        """Personal data of the latest registration plus the reusable document paths."""
        latest = self.latest_registration
        if latest is None:
            return None
        data = latest.personal_info.model_dump(by_alias=True, exclude_none=True)
        if latest.identity.aadhar_number:
            data["aadharNumber"] = latest.identity.aadhar_number
        if latest.identity.voter_id:
            data["voterId"] = latest.identity.voter_id
        data["documentPaths"] = self.base_registration.documents.as_slots()
        return data

    def to_response(self) -> Mapping[str, Any]:
        body: Dict[str, Any] = {"isRegistered": self.is_registered}
        if self.is_registered:
            body["registrationId"] = self.latest_registration.id
            body["name"] = self.name
            body["registrationDate"] = self.latest_registration_date.isoformat()
            body["userData"] = self.user_data()
            body["existingRegistrations"] = [
                s.model_dump(by_alias=True, mode="json") for s in self.existing_registrations
            ]
        body["availableCategories"] = [c.model_dump() for c in self.available_categories]
        body["availableProducts"] = [p.model_dump() for p in self.available_products]
        return body
