import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from catalog.service import products_by_categories
from registry.errors import InputError, RegistrationError
from registry.models import DocumentUpload
from service.container import Services, build_services

logger = logging.getLogger(__name__)


class VerifyRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    aadhar_number: Optional[str] = None
    voter_id: Optional[str] = None


class AdditionalRegistrationRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    base_registration_id: int
    aadhar_number: Optional[str] = None
    voter_id: Optional[str] = None
    product_category_ids: List[int] = Field(default_factory=list)
    existing_products: List[int] = Field(default_factory=list)
    selected_products: List[int] = Field(default_factory=list)
    production_details: List[Dict[str, Any]] = Field(default_factory=list)


def _json_list(raw: Optional[str], field: str) -> List[Any]:
    if raw is None or raw.strip() == "":
        return []
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise InputError(f"{field} must be a JSON array", field=field) from exc
    if not isinstance(value, list):
        raise InputError(f"{field} must be a JSON array", field=field)
    return value


def _upload(file: Optional[UploadFile]) -> Optional[DocumentUpload]:
    if file is None:
        return None
    content = file.file.read()
    if not content:
        return None
    return DocumentUpload(filename=file.filename or "upload.bin", content=content)


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()

    app = FastAPI(title="GI Enrollment")
    app.state.services = services

    @app.exception_handler(RegistrationError)
    async def registration_error_handler(request: Request, exc: RegistrationError):
        if exc.status_code >= 500:
            logger.error("Registration request failed: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "form")]
        field = ".".join(loc) or None
        body: Dict[str, Any] = {"error": f"Invalid {field or 'request'}: {first.get('msg', 'malformed request')}"}
        if field:
            body["field"] = field
        return JSONResponse(status_code=400, content=body)

    @app.post("/registrations/verify")
    def verify_registration(payload: VerifyRequest):
        result = services.verification.verify_raw(payload.aadhar_number, payload.voter_id)
        return result.to_response()

    @app.post("/registrations", status_code=201)
    def create_registration(
        name: str = Form(""),
        address: str = Form(""),
        age: str = Form(""),
        gender: str = Form(""),
        phone: str = Form(""),
        email: Optional[str] = Form(None),
        pan_number: Optional[str] = Form(None, alias="panNumber"),
        aadhar_number: Optional[str] = Form(None, alias="aadharNumber"),
        voter_id: Optional[str] = Form(None, alias="voterId"),
        product_category_ids: Optional[str] = Form(None, alias="productCategoryIds"),
        existing_products: Optional[str] = Form(None, alias="existingProducts"),
        selected_products: Optional[str] = Form(None, alias="selectedProducts"),
        production_details: Optional[str] = Form(None, alias="productionDetails"),
        aadhar_card: Optional[UploadFile] = File(None, alias="aadharCard"),
        pan_card: Optional[UploadFile] = File(None, alias="panCard"),
        proof_of_production: Optional[UploadFile] = File(None, alias="proofOfProduction"),
        signature: Optional[UploadFile] = File(None),
        photo: Optional[UploadFile] = File(None),
    ):
        registration = services.builder.create_new(
            identity={"aadharNumber": aadhar_number, "voterId": voter_id},
            personal_info={
                "name": name,
                "address": address,
                "age": age,
                "gender": gender,
                "phone": phone,
                "email": email or None,
                "panNumber": pan_number or None,
            },
            category_ids=_json_list(product_category_ids, "productCategoryIds"),
            existing_product_ids=_json_list(existing_products, "existingProducts"),
            selected_product_ids=_json_list(selected_products, "selectedProducts"),
            production_details=_json_list(production_details, "productionDetails"),
            documents={
                "aadharCard": _upload(aadhar_card),
                "panCard": _upload(pan_card),
                "proofOfProduction": _upload(proof_of_production),
                "signature": _upload(signature),
                "photo": _upload(photo),
            },
        )
        return {
            "message": "Registration created successfully",
            "registrationId": registration.id,
            "documentPaths": registration.documents.as_slots(),
        }

    @app.post("/registrations/additional", status_code=201)
    def create_additional_registration(payload: AdditionalRegistrationRequest):
        registration = services.builder.create_additional(
            payload.base_registration_id,
            identity={"aadharNumber": payload.aadhar_number, "voterId": payload.voter_id},
            category_ids=payload.product_category_ids,
            existing_product_ids=payload.existing_products,
            selected_product_ids=payload.selected_products,
            production_details=payload.production_details,
        )
        return {
            "message": "Additional registration created successfully",
            "registrationId": registration.id,
            "reusedFiles": registration.reused_files,
            "baseRegistrationId": registration.base_registration_id,
        }

    @app.get("/products/categories")
    def get_product_categories():
        catalog = services.catalog_service.snapshot()
        return {"categories": [c.model_dump() for c in catalog.categories]}

    @app.get("/products")
    def get_products(category_id: Optional[int] = None):
        catalog = services.catalog_service.snapshot()
        products = catalog.products if category_id is None else catalog.products_in([category_id])
        return {"products": [p.model_dump() for p in products]}

    @app.get("/products/by-categories")
    def get_products_by_categories(category_ids: List[int] = Query(default=[], alias="categoryIds")):
        catalog = services.catalog_service.snapshot()
        return {"products": [p.model_dump() for p in products_by_categories(catalog, category_ids)]}

    return app
