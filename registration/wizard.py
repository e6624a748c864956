import logging
from typing import Annotated, Any, Callable, Dict, Literal, Mapping, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from registration.state import (
    AADHAR_BACK,
    AADHAR_FRONT,
    IDENTITY_FIELDS,
    MERGED_AADHAR_FILENAME,
    PERSONAL_FIELDS,
    UPLOAD_SLOTS,
    Mode,
    Step,
    WizardDraft,
)
from registration.validator import StepValidator
from registry.errors import InputError
from registry.identity import Identity
from registry.models import DocumentBundleRef, DocumentUpload, ProductionDetail, VerificationResult

logger = logging.getLogger(__name__)


def _ticket() -> str:
    return uuid4().hex


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class EditField(_Action):
    kind: Literal["edit_field"] = "edit_field"
    field: str
    value: Any = ""


class RequestVerification(_Action):
    kind: Literal["request_verification"] = "request_verification"
    ticket: str = Field(default_factory=_ticket)


class VerificationResolved(_Action):
    kind: Literal["verification_resolved"] = "verification_resolved"
    ticket: str
    result: VerificationResult


class VerificationFailed(_Action):
    kind: Literal["verification_failed"] = "verification_failed"
    ticket: str
    message: str


class StartAdditional(_Action):
    kind: Literal["start_additional"] = "start_additional"


class NextStep(_Action):
    kind: Literal["next"] = "next"


class PreviousStep(_Action):
    kind: Literal["previous"] = "previous"


class SetDocument(_Action):
    kind: Literal["set_document"] = "set_document"
    slot: str
    upload: Optional[DocumentUpload] = None
    ticket: str = Field(default_factory=_ticket)


class ComposeResolved(_Action):
    kind: Literal["compose_resolved"] = "compose_resolved"
    ticket: str
    image: bytes


class ComposeFailed(_Action):
    kind: Literal["compose_failed"] = "compose_failed"
    ticket: str
    message: str


class ToggleCategory(_Action):
    kind: Literal["toggle_category"] = "toggle_category"
    category_id: int


class ToggleExistingProduct(_Action):
    kind: Literal["toggle_existing_product"] = "toggle_existing_product"
    product_id: int


class UpdateProductionDetail(_Action):
    kind: Literal["update_production_detail"] = "update_production_detail"
    product_id: int
    values: Dict[str, Any]


class ToggleFutureProduct(_Action):
    kind: Literal["toggle_future_product"] = "toggle_future_product"
    product_id: int


class Submit(_Action):
    kind: Literal["submit"] = "submit"
    ticket: str = Field(default_factory=_ticket)


class SubmissionSucceeded(_Action):
    kind: Literal["submission_succeeded"] = "submission_succeeded"
    ticket: str
    registration_id: int
    reused_files: bool = False


class SubmissionRejected(_Action):
    kind: Literal["submission_rejected"] = "submission_rejected"
    ticket: str
    error: str
    message: str
    category_ids: Tuple[int, ...] = ()
    product_ids: Tuple[int, ...] = ()


WizardAction = Annotated[
    Union[
        EditField,
        RequestVerification,
        VerificationResolved,
        VerificationFailed,
        StartAdditional,
        NextStep,
        PreviousStep,
        SetDocument,
        ComposeResolved,
        ComposeFailed,
        ToggleCategory,
        ToggleExistingProduct,
        UpdateProductionDetail,
        ToggleFutureProduct,
        Submit,
        SubmissionSucceeded,
        SubmissionRejected,
    ],
    Field(discriminator="kind"),
]


def _fail(draft: WizardDraft, message: str) -> WizardDraft:
    return draft.model_copy(update={"last_error": message})


def _reset_branch(draft: WizardDraft) -> WizardDraft:
    """Forget everything derived from the identity check."""
    update: Dict[str, Any] = {field: "" for field in draft.prefilled_fields}
    update.update(
        mode=None,
        verification=None,
        verification_ticket=None,
        base_registration_id=None,
        inherited_documents=DocumentBundleRef(),
        prefilled_fields=(),
        conflicting_category_ids=(),
        conflicting_product_ids=(),
    )
    return draft.model_copy(update=update)


def _edit_field(draft: WizardDraft, action: EditField) -> WizardDraft:
    if action.field in IDENTITY_FIELDS:
        if draft.step != Step.IDENTITY_CHECK:
            return _fail(draft, "Identity can only be changed at the identity check step")
        draft = _reset_branch(draft)
        return draft.model_copy(update={action.field: str(action.value or ""), "last_error": None})

    if action.field not in PERSONAL_FIELDS:
        return _fail(draft, f"Unknown field {action.field}")
    prefilled = tuple(f for f in draft.prefilled_fields if f != action.field)
    value = "" if action.value is None else str(action.value)
    return draft.model_copy(update={action.field: value, "prefilled_fields": prefilled})


def _request_verification(draft: WizardDraft, action: RequestVerification) -> WizardDraft:
    if draft.step != Step.IDENTITY_CHECK:
        return _fail(draft, "Verification is only possible at the identity check step")
    try:
        Identity.parse(draft.aadhar_number, draft.voter_id)
    except InputError as exc:
        return _fail(draft, exc.message)
    draft = _reset_branch(draft)
    return draft.model_copy(update={"verification_ticket": action.ticket, "last_error": None})


def _verification_resolved(draft: WizardDraft, action: VerificationResolved) -> WizardDraft:
    if draft.step != Step.IDENTITY_CHECK or action.ticket != draft.verification_ticket:
        logger.debug("Dropping stale verification result %s", action.ticket)
        return draft
    result = action.result
    return draft.model_copy(
        update={
            "verification": result,
            "verification_ticket": None,
            "mode": None if result.is_registered else Mode.NEW,
            "last_error": None,
        }
    )


def _verification_failed(draft: WizardDraft, action: VerificationFailed) -> WizardDraft:
    if action.ticket != draft.verification_ticket:
        return draft
    return draft.model_copy(update={"verification_ticket": None, "last_error": action.message})


def _start_additional(draft: WizardDraft, action: StartAdditional) -> WizardDraft:
    result = draft.verification
    if draft.step != Step.IDENTITY_CHECK or result is None or not result.is_registered:
        return _fail(draft, "Additional registration needs an already registered identity")
    if not result.available_categories:
        return _fail(draft, "All categories are already registered for this identity")

    base = result.base_registration
    update: Dict[str, Any] = {
        "mode": Mode.ADDITIONAL,
        "base_registration_id": base.id,
        "inherited_documents": base.documents,
        "uploads": {},
        "merged_aadhar": None,
        "compose_ticket": None,
        "compose_error": None,
        "last_error": None,
    }
    prefill = base.personal_info.model_dump(exclude_none=True)
    prefilled = []
    for field in PERSONAL_FIELDS:
        if field in prefill:
            update[field] = str(prefill[field])
            prefilled.append(field)
    update["prefilled_fields"] = tuple(prefilled)
    return draft.model_copy(update=update)


def _next(draft: WizardDraft, action: NextStep, validator: StepValidator) -> WizardDraft:
    if draft.step >= Step.PRODUCTION_DETAILS:
        return _fail(draft, "Nothing after this step; submit instead")
    errors = validator.errors_for(draft, draft.step)
    if errors:
        return draft.model_copy(update={"validation_errors": errors, "last_error": "Please complete all required fields"})
    return draft.model_copy(update={"step": Step(draft.step + 1), "last_error": None})


def _previous(draft: WizardDraft, action: PreviousStep) -> WizardDraft:
    if draft.step in (Step.IDENTITY_CHECK, Step.DONE):
        return draft
    draft = draft.model_copy(update={"step": Step(draft.step - 1), "last_error": None})
    if draft.step == Step.IDENTITY_CHECK:
        draft = _reset_branch(draft)
    return draft


def _set_document(draft: WizardDraft, action: SetDocument) -> WizardDraft:
    if action.slot not in UPLOAD_SLOTS:
        return _fail(draft, f"Unknown document slot {action.slot}")
    if draft.is_additional:
        return _fail(draft, "Documents are reused from the base registration")

    uploads = dict(draft.uploads)
    if action.upload is None or not action.upload.content:
        uploads.pop(action.slot, None)
    else:
        uploads[action.slot] = action.upload

    update: Dict[str, Any] = {"uploads": uploads}
    if action.slot in (AADHAR_FRONT, AADHAR_BACK):
        both = AADHAR_FRONT in uploads and AADHAR_BACK in uploads
        update.update(
            merged_aadhar=None,
            compose_error=None,
            compose_ticket=action.ticket if both else None,
        )
    return draft.model_copy(update=update)


def _compose_resolved(draft: WizardDraft, action: ComposeResolved) -> WizardDraft:
    if action.ticket != draft.compose_ticket:
        logger.debug("Dropping stale composed image %s", action.ticket)
        return draft
    merged = DocumentUpload(filename=MERGED_AADHAR_FILENAME, content=action.image)
    return draft.model_copy(update={"merged_aadhar": merged, "compose_ticket": None, "compose_error": None})


def _compose_failed(draft: WizardDraft, action: ComposeFailed) -> WizardDraft:
    if action.ticket != draft.compose_ticket:
        return draft
    return draft.model_copy(
        update={"merged_aadhar": None, "compose_ticket": None, "compose_error": action.message}
    )


def _toggle_category(draft: WizardDraft, action: ToggleCategory) -> WizardDraft:
    category_id = action.category_id
    if category_id in draft.category_ids:
        dropped = {p.id for p in draft.offered_products if p.category_id == category_id}
        existing = tuple(p for p in draft.existing_product_ids if p not in dropped)
        details = {k: v for k, v in draft.production_details.items() if k in existing}
        return draft.model_copy(
            update={
                "category_ids": tuple(c for c in draft.category_ids if c != category_id),
                "existing_product_ids": existing,
                "production_details": details,
            }
        )
    if category_id not in {c.id for c in draft.offered_categories}:
        return _fail(draft, f"Category {category_id} is not available")
    return draft.model_copy(update={"category_ids": draft.category_ids + (category_id,)})


def _toggle_existing_product(draft: WizardDraft, action: ToggleExistingProduct) -> WizardDraft:
    product_id = action.product_id
    details = dict(draft.production_details)
    if product_id in draft.existing_product_ids:
        details.pop(product_id, None)
        return draft.model_copy(
            update={
                "existing_product_ids": tuple(p for p in draft.existing_product_ids if p != product_id),
                "production_details": details,
            }
        )

    product = next((p for p in draft.products_for_chosen_categories() if p.id == product_id), None)
    if product is None:
        return _fail(draft, f"Product {product_id} is not available for the chosen categories")
    details[product_id] = ProductionDetail(product_id=product_id, product_name=product.name)
    return draft.model_copy(
        update={
            "existing_product_ids": draft.existing_product_ids + (product_id,),
            "selected_product_ids": tuple(p for p in draft.selected_product_ids if p != product_id),
            "production_details": details,
        }
    )


def _update_production_detail(draft: WizardDraft, action: UpdateProductionDetail) -> WizardDraft:
    current = draft.production_details.get(action.product_id)
    if current is None:
        return _fail(draft, f"Product {action.product_id} is not an existing product of this draft")
    merged = current.model_dump(by_alias=True)
    for key, value in action.values.items():
        alias = ProductionDetail.model_fields[key].alias if key in ProductionDetail.model_fields else key
        merged[alias] = value
    merged["productId"] = action.product_id
    try:
        detail = ProductionDetail.model_validate(merged)
    except ValidationError as exc:
        return _fail(draft, str(exc.errors()[0]["msg"]))
    details = dict(draft.production_details)
    details[action.product_id] = detail
    return draft.model_copy(update={"production_details": details})


def _toggle_future_product(draft: WizardDraft, action: ToggleFutureProduct) -> WizardDraft:
    product_id = action.product_id
    if product_id in draft.selected_product_ids:
        return draft.model_copy(
            update={"selected_product_ids": tuple(p for p in draft.selected_product_ids if p != product_id)}
        )
    if product_id not in {p.id for p in draft.future_product_choices()}:
        return _fail(draft, f"Product {product_id} is not available")
    return draft.model_copy(update={"selected_product_ids": draft.selected_product_ids + (product_id,)})


def _submit(draft: WizardDraft, action: Submit, validator: StepValidator) -> WizardDraft:
    if draft.step != Step.PRODUCTION_DETAILS:
        return _fail(draft, "Submission is only possible from the production details step")
    if draft.submit_ticket is not None:
        return _fail(draft, "Submission already in progress")
    if not validator.ready_to_submit(draft):
        return _fail(draft, "Please complete all required fields")
    return draft.model_copy(
        update={
            "submit_ticket": action.ticket,
            "last_error": None,
            "conflicting_category_ids": (),
            "conflicting_product_ids": (),
        }
    )


def _submission_succeeded(draft: WizardDraft, action: SubmissionSucceeded) -> WizardDraft:
    if action.ticket != draft.submit_ticket:
        return draft
    return draft.model_copy(
        update={
            "step": Step.DONE,
            "submit_ticket": None,
            "registration_id": action.registration_id,
            "reused_files": action.reused_files,
        }
    )


def _submission_rejected(draft: WizardDraft, action: SubmissionRejected) -> WizardDraft:
    if action.ticket != draft.submit_ticket:
        return draft
    draft = draft.model_copy(update={"submit_ticket": None, "last_error": action.message})
    if action.error == "DuplicateIdentityError":
        draft = _reset_branch(draft.model_copy(update={"step": Step.IDENTITY_CHECK}))
    elif action.error == "CatalogConflictError":
        draft = draft.model_copy(
            update={
                "conflicting_category_ids": tuple(action.category_ids),
                "conflicting_product_ids": tuple(action.product_ids),
            }
        )
    return draft


_HANDLERS: Mapping[str, Callable[..., WizardDraft]] = {
    "edit_field": _edit_field,
    "request_verification": _request_verification,
    "verification_resolved": _verification_resolved,
    "verification_failed": _verification_failed,
    "start_additional": _start_additional,
    "previous": _previous,
    "set_document": _set_document,
    "compose_resolved": _compose_resolved,
    "compose_failed": _compose_failed,
    "toggle_category": _toggle_category,
    "toggle_existing_product": _toggle_existing_product,
    "update_production_detail": _update_production_detail,
    "toggle_future_product": _toggle_future_product,
    "submission_succeeded": _submission_succeeded,
    "submission_rejected": _submission_rejected,
}

_VALIDATED_HANDLERS: Mapping[str, Callable[..., WizardDraft]] = {
    "next": _next,
    "submit": _submit,
}


def reduce(draft: WizardDraft, action: Any, validator: Optional[StepValidator] = None) -> WizardDraft:
    """(draft, action) -> draft. Never mutates ``draft`` and performs no I/O."""
    validator = validator or StepValidator()
    action = parse_action(action)
    if action is None:
        return draft

    if action.kind in _VALIDATED_HANDLERS:
        updated = _VALIDATED_HANDLERS[action.kind](draft, action, validator)
    else:
        updated = _HANDLERS[action.kind](draft, action)

    if updated.step == Step.DONE:
        return updated.model_copy(update={"validation_errors": {}})
    return updated.model_copy(update={"validation_errors": validator.errors_for(updated, updated.step)})


_action_adapter: TypeAdapter = TypeAdapter(WizardAction)


def parse_action(data: Any) -> Any:
    if data is None or isinstance(data, _Action):
        return data
    return _action_adapter.validate_python(data)
