from typing import Callable, Dict

from pydantic.networks import validate_email

from registration.state import Step, WizardDraft
from registry.errors import InputError
from registry.identity import normalize_aadhar, normalize_voter_id
from registry.models import MANDATORY_DOCUMENT_SLOTS


class StepValidator:
    """
    Pure per-step checks over a draft. Each returns a field -> message dict;
    an empty dict means the step may move forward.
    """

    def __init__(self, required_personal_fields=("name", "address", "gender", "phone")):
        self.required_personal_fields = tuple(required_personal_fields)
        self._checks: Dict[Step, Callable[[WizardDraft], Dict[str, str]]] = {
            Step.IDENTITY_CHECK: self.identity_check,
            Step.PERSONAL_INFO: self.personal_info,
            Step.DOCUMENTS: self.documents,
            Step.CATEGORIES: self.categories,
            Step.EXISTING_PRODUCTS: self.existing_products,
            Step.PRODUCTION_DETAILS: self.production_details,
        }

    def errors_for(self, draft: WizardDraft, step: Step) -> Dict[str, str]:
        check = self._checks.get(step)
        return check(draft) if check else {}

    def is_valid(self, draft: WizardDraft, step: Step) -> bool:
        return not self.errors_for(draft, step)

    def ready_to_submit(self, draft: WizardDraft) -> bool:
        return all(self.is_valid(draft, step) for step in self._checks)

    @staticmethod
    def identity_format(draft: WizardDraft) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not draft.aadhar_number.strip() and not draft.voter_id.strip():
            errors["identity"] = "Either Aadhar Number or Voter ID is required"
            return errors
        for field, normalize in (("aadhar_number", normalize_aadhar), ("voter_id", normalize_voter_id)):
            try:
                normalize(getattr(draft, field))
            except InputError as exc:
                errors[field] = exc.message
        return errors

    def identity_check(self, draft: WizardDraft) -> Dict[str, str]:
        errors = self.identity_format(draft)
        if errors:
            return errors
        if draft.verification_ticket is not None:
            return {"verification": "Verification in progress"}
        if draft.verification is None:
            return {"verification": "Verify the Aadhar Number or Voter ID before continuing"}
        if draft.verification.is_registered and not draft.is_additional:
            return {
                "identity": "This ID is already registered. Create an additional registration instead."
            }
        if draft.mode is None:
            errors["mode"] = "Registration mode not chosen"
        return errors

    def personal_info(self, draft: WizardDraft) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        for field in self.required_personal_fields:
            if not getattr(draft, field).strip():
                errors[field] = f"{field.replace('_', ' ').capitalize()} is required"

        age = draft.age.strip()
        if not (age.isdigit() and int(age) > 0):
            errors["age"] = "Age must be a positive number"

        if draft.email.strip():
            try:
                validate_email(draft.email.strip())
            except ValueError:
                errors["email"] = "Email address is not valid"

        errors.update(self.identity_format(draft))
        return errors

    def documents(self, draft: WizardDraft) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if draft.is_additional:
            # uploads are disabled; only the base bundle counts
            for slot in MANDATORY_DOCUMENT_SLOTS:
                if draft.inherited_documents.get(slot) is None:
                    errors[slot] = "Document is missing from the base registration"
            return errors

        for slot in MANDATORY_DOCUMENT_SLOTS:
            if not draft.has_document(slot):
                errors[slot] = "Document is required"
        if "aadharCard" in errors and draft.compose_error:
            errors["aadharCard"] = draft.compose_error
        return errors

    def categories(self, draft: WizardDraft) -> Dict[str, str]:
        if not draft.category_ids:
            return {"productCategoryIds": "Select at least one category"}
        offered = {c.id for c in draft.offered_categories}
        unavailable = [c for c in draft.category_ids if c not in offered]
        if unavailable:
            return {"productCategoryIds": f"Categories not available: {unavailable}"}
        return {}

    def existing_products(self, draft: WizardDraft) -> Dict[str, str]:
        if not draft.existing_product_ids:
            return {"existingProducts": "Select at least one existing product"}
        allowed = {p.id for p in draft.products_for_chosen_categories()}
        outside = [p for p in draft.existing_product_ids if p not in allowed]
        if outside:
            return {"existingProducts": f"Products not available for the chosen categories: {outside}"}
        return {}

    def production_details(self, draft: WizardDraft) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        for product_id in draft.existing_product_ids:
            detail = draft.production_details.get(product_id)
            if detail is None:
                errors[f"productionDetails.{product_id}"] = "Production details are required"
            elif not detail.is_complete():
                errors[f"productionDetails.{product_id}"] = "Missing " + ", ".join(detail.missing_fields())

        choices = {p.id for p in draft.future_product_choices()}
        invalid = [p for p in draft.selected_product_ids if p not in choices]
        if invalid:
            errors["selectedProducts"] = f"Products not available: {invalid}"
        return errors
