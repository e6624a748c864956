from typing import Any, Mapping, Optional

from registration.state import WizardDraft
from registration.wizard import (
    EditField,
    NextStep,
    PreviousStep,
    RequestVerification,
    SetDocument,
    StartAdditional,
    Submit,
    ToggleCategory,
    ToggleExistingProduct,
    ToggleFutureProduct,
    UpdateProductionDetail,
    parse_action,
)
from registry.models import DocumentUpload


class IntakeSession:
    """
    Holds the draft of one wizard run and pushes each action through the
    compiled intake graph. Nothing outlives the session.
    """

    def __init__(self, graph: Any, draft: Optional[WizardDraft] = None):
        self.graph = graph
        self.draft = draft or WizardDraft()

    def dispatch(self, action: Any) -> WizardDraft:
        result = self.graph.invoke({"draft": self.draft, "action": parse_action(action)})
        draft = result["draft"] if isinstance(result, Mapping) else result.draft
        self.draft = WizardDraft.model_validate(draft)
        return self.draft

    def edit(self, **fields: Any) -> WizardDraft:
        for field, value in fields.items():
            self.dispatch(EditField(field=field, value=value))
        return self.draft

    def verify(self) -> WizardDraft:
        return self.dispatch(RequestVerification())

    def start_additional(self) -> WizardDraft:
        return self.dispatch(StartAdditional())

    def next(self) -> WizardDraft:
        return self.dispatch(NextStep())

    def previous(self) -> WizardDraft:
        return self.dispatch(PreviousStep())

    def upload(self, slot: str, content: Optional[bytes], filename: Optional[str] = None) -> WizardDraft:
        upload = None
        if content is not None:
            upload = DocumentUpload(filename=filename or f"{slot}.jpg", content=content)
        return self.dispatch(SetDocument(slot=slot, upload=upload))

    def toggle_category(self, category_id: int) -> WizardDraft:
        return self.dispatch(ToggleCategory(category_id=category_id))

    def toggle_existing_product(self, product_id: int) -> WizardDraft:
        return self.dispatch(ToggleExistingProduct(product_id=product_id))

    def fill_details(self, product_id: int, **values: Any) -> WizardDraft:
        return self.dispatch(UpdateProductionDetail(product_id=product_id, values=values))

    def toggle_future_product(self, product_id: int) -> WizardDraft:
        return self.dispatch(ToggleFutureProduct(product_id=product_id))

    def submit(self) -> WizardDraft:
        return self.dispatch(Submit())
