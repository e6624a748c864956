import logging
from typing import Any, Dict, Literal, Optional

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, ConfigDict, Field

from documents.composer import DocumentComposer
from registration.state import AADHAR_BACK, AADHAR_FRONT, Mode, WizardDraft
from registration.validator import StepValidator
from registration.wizard import (
    ComposeFailed,
    ComposeResolved,
    SubmissionRejected,
    SubmissionSucceeded,
    VerificationFailed,
    VerificationResolved,
    WizardAction,
    reduce,
)
from registry.builder import RegistrationBuilder
from registry.errors import CatalogConflictError, RegistrationError
from registry.verification import VerificationService

logger = logging.getLogger(__name__)


class IntakeState(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    draft: WizardDraft = Field(default_factory=WizardDraft)
    action: Optional[WizardAction] = None


class IntakeGraphFactory:
    """
    One invoke = one user action. ``apply`` runs the pure reducer; the effect
    nodes run the call a ticket was issued for and feed the tagged result back
    through the reducer.
    """

    def __init__(
        self,
        validator: StepValidator,
        verification: VerificationService,
        builder: RegistrationBuilder,
        composer: DocumentComposer,
    ):
        self.validator = validator
        self.verification = verification
        self.builder = builder
        self.composer = composer

    def apply_node(self, state: IntakeState) -> Dict[str, Any]:
        return {"draft": reduce(state.draft, state.action, self.validator), "action": None}

    @staticmethod
    def route(state: IntakeState) -> Literal["verify", "compose", "submit", "end"]:
        draft = state.draft
        if draft.verification_ticket is not None:
            return "verify"
        if draft.compose_ticket is not None:
            return "compose"
        if draft.submit_ticket is not None:
            return "submit"
        return "end"

    def verify_node(self, state: IntakeState) -> Dict[str, Any]:
        draft = state.draft
        ticket = draft.verification_ticket
        try:
            result = self.verification.verify_raw(draft.aadhar_number, draft.voter_id)
            action = VerificationResolved(ticket=ticket, result=result)
        except RegistrationError as exc:
            action = VerificationFailed(ticket=ticket, message=exc.message)
        return {"draft": reduce(draft, action, self.validator)}

    def compose_node(self, state: IntakeState) -> Dict[str, Any]:
        draft = state.draft
        ticket = draft.compose_ticket
        try:
            image = self.composer.combine(
                draft.uploads[AADHAR_FRONT].content,
                draft.uploads[AADHAR_BACK].content,
            )
            action = ComposeResolved(ticket=ticket, image=image)
        except RegistrationError as exc:
            logger.info("Could not combine Aadhar images: %s", exc.message)
            action = ComposeFailed(ticket=ticket, message=exc.message)
        return {"draft": reduce(draft, action, self.validator)}

    def submit_node(self, state: IntakeState) -> Dict[str, Any]:
        draft = state.draft
        ticket = draft.submit_ticket
        common = dict(
            identity=draft.identity_payload(),
            category_ids=draft.category_ids,
            existing_product_ids=draft.existing_product_ids,
            production_details=list(draft.production_details.values()),
            selected_product_ids=draft.selected_product_ids,
        )
        try:
            if draft.mode == Mode.ADDITIONAL:
                registration = self.builder.create_additional(draft.base_registration_id, **common)
            else:
                registration = self.builder.create_new(
                    personal_info=draft.personal_payload(),
                    documents=draft.documents_for_submission(),
                    **common,
                )
            action = SubmissionSucceeded(
                ticket=ticket,
                registration_id=registration.id,
                reused_files=registration.reused_files,
            )
        except CatalogConflictError as exc:
            action = SubmissionRejected(
                ticket=ticket,
                error=type(exc).__name__,
                message=exc.message,
                category_ids=tuple(exc.category_ids),
                product_ids=tuple(exc.product_ids),
            )
        except RegistrationError as exc:
            action = SubmissionRejected(ticket=ticket, error=type(exc).__name__, message=exc.message)
        return {"draft": reduce(draft, action, self.validator)}

    def build(self) -> StateGraph:
        g = StateGraph(IntakeState)

        g.add_node("apply", self.apply_node)
        g.add_node("verify", self.verify_node)
        g.add_node("compose", self.compose_node)
        g.add_node("submit", self.submit_node)

        g.add_edge(START, "apply")
        g.add_conditional_edges(
            "apply",
            self.route,
            {"verify": "verify", "compose": "compose", "submit": "submit", "end": END},
        )
        g.add_edge("verify", END)
        g.add_edge("compose", END)
        g.add_edge("submit", END)

        return g

    def compile(self, checkpointer: Any = None):
        return self.build().compile(checkpointer=checkpointer)
