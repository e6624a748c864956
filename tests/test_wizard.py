import pytest

from registration.state import AADHAR_BACK, AADHAR_FRONT, Mode, Step, WizardDraft
from registration.wizard import (
    ComposeResolved,
    EditField,
    NextStep,
    PreviousStep,
    RequestVerification,
    SetDocument,
    StartAdditional,
    Submit,
    SubmissionRejected,
    SubmissionSucceeded,
    ToggleCategory,
    ToggleExistingProduct,
    UpdateProductionDetail,
    VerificationResolved,
    reduce,
)
from registry.models import DocumentUpload

AADHAR = "123456789012"

PERSONAL = {
    "name": "Rina Basumatary",
    "address": "Kokrajhar, Assam",
    "age": "34",
    "gender": "female",
    "phone": "9876543210",
}

DETAILS = {
    "annual_production": "120",
    "area_of_production": "2 bigha",
    "years_of_production": "6",
    "annual_turnover": "1.5",
}


def run(draft, *actions):
    for action in actions:
        draft = reduce(draft, action)
    return draft


def _upload(name):
    return DocumentUpload(filename=f"{name}.png", content=name.encode())


@pytest.fixture
def verified(services):
    """Draft at S0 with a completed verification for ``identity``."""

    def _verified(**identity):
        draft = WizardDraft()
        for field, value in identity.items():
            draft = reduce(draft, EditField(field=field, value=value))
        request = RequestVerification()
        draft = reduce(draft, request)
        result = services.verification.verify_raw(identity.get("aadhar_number"), identity.get("voter_id"))
        return reduce(draft, VerificationResolved(ticket=request.ticket, result=result))

    return _verified


@pytest.fixture
def at_details(verified):
    """New-mode draft at S5 with category 1 and existing product 10 filled in."""
    draft = run(verified(aadhar_number=AADHAR), NextStep())
    draft = run(draft, *[EditField(field=f, value=v) for f, v in PERSONAL.items()], NextStep())

    back = SetDocument(slot=AADHAR_BACK, upload=_upload("back"))
    draft = run(
        draft,
        SetDocument(slot=AADHAR_FRONT, upload=_upload("front")),
        back,
        ComposeResolved(ticket=back.ticket, image=b"merged"),
        SetDocument(slot="signature", upload=_upload("signature")),
        SetDocument(slot="photo", upload=_upload("photo")),
        NextStep(),
        ToggleCategory(category_id=1),
        NextStep(),
        ToggleExistingProduct(product_id=10),
        NextStep(),
        UpdateProductionDetail(product_id=10, values=DETAILS),
    )
    assert draft.step == Step.PRODUCTION_DETAILS
    return draft


def test_unregistered_identity_moves_forward_in_new_mode(verified):
    draft = verified(voter_id="ABC1234567")

    assert draft.mode == Mode.NEW
    assert draft.validation_errors == {}
    assert run(draft, NextStep()).step == Step.PERSONAL_INFO


def test_identity_step_blocks_until_verified():
    draft = run(WizardDraft(), EditField(field="aadhar_number", value=AADHAR), NextStep())

    assert draft.step == Step.IDENTITY_CHECK
    assert "verification" in draft.validation_errors


def test_stale_verification_result_is_dropped(services):
    request = RequestVerification()
    draft = run(WizardDraft(), EditField(field="aadhar_number", value=AADHAR), request)
    draft = run(draft, EditField(field="aadhar_number", value="999988887777"))

    result = services.verification.verify_raw(AADHAR)
    draft = run(draft, VerificationResolved(ticket=request.ticket, result=result))

    assert draft.verification is None
    assert draft.aadhar_number == "999988887777"


def test_registered_identity_must_choose_additional(verified, register_new):
    register_new({"aadharNumber": AADHAR})
    draft = run(verified(aadhar_number=AADHAR), NextStep())

    assert draft.step == Step.IDENTITY_CHECK
    assert draft.mode is None
    assert "identity" in draft.validation_errors


def test_additional_mode_prefills_and_restricts_catalog(verified, register_new):
    base = register_new({"aadharNumber": AADHAR}, categories=(1,), existing=(10,))
    draft = run(verified(aadhar_number=AADHAR), StartAdditional())

    assert draft.mode == Mode.ADDITIONAL
    assert draft.base_registration_id == base.id
    assert draft.name == "Rina Basumatary"
    assert draft.age == "34"
    assert [c.id for c in draft.offered_categories] == [2, 3]

    draft = run(draft, NextStep(), NextStep(), NextStep())
    assert draft.step == Step.CATEGORIES
    assert draft.has_document("aadharCard")

    draft = run(draft, ToggleCategory(category_id=1))
    assert draft.category_ids == ()
    assert draft.last_error == "Category 1 is not available"


@pytest.mark.parametrize("slot", ["photo", "panCard", "proofOfProduction", AADHAR_FRONT])
def test_additional_mode_disables_uploads(verified, register_new, slot):
    base = register_new({"aadharNumber": AADHAR})
    assert base.documents.pan_card is None
    draft = run(verified(aadhar_number=AADHAR), StartAdditional(), NextStep(), NextStep())

    draft = run(draft, SetDocument(slot=slot, upload=_upload(slot)))

    assert draft.uploads == {}
    assert draft.compose_ticket is None
    assert draft.last_error == "Documents are reused from the base registration"
    assert draft.validation_errors == {}
    assert draft.documents_for_submission() == {}


def test_start_additional_discards_earlier_uploads(verified, register_new):
    register_new({"aadharNumber": AADHAR})
    draft = run(verified(aadhar_number=AADHAR), SetDocument(slot="panCard", upload=_upload("pan")))
    assert "panCard" in draft.uploads

    draft = run(draft, StartAdditional())

    assert draft.uploads == {}
    assert draft.merged_aadhar is None


def test_previous_to_identity_step_resets_branch(verified, register_new):
    register_new({"aadharNumber": AADHAR})
    draft = run(verified(aadhar_number=AADHAR), StartAdditional(), NextStep())
    assert draft.step == Step.PERSONAL_INFO

    draft = run(draft, PreviousStep())

    assert draft.step == Step.IDENTITY_CHECK
    assert draft.mode is None
    assert draft.verification is None
    assert draft.base_registration_id is None
    assert draft.name == ""
    assert draft.aadhar_number == AADHAR


def test_previous_keeps_later_step_data(at_details):
    draft = run(at_details, PreviousStep(), PreviousStep())

    assert draft.step == Step.CATEGORIES
    assert draft.existing_product_ids == (10,)
    assert draft.production_details[10].annual_production == "120"


def test_identity_is_frozen_after_first_step(at_details):
    draft = run(at_details, EditField(field="aadhar_number", value="999988887777"))

    assert draft.aadhar_number == AADHAR
    assert draft.last_error == "Identity can only be changed at the identity check step"


def test_deselecting_category_drops_its_products_and_details(at_details):
    draft = run(at_details, ToggleCategory(category_id=1))

    assert draft.category_ids == ()
    assert draft.existing_product_ids == ()
    assert draft.production_details == {}


def test_new_aadhar_image_invalidates_pending_composition(at_details):
    replaced = SetDocument(slot=AADHAR_FRONT, upload=_upload("front-2"))
    draft = run(at_details, replaced)
    assert draft.merged_aadhar is None
    assert draft.compose_ticket == replaced.ticket

    stale = run(draft, ComposeResolved(ticket="old-ticket", image=b"stale"))
    assert stale.merged_aadhar is None

    draft = run(draft, SetDocument(slot=AADHAR_BACK, upload=None))
    assert draft.compose_ticket is None
    assert not draft.has_document("aadharCard")


def test_submit_issues_ticket_and_success_finishes(at_details):
    submit = Submit()
    draft = run(at_details, submit)
    assert draft.submit_ticket == submit.ticket

    ignored = run(draft, SubmissionSucceeded(ticket="other", registration_id=9))
    assert ignored.step == Step.PRODUCTION_DETAILS

    done = run(draft, SubmissionSucceeded(ticket=submit.ticket, registration_id=9))
    assert done.step == Step.DONE
    assert done.registration_id == 9
    assert done.validation_errors == {}


def test_duplicate_rejection_returns_to_identity_step(at_details):
    submit = Submit()
    draft = run(
        at_details,
        submit,
        SubmissionRejected(ticket=submit.ticket, error="DuplicateIdentityError", message="already registered"),
    )

    assert draft.step == Step.IDENTITY_CHECK
    assert draft.verification is None
    assert draft.last_error == "already registered"


def test_catalog_conflict_stays_and_reports_ids(at_details):
    submit = Submit()
    draft = run(
        at_details,
        submit,
        SubmissionRejected(
            ticket=submit.ticket,
            error="CatalogConflictError",
            message="Already claimed for this identity: categories 1",
            category_ids=(1,),
        ),
    )

    assert draft.step == Step.PRODUCTION_DETAILS
    assert draft.conflicting_category_ids == (1,)
    assert draft.submit_ticket is None


def test_reduce_accepts_plain_dict_actions(at_details):
    draft = reduce(at_details, {"kind": "previous"})

    assert draft.step == Step.EXISTING_PRODUCTS
    assert at_details.step == Step.PRODUCTION_DETAILS
