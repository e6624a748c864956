import io

from PIL import Image

from config.logging_setup import configure_logging
from config.settings import AppSettings
from registration.state import AADHAR_BACK, AADHAR_FRONT
from registry.errors import CatalogConflictError
from service.container import build_services


def _image(color, size=(320, 200)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    return out.getvalue()


def _fill_and_submit(session, category_id, product_id, future_ids=()):
    session.toggle_category(category_id)
    session.next()
    session.toggle_existing_product(product_id)
    session.next()
    session.fill_details(
        product_id,
        annual_production="120",
        area_of_production="2 bigha",
        years_of_production="6",
        annual_turnover="1.5",
    )
    for future_id in future_ids:
        session.toggle_future_product(future_id)
    return session.submit()


def main():
    settings = AppSettings.from_env()
    configure_logging(settings.log_level)

    # build services (in-memory unless GI_STORE_BACKEND=postgres)
    services = build_services(settings)
    textiles = services.catalog_service.snapshot().categories[-1].id

    # first run: unregistered identity, new registration
    session = services.new_session()
    session.edit(aadhar_number="1234 5678 9012")
    draft = session.verify()
    print("\nVERIFY #1 isRegistered:", draft.verification.is_registered, "mode:", draft.mode)

    draft = session.next()
    session.edit(name="Rina Basumatary", address="Kokrajhar, Assam", age="34", gender="female", phone="9876543210")
    session.next()
    session.upload(AADHAR_FRONT, _image("white"), "front.png")
    session.upload(AADHAR_BACK, _image("lightgray"), "back.png")
    session.upload("signature", _image("black", (200, 60)), "signature.png")
    session.upload("photo", _image("navy", (150, 200)), "photo.png")
    session.next()

    draft = _fill_and_submit(session, textiles, 1, future_ids=(2,))
    print("registration_id:", draft.registration_id, "step:", draft.step.name, "last_error:", draft.last_error)

    # second run: same identity, the wizard only offers what is still unclaimed
    session = services.new_session()
    session.edit(aadhar_number="123456789012")
    draft = session.verify()
    print("\nVERIFY #2 isRegistered:", draft.verification.is_registered)
    print("available categories:", [c.name for c in draft.offered_categories])

    draft = session.start_additional()
    print("prefilled:", list(draft.prefilled_fields))
    session.next()
    session.next()
    draft = session.next()
    draft = session.toggle_category(textiles)
    print("toggle claimed category ->", draft.last_error)

    # committing a claimed category directly is rejected at commit time
    try:
        services.builder.create_additional(
            draft.base_registration_id,
            identity={"aadharNumber": "123456789012"},
            category_ids=[textiles],
            existing_product_ids=[3],
            production_details=[
                {
                    "productId": 3,
                    "annualProduction": "40",
                    "areaOfProduction": "1 bigha",
                    "yearsOfProduction": "2",
                    "annualTurnover": "0.8",
                }
            ],
        )
    except CatalogConflictError as exc:
        print("additional rejected:", exc.to_dict())


if __name__ == "__main__":
    main()
