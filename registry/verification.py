import logging
from typing import Optional

from catalog.diff import CatalogDiffCalculator
from catalog.service import CatalogService
from registry.identity import Identity
from registry.identity_registry import IdentityRegistry
from registry.models import PriorRegistrationSummary, VerificationResult

logger = logging.getLogger(__name__)


class VerificationService:
    """Read-only status check. Never locks or reserves catalog entries."""

    def __init__(
        self,
        registry: IdentityRegistry,
        diff_calculator: CatalogDiffCalculator,
        catalog_service: CatalogService,
    ):
        self.registry = registry
        self.diff_calculator = diff_calculator
        self.catalog_service = catalog_service

    def verify_raw(self, aadhar_number: Optional[str] = None, voter_id: Optional[str] = None) -> VerificationResult:
        return self.verify(Identity.parse(aadhar_number, voter_id))

    def verify(self, identity: Identity) -> VerificationResult:
        priors = self.registry.find_by_identity(identity)
        diff = self.diff_calculator.diff(priors)
        logger.info(
            "Verified %s: %d prior registration(s), %d categories available",
            identity,
            len(priors),
            len(diff.categories),
        )

        if not priors:
            return VerificationResult(
                identity=identity,
                is_registered=False,
                available_categories=tuple(diff.categories),
                available_products=tuple(diff.products),
            )

        catalog = self.catalog_service.snapshot()
        summaries = []
        for registration in priors:
            names = []
            for category_id in registration.category_ids:
                category = catalog.category(category_id)
                names.append(category.name if category else f"Category {category_id}")
            summaries.append(
                PriorRegistrationSummary(
                    id=registration.id,
                    category_ids=list(registration.category_ids),
                    category_names=names,
                    selected_product_ids=list(registration.selected_product_ids),
                    existing_product_ids=list(registration.existing_product_ids),
                    registration_date=registration.created_at,
                )
            )

        latest = priors[-1]
        return VerificationResult(
            identity=identity,
            is_registered=True,
            prior_registrations=tuple(priors),
            existing_registrations=tuple(summaries),
            available_categories=tuple(diff.categories),
            available_products=tuple(diff.products),
            name=latest.personal_info.name,
            latest_registration_date=latest.created_at,
        )
