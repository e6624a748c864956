from typing import Any, Dict, Iterable, List, Optional


class RegistrationError(Exception):
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.field:
            body["field"] = self.field
        return body


class InputError(RegistrationError):
    """Malformed identity or missing required field. Raised before any lookup."""

    status_code = 400


class DuplicateIdentityError(RegistrationError):
    status_code = 409

    def __init__(self, message: str, registration_ids: Iterable[int] = (), field: Optional[str] = None):
        super().__init__(message, field=field)
        self.registration_ids: List[int] = list(registration_ids)


class CatalogConflictError(RegistrationError):
    """Requested categories/products are no longer available for the identity."""

    status_code = 409

    def __init__(self, category_ids: Iterable[int] = (), product_ids: Iterable[int] = ()):
        self.category_ids: List[int] = sorted(set(category_ids))
        self.product_ids: List[int] = sorted(set(product_ids))

        parts = []
        if self.category_ids:
            parts.append("categories " + ", ".join(str(i) for i in self.category_ids))
        if self.product_ids:
            parts.append("products " + ", ".join(str(i) for i in self.product_ids))
        super().__init__("Already claimed for this identity: " + "; ".join(parts))

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["conflictingCategoryIds"] = self.category_ids
        body["conflictingProductIds"] = self.product_ids
        return body


class NotFoundError(RegistrationError):
    status_code = 404


class ComposeError(RegistrationError):
    status_code = 422
