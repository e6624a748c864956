import logging
from typing import List, Optional, Union

from registry.errors import InputError
from registry.identity import Identity
from registry.models import Registration
from registry.store import RegistrationStore

logger = logging.getLogger(__name__)


class IdentityRegistry:
    def __init__(self, store: RegistrationStore):
        self.store = store

    def find_by_identity(self, identity: Union[Identity, dict]) -> List[Registration]:
        """
        Prior registrations for an identity, ordered by creation time.

        Matching is OR over the supplied fields. If the aadhar number and voter id
        lead to registrations of two different applicants the lookup is rejected.
        """
        if isinstance(identity, dict):
            identity = Identity.parse(identity.get("aadharNumber"), identity.get("voterId"))
        elif not isinstance(identity, Identity):
            raise InputError("Either Aadhar Number or Voter ID is required")
        elif identity.aadhar_number is None and identity.voter_id is None:
            raise InputError("Either Aadhar Number or Voter ID is required")

        matches = self.store.find_matching(identity)

        conflicting = [r.id for r in matches if identity.contradicts(r.identity)]
        if conflicting:
            logger.warning("Ambiguous identity %s matched registrations %s", identity, conflicting)
            raise InputError(
                "Aadhar number and Voter ID belong to different registrations",
                field="identity",
            )
        return matches

    def lock_keys(self, identity: Identity, base: Optional[Registration] = None) -> List[str]:
        """Keys of the identity and of every registration currently linked to it."""
        keys = set(identity.lock_keys())
        if base is not None:
            keys.update(base.identity.lock_keys())
        for registration in self.store.find_matching(identity):
            keys.update(registration.identity.lock_keys())
        return sorted(keys)
