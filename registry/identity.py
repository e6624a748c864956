import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from registry.errors import InputError

AADHAR_PATTERN = re.compile(r"^\d{12}$")
VOTER_ID_PATTERN = re.compile(r"^[A-Z]{3}[0-9]{7}$")


def normalize_aadhar(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    digits = re.sub(r"[\s-]", "", str(value))
    if digits == "":
        return None
    if not AADHAR_PATTERN.match(digits):
        raise InputError("Aadhar number must be exactly 12 digits", field="aadharNumber")
    return digits


def normalize_voter_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    voter = str(value).strip().upper()
    if voter == "":
        return None
    if not VOTER_ID_PATTERN.match(voter):
        raise InputError(
            "Voter ID must be in format ABC1234567 (3 letters + 7 digits)",
            field="voterId",
        )
    return voter


def mask(value: Optional[str]) -> str:
    if not value:
        return "-"
    return "*" * (len(value) - 4) + value[-4:]


class Identity(BaseModel):
    """Natural key of an applicant. Build through ``Identity.parse``."""

    model_config = ConfigDict(frozen=True)

    aadhar_number: Optional[str] = None
    voter_id: Optional[str] = None

    @classmethod
    def parse(cls, aadhar_number: Optional[str] = None, voter_id: Optional[str] = None) -> "Identity":
        aadhar = normalize_aadhar(aadhar_number)
        voter = normalize_voter_id(voter_id)
        if aadhar is None and voter is None:
            raise InputError("Either Aadhar Number or Voter ID is required")
        return cls(aadhar_number=aadhar, voter_id=voter)

    def lock_keys(self) -> List[str]:
        keys = []
        if self.aadhar_number:
            keys.append(f"aadhar:{self.aadhar_number}")
        if self.voter_id:
            keys.append(f"voter:{self.voter_id}")
        return keys

    def matches(self, other: "Identity") -> bool:
        if self.aadhar_number and self.aadhar_number == other.aadhar_number:
            return True
        if self.voter_id and self.voter_id == other.voter_id:
            return True
        return False

    def contradicts(self, other: "Identity") -> bool:
        """True when a field is set on both sides with different values."""
        if self.aadhar_number and other.aadhar_number and self.aadhar_number != other.aadhar_number:
            return True
        if self.voter_id and other.voter_id and self.voter_id != other.voter_id:
            return True
        return False

    def __str__(self) -> str:
        return f"aadhar={mask(self.aadhar_number)} voter={mask(self.voter_id)}"
