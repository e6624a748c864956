import pytest

from registry.errors import InputError
from registry.identity import Identity, mask


def test_parse_normalizes_aadhar_and_voter_id():
    identity = Identity.parse("1234 5678-9012", "  abc1234567 ")

    assert identity.aadhar_number == "123456789012"
    assert identity.voter_id == "ABC1234567"


def test_parse_requires_one_identifier():
    with pytest.raises(InputError) as exc:
        Identity.parse("", "   ")

    assert exc.value.message == "Either Aadhar Number or Voter ID is required"


@pytest.mark.parametrize("aadhar", ["12345678901", "1234567890123", "12345678901a"])
def test_parse_rejects_malformed_aadhar(aadhar):
    with pytest.raises(InputError) as exc:
        Identity.parse(aadhar)

    assert exc.value.field == "aadharNumber"


@pytest.mark.parametrize("voter", ["AB12345678", "ABC123456", "1BC1234567"])
def test_parse_rejects_malformed_voter_id(voter):
    with pytest.raises(InputError) as exc:
        Identity.parse(voter_id=voter)

    assert exc.value.field == "voterId"


def test_matches_on_either_field():
    stored = Identity.parse("123456789012", "ABC1234567")

    assert Identity.parse("123456789012").matches(stored)
    assert Identity.parse(voter_id="ABC1234567").matches(stored)
    assert not Identity.parse("999999999999").matches(stored)


def test_contradicts_only_when_both_sides_set():
    stored = Identity.parse("123456789012")

    assert not Identity.parse("123456789012", "ABC1234567").contradicts(stored)
    assert Identity.parse("111111111111", "ABC1234567").contradicts(stored)


def test_str_masks_identifiers():
    text = str(Identity.parse("123456789012", "ABC1234567"))

    assert "123456789012" not in text
    assert "9012" in text
    assert mask(None) == "-"
