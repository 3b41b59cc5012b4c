import pytest

from core.validators import is_valid_identifier, validate_fodselsnummer


def test_valid_fodselsnummer():
    result = validate_fodselsnummer("01010750160")

    assert result.is_valid
    assert result.cleaned == "01010750160"


def test_separators_are_stripped():
    result = validate_fodselsnummer("010107 501-60")

    assert result.is_valid
    assert result.cleaned == "01010750160"


@pytest.mark.parametrize(
    "value, error",
    [
        ("", "Fødselsnummer er påkrevd"),
        (None, "Fødselsnummer er påkrevd"),
        ("0101075016", "Fødselsnummer må være 11 siffer"),
        ("010107501600", "Fødselsnummer kan ikke være mer enn 11 siffer"),
        ("0101075016a", "Fødselsnummer kan bare inneholde siffer"),
        ("32010750160", "Ugyldig fødselsdato (dag)"),
        ("01130750160", "Ugyldig fødselsdato (måned)"),
        ("01010750170", "Ugyldig fødselsnummer (kontrollsiffer 1 stemmer ikke)"),
        ("01010750161", "Ugyldig fødselsnummer (kontrollsiffer 2 stemmer ikke)"),
    ],
)
def test_invalid_fodselsnummer(value, error):
    result = validate_fodselsnummer(value)

    assert not result.is_valid
    assert result.error == error


def test_identifiers():
    assert is_valid_identifier("3fa85f64-5717-4562-b3fc-2c963f66afa6")
    assert is_valid_identifier("order_42")
    assert not is_valid_identifier("../etc/passwd")
    assert not is_valid_identifier("")
