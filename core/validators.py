"""Validation of inbound signer fields and path identifiers."""

import re
from dataclasses import dataclass

_SEPARATORS_RE = re.compile(r"[\s\-.]")
IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]+$")

_WEIGHTS_1 = (3, 7, 6, 1, 8, 9, 4, 5, 2)
_WEIGHTS_2 = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None
    cleaned: str | None = None


def clean_fodselsnummer(value: str) -> str:
    return _SEPARATORS_RE.sub("", value)


def _control_digit(digits: str, weights: tuple[int, ...]) -> int | None:
    """Modulo 11 control digit; ``None`` when the number cannot be valid."""
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    control = 11 - remainder
    if control == 11:
        return 0
    if control == 10:
        return None
    return control


def validate_fodselsnummer(value: str | None) -> ValidationResult:
    """Validate a Norwegian national identity number (11 digits, two control digits)."""
    if not value:
        return ValidationResult(False, "Fødselsnummer er påkrevd")

    cleaned = clean_fodselsnummer(value)
    if len(cleaned) != 11:
        if len(cleaned) < 11:
            return ValidationResult(False, "Fødselsnummer må være 11 siffer")
        return ValidationResult(False, "Fødselsnummer kan ikke være mer enn 11 siffer")
    if not cleaned.isdigit() or not cleaned.isascii():
        return ValidationResult(False, "Fødselsnummer kan bare inneholde siffer")

    day, month = int(cleaned[0:2]), int(cleaned[2:4])
    if not 1 <= day <= 31:
        return ValidationResult(False, "Ugyldig fødselsdato (dag)")
    if not 1 <= month <= 12:
        return ValidationResult(False, "Ugyldig fødselsdato (måned)")

    control1 = _control_digit(cleaned[:9], _WEIGHTS_1)
    if control1 is None:
        return ValidationResult(False, "Ugyldig fødselsnummer (kontrollsiffer 1)")
    if control1 != int(cleaned[9]):
        return ValidationResult(False, "Ugyldig fødselsnummer (kontrollsiffer 1 stemmer ikke)")

    control2 = _control_digit(cleaned[:10], _WEIGHTS_2)
    if control2 is None:
        return ValidationResult(False, "Ugyldig fødselsnummer (kontrollsiffer 2)")
    if control2 != int(cleaned[10]):
        return ValidationResult(False, "Ugyldig fødselsnummer (kontrollsiffer 2 stemmer ikke)")

    return ValidationResult(True, cleaned=cleaned)


def is_valid_identifier(value: str) -> bool:
    """Path identifiers (signing request / session ids)."""
    return bool(IDENTIFIER_RE.match(value))
