"""Security denylist: fields that are never filled, prompted, or embedded."""

from __future__ import annotations

from fieldwise.models.form import FieldSignature, InputType, SemanticClass

FIELD_DENYLIST: tuple[str, ...] = (
    # Authentication
    "password", "passwd", "pwd", "current-password", "new-password",
    "confirm-password", "confirmpassword", "password_confirmation",
    # Multi-factor
    "otp", "2fa", "totp", "verification-code", "verificationcode", "mfa",
    "pin", "security-code", "securitycode",
    # Payment security
    "cvv", "cvc", "cvv2", "cvc2", "card-cvc", "card-cvv", "security-number",
    # Tokens
    "token", "csrf", "nonce", "captcha", "recaptcha", "hcaptcha",
    # Banking & identity
    "ssn", "social-security", "socialsecurity", "tax-id", "taxid",
    "routing-number", "routingnumber", "account-number", "accountnumber",
)

AUTOCOMPLETE_DENYLIST: frozenset[str] = frozenset({
    "new-password",
    "current-password",
    "one-time-code",
    "cc-csc",
})


def denylist_reason(field: FieldSignature) -> str | None:
    """Why ``field`` must never be filled, or None if it is allowed."""
    if field.input_type == InputType.PASSWORD:
        return "Password fields are never auto-filled"

    autocomplete = (field.attributes.autocomplete or "").lower().strip()
    if autocomplete in AUTOCOMPLETE_DENYLIST:
        return f'Autocomplete attribute "{autocomplete}" indicates sensitive field'

    label = field.normalized_label.lower()
    name = (field.attributes.name or "").lower()
    html_id = (field.attributes.id or "").lower()
    for denied in FIELD_DENYLIST:
        if denied in label:
            return f'Field label contains "{denied}"'
        if denied in name or denied in html_id:
            return f'Field name/id contains "{denied}"'

    return None


def is_denylisted(field: FieldSignature) -> bool:
    return denylist_reason(field) is not None


def is_credential(field: FieldSignature) -> bool:
    """Denylisted, or classified as a password."""
    return field.semantic_class == SemanticClass.PASSWORD or is_denylisted(field)
