"""
User-facing message catalog. Romanian is the default; English is served when the
request asks for it (?lang=en or an Accept-Language preferring en).
"""
from __future__ import annotations

from typing import Any

from flask import has_request_context, jsonify, request

DEFAULT_LOCALE = "ro"
SUPPORTED_LOCALES = ("ro", "en")

MESSAGES: dict[str, dict[str, str]] = {
    "ro": {
        "bad_request": "Cerere invalidă.",
        "unauthorized": "Autentificare necesară.",
        "forbidden": "Nu aveți permisiunea necesară pentru această acțiune.",
        "not_found": "Resursa nu a fost găsită.",
        "method_not_allowed": "Metodă HTTP nepermisă.",
        "payload_too_large": "Cererea depășește dimensiunea maximă permisă.",
        "server_error": "Eroare internă. Vă rugăm reîncercați.",
        "csrf_invalid": "Token CSRF lipsă sau invalid.",
        "invalid_credentials": "Email sau parolă incorectă.",
        "rate_limited": "Prea multe încercări de autentificare. Așteptați 5 minute.",
        "no_organization": "Contul nu este asociat unei organizații.",
        "module_locked": "Modulul {module} nu este inclus în abonamentul organizației.",
        "module_unknown": "Modul necunoscut: {module}.",
        "module_is_base": "Modulul {module} este inclus gratuit în pachetul de bază.",
        "module_already_active": "Modulul {module} este deja activ.",
        "trial_already_used": "Perioada de probă pentru {module} a fost deja folosită.",
        "module_missing_dependencies": "Modulul {module} necesită mai întâi: {missing}.",
        "module_not_cancelable": "Modulul {module} nu poate fi anulat în starea curentă.",
        "webhook_signature_missing": "Semnătura Stripe lipsește.",
        "webhook_signature_invalid": "Semnătura Stripe este invalidă.",
        "webhook_not_configured": "Webhook-ul Stripe nu este configurat.",
        "cron_not_configured": "CRON_SECRET nu este configurat.",
        "cron_unauthorized": "Token cron invalid.",
        "validation_failed": "Datele trimise nu sunt valide.",
        "field_required": "Câmpul {field} este obligatoriu.",
        "field_invalid": "Câmpul {field} are o valoare invalidă.",
        "cnp_length": "CNP-ul trebuie să conțină exact 13 cifre.",
        "cnp_digits": "CNP-ul poate conține doar cifre.",
        "cnp_sex_digit": "Prima cifră a CNP-ului este invalidă.",
        "cnp_birth_date": "Data nașterii din CNP este invalidă.",
        "cnp_county": "Codul de județ din CNP este invalid.",
        "cnp_checksum": "Cifra de control a CNP-ului este incorectă.",
        "cnp_duplicate": "Există deja un angajat cu acest CNP în organizație.",
    },
    "en": {
        "bad_request": "Bad request.",
        "unauthorized": "Authentication required.",
        "forbidden": "You do not have permission to perform this action.",
        "not_found": "Resource not found.",
        "method_not_allowed": "Method not allowed.",
        "payload_too_large": "Request exceeds the maximum allowed size.",
        "server_error": "Internal error. Please retry.",
        "csrf_invalid": "CSRF token missing or invalid.",
        "invalid_credentials": "Invalid email or password.",
        "rate_limited": "Too many login attempts. Please wait 5 minutes.",
        "no_organization": "This account is not linked to an organization.",
        "module_locked": "The {module} module is not included in your organization's subscription.",
        "module_unknown": "Unknown module: {module}.",
        "module_is_base": "The {module} module is included for free in the base package.",
        "module_already_active": "The {module} module is already active.",
        "trial_already_used": "The trial for {module} has already been used.",
        "module_missing_dependencies": "The {module} module requires: {missing}.",
        "module_not_cancelable": "The {module} module cannot be canceled in its current state.",
        "webhook_signature_missing": "Missing Stripe signature.",
        "webhook_signature_invalid": "Invalid Stripe signature.",
        "webhook_not_configured": "Stripe webhook is not configured.",
        "cron_not_configured": "CRON_SECRET is not configured.",
        "cron_unauthorized": "Invalid cron token.",
        "validation_failed": "The submitted data is not valid.",
        "field_required": "The {field} field is required.",
        "field_invalid": "The {field} field has an invalid value.",
        "cnp_length": "CNP must contain exactly 13 digits.",
        "cnp_digits": "CNP may contain digits only.",
        "cnp_sex_digit": "The first CNP digit is invalid.",
        "cnp_birth_date": "The birth date encoded in the CNP is invalid.",
        "cnp_county": "The county code in the CNP is invalid.",
        "cnp_checksum": "The CNP check digit is incorrect.",
        "cnp_duplicate": "An employee with this CNP already exists in the organization.",
    },
}


def current_locale() -> str:
    if not has_request_context():
        return DEFAULT_LOCALE
    lang = (request.args.get("lang") or "").strip().lower()
    if lang in SUPPORTED_LOCALES:
        return lang
    best = request.accept_languages.best_match(SUPPORTED_LOCALES)
    return best or DEFAULT_LOCALE


def t(key: str, locale: str | None = None, **params: Any) -> str:
    loc = locale or current_locale()
    catalog = MESSAGES.get(loc) or MESSAGES[DEFAULT_LOCALE]
    template = catalog.get(key) or MESSAGES[DEFAULT_LOCALE].get(key) or key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template


def error_response(key: str, status: int, **extra: Any):
    """JSON error body with a machine-readable code and a localized message."""
    params = extra.pop("params", None) or {}
    body: dict[str, Any] = {"error": key, "message": t(key, **params)}
    body.update(extra)
    return jsonify(body), status
