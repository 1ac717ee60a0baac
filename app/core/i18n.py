"""Translation lookup for user-facing messages.

Services never render text themselves: they pick a message key and the
HTTP layer (or the live gateway) resolves it for the caller's language.
"""

from collections.abc import Callable

from fastapi import Request

from app.core.config import settings

SUPPORTED_LANGUAGES: tuple[str, ...] = ("es", "en")

Translator = Callable[[str], str]

_CATALOG: dict[str, dict[str, str]] = {
    "es": {
        "property_not_found": "Propiedad no encontrada",
        "cannot_message_own_property": "No puedes enviar mensajes sobre tu propia propiedad",
        "seller_mismatch": "El vendedor indicado no es el propietario de la propiedad",
        "forbidden": "No tienes permiso para realizar esta acción",
        "conversation_already_exists": "Ya existe una conversación para esta propiedad",
        "conversation_not_found": "Conversación no encontrada",
        "invalid_participant": "No eres participante de esta conversación",
        "message_not_found": "Mensaje no encontrado",
        "messages_marked_as_read": "Mensajes marcados como leídos",
        "validation_error": "Error de validación",
        "not_authenticated": "No autenticado",
        "internal_error": "Ocurrió un error inesperado",
    },
    "en": {
        "property_not_found": "Property not found",
        "cannot_message_own_property": "You cannot message your own property",
        "seller_mismatch": "The given seller does not own this property",
        "forbidden": "You do not have permission to perform this action",
        "conversation_already_exists": "A conversation for this property already exists",
        "conversation_not_found": "Conversation not found",
        "invalid_participant": "You are not a participant of this conversation",
        "message_not_found": "Message not found",
        "messages_marked_as_read": "Messages marked as read",
        "validation_error": "Validation error",
        "not_authenticated": "Not authenticated",
        "internal_error": "An unexpected error occurred",
    },
}


def default_language() -> str:
    if settings.DEFAULT_LANGUAGE in SUPPORTED_LANGUAGES:
        return settings.DEFAULT_LANGUAGE
    return SUPPORTED_LANGUAGES[0]


def translate(key: str, language: str | None = None) -> str:
    """Return the localized text for ``key``.

    Falls back to the default language and finally to the key itself.
    """
    lang = language if language in _CATALOG else default_language()
    text = _CATALOG[lang].get(key)
    if text is None:
        text = _CATALOG[default_language()].get(key, key)
    return text


def resolve_language(accept_language: str | None) -> str:
    """Pick the first supported language from an Accept-Language header."""
    if not accept_language:
        return default_language()

    for part in accept_language.split(","):
        tag = part.split(";")[0].strip().lower()
        primary = tag.split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return default_language()


def get_language(request: Request) -> str:
    return resolve_language(request.headers.get("accept-language"))


def get_translator(request: Request) -> Translator:
    language = get_language(request)

    def _t(key: str) -> str:
        return translate(key, language)

    return _t
