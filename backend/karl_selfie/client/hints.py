"""Friendly German hints for known error phrasings."""

# (substrings, hint) pairs; the first entry with any matching substring wins.
ERROR_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("safety", "rejected", "blocked", "prohibited"),
        "Das Bild wurde vom Sicherheitssystem abgelehnt. Bitte versuche es mit einem "
        "anderen Foto (z.B. mit mehr Abstand oder anderen Lichtverhältnissen).",
    ),
    (
        ("verified", "organization", "billing", "quota"),
        "Dein Konto beim Bilddienst ist nicht freigeschaltet oder das Kontingent ist "
        "aufgebraucht. Bitte prüfe Abrechnung und Verifizierung in der Konsole.",
    ),
    (
        ("api key", "gemini_api_key", "key.txt"),
        "Es ist kein gültiger API-Schlüssel hinterlegt. Bitte GEMINI_API_KEY setzen "
        "oder key.txt anlegen.",
    ),
    (
        ("timed out", "timeout"),
        "Die Bildgenerierung hat zu lange gedauert. Bitte versuche es noch einmal.",
    ),
    (
        ("reference image",),
        "Das Referenzbild von Karl fehlt auf dem Server.",
    ),
    (
        ("unreachable",),
        "Der Server ist nicht erreichbar. Bitte prüfe, ob er läuft.",
    ),
)

DEFAULT_ERROR_MESSAGE = "Fehler bei der Bildgenerierung"


def friendly_error(message: str) -> str:
    """Rewrite a raw error message into an actionable hint.

    Unknown messages are returned unchanged; empty ones get a generic text.
    """
    if not message or not message.strip():
        return DEFAULT_ERROR_MESSAGE
    lowered = message.lower()
    for needles, hint in ERROR_HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return message
