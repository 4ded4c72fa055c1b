"""Prompt templates for AI queries over reading notes.

One system/user pair per locale. The user template has two slots: the
notes context and the question.
"""

import re
from dataclasses import dataclass
from typing import Literal

Locale = Literal["en", "pl"]

DEFAULT_LOCALE: Locale = "en"
SUPPORTED_LOCALES: tuple[Locale, ...] = ("en", "pl")

_SLOT_PATTERN = re.compile(r"\{(notes_context|question)\}")


@dataclass(frozen=True)
class PromptTemplate:
    system: str
    user: str


# ==============================================================================
# English
# ==============================================================================

EN_SYSTEM_PROMPT = """You are a helpful reading assistant for the Bookkeeper application. Answer questions using ONLY the user's reading notes provided in the context.

Guidelines:
- Base your answer exclusively on the notes context provided
- If the notes do not contain the information, say clearly that you do not have enough information
- Set low_confidence to true if:
  * The notes do not contain enough information to answer confidently
  * The answer requires speculation or assumptions
  * The relevant information is ambiguous or contradictory
- Set low_confidence to false if:
  * You can answer directly from the notes with high certainty
  * The information is clear and unambiguous
- Be concise but thorough
- Use natural, conversational language"""

EN_USER_PROMPT = """Context from reading notes:
{notes_context}

User's question: {question}

Answer the question based on the notes context above. Set low_confidence according to the quality and relevance of the available information."""


# ==============================================================================
# Polish
# ==============================================================================

PL_SYSTEM_PROMPT = """Jesteś pomocnym asystentem czytelniczym aplikacji Bookkeeper. Odpowiadasz WYŁĄCZNIE na podstawie notatek czytelniczych użytkownika podanych w kontekście.

Wytyczne:
- Odpowiadaj wyłącznie na podstawie podanego kontekstu notatek
- Jeśli w notatkach brakuje informacji, powiedz jasno, że ich brakuje
- Ustaw low_confidence na true, gdy:
  * Notatki nie zawierają wystarczających informacji do pewnej odpowiedzi
  * Odpowiedź wymaga spekulacji lub założeń
  * Informacje są niejednoznaczne lub sprzeczne
- Ustaw low_confidence na false, gdy:
  * Możesz odpowiedzieć bezpośrednio na podstawie notatek z wysoką pewnością
  * Informacje są jasne i jednoznaczne
- Bądź zwięzły, ale konkretny
- Używaj naturalnego, konwersacyjnego języka
- Odpowiadaj po polsku"""

PL_USER_PROMPT = """Kontekst z notatek:
{notes_context}

Pytanie użytkownika: {question}

Odpowiedz na podstawie powyższego kontekstu notatek. Ustaw low_confidence zgodnie z jakością i trafnością dostępnych informacji."""


PROMPTS: dict[Locale, PromptTemplate] = {
    "en": PromptTemplate(system=EN_SYSTEM_PROMPT, user=EN_USER_PROMPT),
    "pl": PromptTemplate(system=PL_SYSTEM_PROMPT, user=PL_USER_PROMPT),
}


def normalize_locale(value: str | None) -> Locale:
    """Map an Accept-Language style value to a supported locale.

    Only the first language tag is considered; unknown values fall back to
    English.
    """
    if not value:
        return DEFAULT_LOCALE
    tag = value.split(",")[0].split(";")[0].strip().lower()
    language = tag.split("-")[0].split("_")[0]
    if language in SUPPORTED_LOCALES:
        return language  # type: ignore[return-value]
    return DEFAULT_LOCALE


def build_ai_prompts(locale: str, notes_context: str, question: str) -> tuple[str, str]:
    """Build the (system, user) prompt pair for an AI query."""
    template = PROMPTS.get(locale, PROMPTS[DEFAULT_LOCALE])  # type: ignore[call-overload]
    values = {"notes_context": notes_context, "question": question}
    # Single pass, so braces inside notes or the question stay literal
    user = _SLOT_PATTERN.sub(lambda match: values[match.group(1)], template.user)
    return template.system, user
