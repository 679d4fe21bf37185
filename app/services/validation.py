import re
from typing import Any

from app.core.enums import FieldKind
from app.core.logging import get_logger
from app.services.field_classifier import FormField

logger = get_logger(__name__)

ERROR_SCAN_JS = """
() => {
  const clean = (text) => (text || '').replace(/\\s+/g, ' ').trim();
  const isVisible = (el) => {
    const style = window.getComputedStyle(el);
    if (style && (style.visibility === 'hidden' || style.display === 'none')) return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
  };
  const found = [];
  document.querySelectorAll('[role="alert"], alert, [aria-live="assertive"]').forEach((el) => {
    const text = clean(el.innerText || el.textContent);
    if (text && isVisible(el)) found.push({ source: 'alert', text });
  });
  document.querySelectorAll('[class*="error" i], [class*="invalid" i]').forEach((el) => {
    if (['INPUT', 'TEXTAREA', 'SELECT', 'FORM', 'BODY'].includes(el.tagName)) return;
    const text = clean(el.innerText || el.textContent);
    if (text && text.length < 400 && isVisible(el)) found.push({ source: 'error_class', text });
  });
  document.querySelectorAll('[aria-invalid="true"]').forEach((el) => {
    const label = (el.labels && el.labels[0] && clean(el.labels[0].innerText))
      || el.getAttribute('aria-label') || el.getAttribute('name') || 'Unknown field';
    found.push({ source: 'aria_invalid', text: `Invalid value for ${clean(label)}` });
  });
  return found;
}
"""

ERROR_PHRASES = re.compile(
    r"this field is required|is required|please complete|please fill|please enter|please select|"
    r"cannot be empty|can't be blank|must be filled|missing required|fix the errors?|invalid (?:value|entry|format)",
    re.IGNORECASE,
)

REQUIRED_LEGEND = re.compile(
    r"indicates (?:a )?required|required fields? (?:are|is) marked",
    re.IGNORECASE,
)

SUCCESS_PATTERN = re.compile(r"thank you|received|submitted|success", re.IGNORECASE)

FAILURE_WORDS = re.compile(r"\b(?:not|unable|failed|error|could(?:n.t| not))\b", re.IGNORECASE)

MISSING_FIELD_HINTS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"phone", re.IGNORECASE), "Phone number"),
    (re.compile(r"school|university|college", re.IGNORECASE), "School"),
    (re.compile(r"graduat", re.IGNORECASE), "Graduation date"),
    (re.compile(r"degree", re.IGNORECASE), "Degree type"),
    (re.compile(r"work auth|authori[sz]ed|authori[sz]ation|visa|sponsor", re.IGNORECASE), "Work authorization"),
    (re.compile(r"relocat", re.IGNORECASE), "Relocation preference"),
]

CONTEXT_RADIUS = 80


def _context_around(text: str, start: int, end: int) -> str:
    left = max(0, start - CONTEXT_RADIUS)
    right = min(len(text), end + CONTEXT_RADIUS)
    return text[left:right].strip()


def is_required_legend(text: str) -> bool:
    return bool(REQUIRED_LEGEND.search(text or ""))


def is_success_message(text: str) -> bool:
    """Confirmation toasts share the alert region with errors."""
    text = text or ""
    return bool(SUCCESS_PATTERN.search(text)) and not ERROR_PHRASES.search(text) and not FAILURE_WORDS.search(text)


def pick_validation_error(candidates: list[dict[str, Any]]) -> str | None:
    for item in candidates or []:
        if not isinstance(item, dict):
            continue
        text = re.sub(r"\s+", " ", str(item.get("text") or "")).strip()
        if not text or is_required_legend(text) or is_success_message(text):
            continue
        if item.get("source") == "error_class" and not ERROR_PHRASES.search(text):
            # Class markers alone are noisy; only trust them with error wording.
            continue
        return text[:300]
    return None


def find_error_phrase(body_text: str) -> str | None:
    body_text = body_text or ""
    for match in ERROR_PHRASES.finditer(body_text):
        snippet = _context_around(body_text, match.start(), match.end())
        lines = snippet.splitlines()
        hit = next((part for part in lines if ERROR_PHRASES.search(part)), snippet)
        if is_required_legend(hit):
            continue
        return hit.strip()[:300]
    return None


def detect_validation_error(page) -> str | None:
    """Return the first visible validation message on the page, or ``None``."""
    try:
        candidates = page.evaluate(ERROR_SCAN_JS)
    except Exception:
        logger.warning("Error scan script failed", exc_info=True)
        candidates = []

    error = pick_validation_error(list(candidates or []))
    if error:
        return error

    try:
        body_text = page.inner_text("body")
    except Exception:
        logger.warning("Could not read page text for error detection", exc_info=True)
        return None
    return find_error_phrase(body_text)


def pre_submit_check(fields: list[FormField]) -> list[str]:
    """Labels of required text fields that are still empty."""
    return [
        form_field.display_label
        for form_field in fields
        if form_field.required
        and form_field.kind in {FieldKind.TEXT, FieldKind.TEXTAREA}
        and not (form_field.value or "").strip()
    ]


def missing_field_suggestions(error_text: str | None) -> list[str]:
    if not error_text:
        return []
    return [hint for pattern, hint in MISSING_FIELD_HINTS if pattern.search(error_text)]


def find_success_text(page) -> str | None:
    try:
        body_text = page.inner_text("body")
    except Exception:
        logger.warning("Could not read confirmation page text", exc_info=True)
        return None
    for sentence in re.split(r"(?<=[.!?])\s+|\n+", body_text or ""):
        sentence = sentence.strip()
        if sentence and SUCCESS_PATTERN.search(sentence):
            return sentence[:300]
    return None
