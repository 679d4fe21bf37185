import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from app.core.config import Settings
from app.core.enums import FieldKind
from app.core.exceptions import FormNavigationError
from app.core.logging import get_logger
from app.db.models import ApplicantProfile
from app.services.answer_resolver import AnswerContext, FieldDecision, resolve_field
from app.services.field_classifier import FormField, scan_form_fields

logger = get_logger(__name__)

APPLY_CONTROL_NAME = re.compile(r"^(?!.*submit).*apply", re.IGNORECASE)
FORM_READY_SELECTOR = 'input[type="file"], button:has-text("Upload"), form'
TEXT_LIKE_INPUTS = 'input[type="text"], input[type="url"], input[type="email"], input[type="tel"], input:not([type]), textarea'
RESUME_LABELS = ["Resume", "Résumé", "CV"]
UPLOAD_BUTTON_NAME = re.compile(r"upload file|upload", re.IGNORECASE)
AUTOFILL_NAME = re.compile(r"autofill from resume", re.IGNORECASE)

IDENTITY_FIELDS: list[tuple[str, re.Pattern]] = [
    ("first_name", re.compile(r"first name", re.IGNORECASE)),
    ("last_name", re.compile(r"last name", re.IGNORECASE)),
    ("full_name", re.compile(r"^\s*(?:full |legal )?name\s*\*?\s*$", re.IGNORECASE)),
    ("email", re.compile(r"\be-?mail\b", re.IGNORECASE)),
    ("phone", re.compile(r"\bphone\b", re.IGNORECASE)),
    ("location", re.compile(r"^\s*(?:current )?location\b", re.IGNORECASE)),
    ("linkedin", re.compile(r"linkedin", re.IGNORECASE)),
    ("website", re.compile(r"github.*website|website|portfolio", re.IGNORECASE)),
    ("github", re.compile(r"^(?!.*website).*github", re.IGNORECASE)),
]

WORK_AUTH_LABEL = re.compile(r"work authori[sz]ation|visa", re.IGNORECASE)
COVER_LETTER_LABEL = re.compile(r"cover letter", re.IGNORECASE)

POLICY_MARKER_ATTRIBUTE = "data-autoapply-policy"

POLICY_BLOCK_JS = """
([source, marker]) => {
  const pattern = new RegExp(source, 'i');
  const root = document.querySelector('form') || document.body;
  const hasAnswerControl = (el) => {
    if (el.querySelector('input[type="radio"], input[type="checkbox"], select, [role="radio"]')) return true;
    return Array.from(el.querySelectorAll('button'))
      .some((btn) => /^(yes|no)$/i.test((btn.innerText || '').trim()));
  };
  let best = null;
  let bestLength = Infinity;
  root.querySelectorAll('fieldset, div, section, li, label, [role="group"], [role="radiogroup"]').forEach((el) => {
    const text = (el.innerText || '').trim();
    if (!text || !pattern.test(text) || !hasAnswerControl(el)) return;
    if (text.length < bestLength) {
      best = el;
      bestLength = text.length;
    }
  });
  document.querySelectorAll(`[data-autoapply-policy="${marker}"]`)
    .forEach((el) => el.removeAttribute('data-autoapply-policy'));
  if (!best) return false;
  best.setAttribute('data-autoapply-policy', marker);
  return true;
}
"""


def _is_affirmative_text(text: str) -> bool:
    return not re.match(r"^\s*(?:no\b|not\b|i am not\b|i do not\b)", text or "", re.IGNORECASE)


@dataclass(frozen=True)
class PolicyQuestion:
    name: str
    pattern: str
    answer: Callable[[ApplicantProfile], bool]


POLICY_QUESTIONS: list[PolicyQuestion] = [
    PolicyQuestion(
        name="sponsorship",
        pattern=r"sponsorship|require.{0,40}visa",
        answer=lambda p: p.requires_sponsorship,
    ),
    PolicyQuestion(
        name="work_authorization",
        pattern=r"authori[sz]ed to work|work authori[sz]ation|legally (?:authorized|eligible)",
        answer=lambda p: _is_affirmative_text(p.work_auth),
    ),
    PolicyQuestion(
        name="anchor_days",
        pattern=r"anchor days?|in[- ]office|on[- ]?site|days (?:a|per) week",
        answer=lambda p: p.understands_anchor_days,
    ),
    PolicyQuestion(
        name="relocation",
        pattern=r"relocat",
        answer=lambda p: p.willing_to_relocate,
    ),
]


@dataclass
class FillReport:
    filled: list[str] = field(default_factory=list)
    unfilled: list[str] = field(default_factory=list)

    def merge(self, other: "FillReport") -> None:
        self.filled.extend(other.filled)
        self.unfilled.extend(label for label in other.unfilled if label not in self.unfilled)


def settle(page, settings: Settings) -> None:
    try:
        page.wait_for_load_state("networkidle", timeout=settings.autofill_settle_ms)
    except Exception:
        logger.info("Network did not go idle before settle timeout")
    page.wait_for_timeout(settings.autofill_settle_ms)


def navigate_to_application(page, context, url: str, settings: Settings):
    """Open the job URL and follow its apply control. Returns the page holding the form."""
    page.goto(url, wait_until="domcontentloaded", timeout=settings.page_timeout_ms)

    control = page.get_by_role("button", name=APPLY_CONTROL_NAME).first
    if control.count() == 0:
        control = page.get_by_role("link", name=APPLY_CONTROL_NAME).first
    if control.count() == 0:
        logger.info("No apply control found; continuing on the current page", extra={"extra": {"url": url}})
        return page

    try:
        with context.expect_page(timeout=settings.new_page_timeout_ms) as new_page_info:
            control.click()
        new_page = new_page_info.value
    except Exception:
        # No popup appeared; the form opened in place (or the click did nothing).
        return page

    new_page.set_default_timeout(settings.page_timeout_ms)
    try:
        new_page.wait_for_load_state("domcontentloaded", timeout=settings.page_timeout_ms)
    except Exception:
        logger.warning("New application page did not finish loading", extra={"extra": {"url": url}})
    logger.info("Followed apply control to a new page", extra={"extra": {"url": new_page.url}})
    return new_page


def wait_for_form(page, settings: Settings) -> None:
    try:
        page.wait_for_selector(FORM_READY_SELECTOR, timeout=settings.form_load_timeout_ms, state="attached")
    except Exception as exc:
        raise FormNavigationError(
            f"Application form did not load within {settings.form_load_timeout_ms} ms"
        ) from exc


def fill_if_unique(page, label: re.Pattern, value: str) -> bool:
    """Fill the single control matching ``label``; zero or several matches are skipped."""
    if not value:
        return False
    strategies = [
        lambda: page.get_by_label(label).and_(page.locator(TEXT_LIKE_INPUTS)),
        lambda: page.get_by_label(label),
        lambda: page.get_by_placeholder(label),
    ]
    for number, strategy in enumerate(strategies, start=1):
        try:
            locator = strategy()
            count = locator.count()
            if count == 1:
                locator.fill(value)
                return True
            if count > 1:
                logger.info(
                    "Ambiguous identity field; trying next strategy",
                    extra={"extra": {"label": label.pattern, "strategy": number, "matches": count}},
                )
        except Exception as exc:
            logger.info(
                "Identity fill strategy failed",
                extra={"extra": {"label": label.pattern, "strategy": number, "error": str(exc)}},
            )
    logger.info("Identity field not filled", extra={"extra": {"label": label.pattern}})
    return False


def select_by_label(page, label: re.Pattern, value: str) -> bool:
    locator = page.get_by_label(label)
    try:
        if locator.count() != 1:
            return False
    except Exception:
        return False
    for attempt in (
        lambda: locator.select_option(label=value),
        lambda: locator.select_option(value=value),
        lambda: locator.fill(value),
    ):
        try:
            attempt()
            return True
        except Exception:
            continue
    return False


def fill_identity(page, profile: ApplicantProfile) -> list[str]:
    filled: list[str] = []
    for attr, label in IDENTITY_FIELDS:
        value = str(getattr(profile, attr, "") or "").strip()
        if value and fill_if_unique(page, label, value):
            filled.append(attr)

    if profile.work_auth and select_by_label(page, WORK_AUTH_LABEL, profile.work_auth):
        filled.append("work_auth")
    if profile.cover_letter and fill_if_unique(page, COVER_LETTER_LABEL, profile.cover_letter):
        filled.append("cover_letter")

    logger.info("Identity fields filled", extra={"extra": {"fields": filled}})
    return filled


def trigger_autofill(page, settings: Settings) -> bool:
    candidates = [
        lambda: page.get_by_role("button", name=AUTOFILL_NAME).first,
        lambda: page.get_by_text(AUTOFILL_NAME).first,
    ]
    clicked = False
    for candidate in candidates:
        try:
            control = candidate()
            if control.count() > 0:
                control.click()
                clicked = True
                break
        except Exception:
            logger.info("Autofill control could not be clicked", exc_info=True)
    settle(page, settings)
    return clicked


def _set_file_with_chooser(page, button, resume_path: Path, settings: Settings) -> bool:
    try:
        with page.expect_file_chooser(timeout=settings.file_chooser_timeout_ms) as chooser_info:
            button.click()
        chooser_info.value.set_files(str(resume_path))
        return True
    except Exception:
        return False


def upload_resume(page, resume_path: Path, settings: Settings) -> bool:
    """Attach the resume using the first strategy that works, then run autofill."""
    path = str(resume_path)
    inputs = page.locator('input[type="file"]')

    def _direct() -> bool:
        # Only unambiguous when the form has a single file input.
        if inputs.count() != 1:
            return False
        inputs.first.set_input_files(path)
        return True

    def _labelled() -> bool:
        for label in RESUME_LABELS:
            locator = page.get_by_label(label, exact=False)
            if locator.count() > 0:
                try:
                    locator.first.set_input_files(path)
                    return True
                except Exception:
                    continue
        return False

    def _chooser() -> bool:
        button = page.get_by_role("button", name=UPLOAD_BUTTON_NAME).first
        if button.count() == 0:
            return False
        return _set_file_with_chooser(page, button, resume_path, settings)

    def _first_input() -> bool:
        if inputs.count() == 0:
            return False
        inputs.first.set_input_files(path)
        return True

    strategies = (("direct", _direct), ("labelled", _labelled), ("chooser", _chooser), ("first_input", _first_input))
    for name, strategy in strategies:
        try:
            if strategy():
                logger.info("Resume uploaded", extra={"extra": {"strategy": name, "path": path}})
                trigger_autofill(page, settings)
                return True
        except Exception as exc:
            logger.info("Resume upload strategy failed", extra={"extra": {"strategy": name, "error": str(exc)}})

    logger.warning("Resume upload failed with every strategy", extra={"extra": {"path": path}})
    return False


def _answer_in_block(block, answer: bool) -> bool:
    word = "Yes" if answer else "No"
    word_pattern = re.compile(rf"^\s*{word}\b", re.IGNORECASE)

    radio = block.get_by_role("radio", name=word_pattern)
    if radio.count() > 0:
        radio.first.check()
        return True

    button = block.get_by_role("button", name=re.compile(rf"^\s*{word}\s*$", re.IGNORECASE))
    if button.count() > 0:
        button.first.click()
        return True

    select = block.locator("select")
    if select.count() > 0:
        options = select.first.locator("option").all_inner_texts()
        match = next((text for text in options if word_pattern.search(text)), None)
        if match:
            select.first.select_option(label=match.strip())
            return True

    checkbox = block.locator('input[type="checkbox"]')
    if checkbox.count() > 0:
        if answer:
            checkbox.first.check()
        return True
    return False


def _answer_globally(page, question: PolicyQuestion, answer: bool) -> bool:
    locator = page.get_by_label(re.compile(question.pattern, re.IGNORECASE))
    if locator.count() != 1:
        return False
    kind = locator.evaluate("(el) => el.tagName.toLowerCase() + ':' + (el.type || '')")
    if kind.startswith("select"):
        options = locator.locator("option").all_inner_texts()
        word_pattern = re.compile(rf"^\s*{'Yes' if answer else 'No'}\b", re.IGNORECASE)
        match = next((text for text in options if word_pattern.search(text)), None)
        if not match:
            return False
        locator.select_option(label=match.strip())
        return True
    if kind.endswith(":checkbox"):
        if answer:
            locator.check()
        return True
    return False


def answer_policy_questions(page, profile: ApplicantProfile) -> list[str]:
    answered: list[str] = []
    for question in POLICY_QUESTIONS:
        answer = bool(question.answer(profile))
        try:
            found = page.evaluate(POLICY_BLOCK_JS, [question.pattern, question.name])
            ok = False
            if found:
                block = page.locator(f'[{POLICY_MARKER_ATTRIBUTE}="{question.name}"]')
                ok = _answer_in_block(block, answer)
            if not ok:
                ok = _answer_globally(page, question, answer)
        except Exception as exc:
            logger.info(
                "Policy question could not be answered",
                extra={"extra": {"question": question.name, "error": str(exc)}},
            )
            continue
        if ok:
            answered.append(question.name)
    logger.info("Policy questions answered", extra={"extra": {"questions": answered}})
    return answered


def apply_decision(page, decision: FieldDecision) -> bool:
    """Write one decision to the page; ``False`` means the value did not stick."""
    form_field = decision.field
    locator = page.locator(form_field.selector)
    try:
        if decision.action == "fill":
            locator.fill(decision.value)
            return bool((locator.input_value() or "").strip())
        if decision.action == "check":
            locator.check()
            return True
        if decision.action == "select" and decision.option is not None:
            if form_field.kind == FieldKind.RADIO:
                page.locator(decision.option.selector).check()
                return True
            try:
                locator.select_option(label=decision.option.text)
            except Exception:
                locator.select_option(value=decision.option.value)
            return True
    except Exception as exc:
        logger.info(
            "Could not write field",
            extra={"extra": {"label": form_field.display_label, "action": decision.action, "error": str(exc)}},
        )
        return False
    return False


def fill_fields(page, fields: list[FormField], ctx: AnswerContext) -> FillReport:
    report = FillReport()
    for form_field in fields:
        decision = resolve_field(form_field, ctx)
        if not decision.writes:
            continue
        if apply_decision(page, decision):
            report.filled.append(form_field.display_label)
            logger.info(
                "Filled field",
                extra={"extra": {"label": form_field.display_label, "source": decision.source}},
            )
        else:
            report.unfilled.append(form_field.display_label)
    return report


def fill_discovered_fields(page, ctx: AnswerContext) -> FillReport:
    fields = scan_form_fields(page)
    logger.info("Discovered form fields", extra={"extra": {"fields": describe_fields(fields)}})
    report = fill_fields(page, fields, ctx)
    if report.unfilled:
        logger.warning("Some fields could not be filled", extra={"extra": {"unfilled": report.unfilled}})
    return report


def describe_fields(fields: list[FormField]) -> list[dict[str, Any]]:
    return [
        {"label": f.display_label, "kind": f.kind.value, "tag": f.tag.value, "required": f.required}
        for f in fields
    ]
