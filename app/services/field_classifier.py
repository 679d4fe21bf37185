"""Discover form controls on the live page and tag them semantically.

Discovery runs one in-page script that stamps every control with a
``data-autoapply-idx`` attribute and returns plain dicts. Everything after
that (label resolution, radio grouping, classification) is pure Python.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from app.core.enums import FieldKind, FieldTag
from app.core.logging import get_logger

logger = get_logger(__name__)

IDX_ATTRIBUTE = "data-autoapply-idx"

DISCOVER_FIELDS_JS = """
() => {
  const clean = (text) => (text || '').replace(/\\s+/g, ' ').trim();
  const isVisible = (el) => {
    const style = window.getComputedStyle(el);
    if (style && (style.visibility === 'hidden' || style.display === 'none')) return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
  };
  const textOfIds = (ids) => ids.split(/\\s+/)
    .map((id) => document.getElementById(id))
    .filter(Boolean)
    .map((node) => clean(node.innerText || node.textContent))
    .join(' ')
    .trim();
  const precedingText = (el) => {
    let current = el.previousSibling;
    let text = '';
    while (current && text.length < 100) {
      if (current.nodeType === Node.TEXT_NODE || current.nodeType === Node.ELEMENT_NODE) {
        text = (current.textContent || '') + ' ' + text;
      }
      current = current.previousSibling;
    }
    return clean(text);
  };
  const groupLabel = (el) => {
    const fieldset = el.closest('fieldset');
    if (fieldset) {
      const legend = fieldset.querySelector('legend');
      if (legend) return clean(legend.innerText || legend.textContent);
    }
    const group = el.closest('[role="radiogroup"], [role="group"]');
    if (group) {
      const ref = group.getAttribute('aria-labelledby');
      if (ref) {
        const text = textOfIds(ref);
        if (text) return text;
      }
      const aria = group.getAttribute('aria-label');
      if (aria) return clean(aria);
    }
    const name = el.getAttribute('name');
    let container = el.parentElement;
    while (name && container && container !== document.body) {
      const selector = `input[type="radio"][name="${CSS.escape(name)}"]`;
      if (container.querySelectorAll(selector).length > 1) {
        return clean((container.innerText || '').split('\\n')[0]);
      }
      container = container.parentElement;
    }
    return '';
  };

  const root = document.querySelector('form') || document.body;
  const fields = [];
  let idx = 0;
  root.querySelectorAll('input, textarea, select').forEach((el) => {
    const tag = el.tagName.toLowerCase();
    const type = tag === 'input' ? (el.getAttribute('type') || 'text').toLowerCase() : tag;
    if (['hidden', 'submit', 'button', 'reset', 'image'].includes(type)) return;
    idx += 1;
    el.setAttribute('data-autoapply-idx', String(idx));

    const id = el.getAttribute('id') || '';
    let labelFor = '';
    if (id) {
      const label = document.querySelector(`label[for="${CSS.escape(id)}"]`);
      if (label) labelFor = clean(label.innerText || label.textContent);
    }
    const ancestor = el.closest('label');
    const labelledBy = el.getAttribute('aria-labelledby');
    const isChoice = type === 'checkbox' || type === 'radio';

    fields.push({
      idx,
      tag,
      type,
      role: el.getAttribute('role') || '',
      id,
      name: el.getAttribute('name') || '',
      labelledby_text: labelledBy ? textOfIds(labelledBy) : '',
      aria_label: el.getAttribute('aria-label') || '',
      label_for_text: labelFor,
      ancestor_label_text: ancestor ? clean(ancestor.innerText || ancestor.textContent) : '',
      placeholder: el.getAttribute('placeholder') || '',
      preceding_text: precedingText(el),
      group_label: type === 'radio' ? groupLabel(el) : '',
      required: !!el.required || el.getAttribute('aria-required') === 'true',
      disabled: !!el.disabled,
      visible: isVisible(el),
      invalid: el.getAttribute('aria-invalid') === 'true',
      value: isChoice ? (el.getAttribute('value') || '') : (el.value || ''),
      checked: !!el.checked,
      options: tag === 'select'
        ? Array.from(el.options).map((opt) => ({ text: clean(opt.textContent), value: opt.value || '' }))
        : [],
    });
  });
  return fields;
}
"""

GENERIC_PLACEHOLDERS = {
    "type here",
    "type here...",
    "start typing",
    "start typing...",
    "select",
    "select...",
    "choose",
    "choose...",
    "enter text",
    "enter text...",
}

EEO_SKIP_PATTERN = re.compile(
    r"\b(?:eeo|equal employment opportunity|demographic|veteran|disabilit(?:y|ies)|gender|race|"
    r"ethnicity|hispanic|latin[oax]|sexual orientation)\b",
    re.IGNORECASE,
)

IDENTITY_SKIP_PATTERN = re.compile(
    r"(?:first|last|full|legal|preferred) name|^\s*name\s*\*?\s*$|\be-?mail\b|\bphone\b|"
    r"r[ée]sum[ée]|\bcv\b|linkedin|github|website|portfolio",
    re.IGNORECASE,
)

TEXT_INPUT_TYPES = {"text", "email", "tel", "url", "number", "search", "date", "password"}


def _clean(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip()


@dataclass
class ChoiceOption:
    text: str
    value: str = ""
    selector: str = ""
    checked: bool = False


@dataclass
class FormField:
    idx: int
    kind: FieldKind
    label: str = ""
    required: bool = False
    value: str = ""
    checked: bool = False
    name: str = ""
    role: str = ""
    invalid: bool = False
    options: list[ChoiceOption] = field(default_factory=list)
    tag: FieldTag = FieldTag.OPEN_ENDED

    @property
    def selector(self) -> str:
        return f'[{IDX_ATTRIBUTE}="{self.idx}"]'

    @property
    def display_label(self) -> str:
        return self.label or "Unknown field"


def resolve_label(raw: dict[str, Any]) -> str:
    """Pick the first usable label source; returns "" when nothing fits."""
    for key in ("labelledby_text", "aria_label", "label_for_text", "ancestor_label_text"):
        text = _clean(raw.get(key))
        if text:
            return text

    placeholder = _clean(raw.get("placeholder"))
    if placeholder and placeholder.lower() not in GENERIC_PLACEHOLDERS:
        return placeholder

    preceding = _clean(raw.get("preceding_text"))
    # Stray asterisks and punctuation are not labels; short words like "Age" are.
    if any(char.isalpha() for char in preceding):
        return preceding[-100:].strip()
    return ""


def kind_for(raw: dict[str, Any]) -> FieldKind | None:
    tag = str(raw.get("tag") or "").lower()
    input_type = str(raw.get("type") or "").lower()
    role = str(raw.get("role") or "").lower()

    if tag == "textarea":
        return FieldKind.TEXTAREA
    if tag == "select" or role == "combobox":
        return FieldKind.SELECT
    if input_type in {"radio", "checkbox", "file"}:
        return FieldKind(input_type)
    if input_type in TEXT_INPUT_TYPES or not input_type:
        return FieldKind.TEXT
    return None


def classify_field(form_field: FormField) -> FieldTag:
    label = form_field.label
    if label and EEO_SKIP_PATTERN.search(label):
        return FieldTag.SKIP_EEO
    if label and IDENTITY_SKIP_PATTERN.search(label):
        return FieldTag.SKIP_IDENTITY
    if form_field.kind == FieldKind.FILE:
        return FieldTag.UPLOAD
    if form_field.kind == FieldKind.SELECT:
        return FieldTag.CHOICE
    if form_field.kind == FieldKind.RADIO:
        return FieldTag.CHOICE_GROUP
    if form_field.kind == FieldKind.CHECKBOX:
        return FieldTag.BOOLEAN
    return FieldTag.OPEN_ENDED


def build_form_fields(raw_items: list[dict[str, Any]]) -> list[FormField]:
    fields: list[FormField] = []
    radio_groups: dict[str, FormField] = {}

    for raw in raw_items or []:
        kind = kind_for(raw)
        if kind is None:
            continue
        if raw.get("disabled"):
            continue
        if kind != FieldKind.FILE and not raw.get("visible", True):
            continue

        idx = int(raw.get("idx") or 0)
        own_label = resolve_label(raw)

        if kind == FieldKind.RADIO:
            group_key = str(raw.get("name") or "") or f"radio_{idx}"
            option = ChoiceOption(
                text=own_label,
                value=str(raw.get("value") or ""),
                selector=f'[{IDX_ATTRIBUTE}="{idx}"]',
                checked=bool(raw.get("checked")),
            )
            group = radio_groups.get(group_key)
            if group is None:
                group = FormField(
                    idx=idx,
                    kind=FieldKind.RADIO,
                    label=_clean(raw.get("group_label")) or own_label,
                    required=bool(raw.get("required")),
                    name=group_key,
                    invalid=bool(raw.get("invalid")),
                )
                radio_groups[group_key] = group
                fields.append(group)
            group.options.append(option)
            group.required = group.required or bool(raw.get("required"))
            group.checked = group.checked or option.checked
            group.invalid = group.invalid or bool(raw.get("invalid"))
            continue

        form_field = FormField(
            idx=idx,
            kind=kind,
            label=own_label,
            required=bool(raw.get("required")),
            value=str(raw.get("value") or ""),
            checked=bool(raw.get("checked")),
            name=str(raw.get("name") or ""),
            role=str(raw.get("role") or ""),
            invalid=bool(raw.get("invalid")),
            options=[
                ChoiceOption(text=_clean(opt.get("text")), value=str(opt.get("value") or ""))
                for opt in raw.get("options") or []
                if isinstance(opt, dict)
            ],
        )
        fields.append(form_field)

    for form_field in fields:
        form_field.tag = classify_field(form_field)
    return fields


def scan_form_fields(page) -> list[FormField]:
    try:
        raw_items = page.evaluate(DISCOVER_FIELDS_JS)
    except Exception:
        logger.warning("Field discovery failed", exc_info=True)
        return []
    return build_form_fields(list(raw_items or []))
