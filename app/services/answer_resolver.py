"""Rule tables that turn a classified form field into a value.

Nothing in this module touches the page. ``resolve_field`` returns a
``FieldDecision`` and the form filler is responsible for writing it.
Each table is ordered; the first rule that fires wins.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from app.core.config import Settings, get_settings
from app.core.enums import ApplyMode, FieldKind, FieldTag
from app.core.logging import get_logger
from app.db.models import ApplicantProfile, JobRef
from app.services.field_classifier import ChoiceOption, FormField
from app.services.oracle import LLMProvider, applicant_context, synthesize_answer

logger = get_logger(__name__)

PLACEHOLDER_OPTION_PATTERN = re.compile(r"select|choose|--", re.IGNORECASE)

US_STATE_SUFFIX = re.compile(r",\s*[A-Z]{2}\s*$")
US_OPTION_PATTERN = re.compile(
    r"\b(?:united states|usa|u\.s\.a?\.?|us|america|north america)\b", re.IGNORECASE
)

SPONSORSHIP_QUESTION = re.compile(r"sponsor|visa", re.IGNORECASE)
HEAR_ABOUT_QUESTION = re.compile(
    r"hear.*about|how.*(?:find|learn).*(?:us|role|job|position)|source|referr", re.IGNORECASE
)
AFFIRMATIVE_OPTION = re.compile(r"\byes\b", re.IGNORECASE)
NEGATIVE_OPTION = re.compile(r"^\s*no\b", re.IGNORECASE)
PROFESSIONAL_SOURCE_OPTION = re.compile(r"linkedin|job board|google jobs", re.IGNORECASE)


@dataclass
class AnswerContext:
    profile: ApplicantProfile
    job: JobRef
    mode: ApplyMode = ApplyMode.AUTO
    provider: LLMProvider | None = None
    settings: Settings = field(default_factory=get_settings)


@dataclass
class FieldDecision:
    field: FormField
    action: str
    value: str = ""
    option: ChoiceOption | None = None
    source: str = ""

    @property
    def writes(self) -> bool:
        return self.action in {"fill", "select", "check"}


def _skip(form_field: FormField, source: str) -> FieldDecision:
    return FieldDecision(field=form_field, action="skip", source=source)


# --- choice / choice_group -------------------------------------------------


def is_placeholder_option(option: ChoiceOption, kind: FieldKind = FieldKind.SELECT) -> bool:
    text = (option.text or "").strip()
    if kind == FieldKind.SELECT and not (option.value or "").strip():
        return True
    if not text and not option.value:
        return True
    return bool(PLACEHOLDER_OPTION_PATTERN.search(text))


def real_options(form_field: FormField) -> list[ChoiceOption]:
    return [opt for opt in form_field.options if not is_placeholder_option(opt, form_field.kind)]


def has_selection(form_field: FormField) -> bool:
    if form_field.kind == FieldKind.RADIO:
        return form_field.checked or any(opt.checked for opt in form_field.options)
    current = (form_field.value or "").strip()
    if not current:
        return False
    if not form_field.options:
        return True
    for opt in form_field.options:
        if opt.value == current or opt.text == current:
            return not is_placeholder_option(opt, form_field.kind)
    return True


def _is_us_location(location: str) -> bool:
    location = (location or "").strip()
    if not location:
        return True
    return bool(US_OPTION_PATTERN.search(location) or US_STATE_SUFFIX.search(location))


def _matches_location(option: ChoiceOption, profile: ApplicantProfile) -> bool:
    text = option.text.strip()
    if not text:
        return False
    if _is_us_location(profile.location):
        return bool(US_OPTION_PATTERN.search(text))
    location = profile.location.lower()
    parts = [part.strip() for part in re.split(r"[,/]", location) if part.strip()]
    lowered = text.lower()
    return lowered in location or any(part == lowered or part in lowered for part in parts)


@dataclass(frozen=True)
class ChoiceRule:
    name: str
    applies: Callable[[FormField, ApplicantProfile], bool]
    matches: Callable[[ChoiceOption, FormField, ApplicantProfile], bool]


def _sponsorship_option(option: ChoiceOption, form_field: FormField, profile: ApplicantProfile) -> bool:
    if profile.requires_sponsorship:
        return bool(AFFIRMATIVE_OPTION.search(option.text))
    return bool(NEGATIVE_OPTION.search(option.text))


CHOICE_RULES: list[ChoiceRule] = [
    ChoiceRule(
        name="sponsorship",
        applies=lambda f, p: bool(SPONSORSHIP_QUESTION.search(f.label)),
        matches=_sponsorship_option,
    ),
    ChoiceRule(
        name="affirmative",
        applies=lambda f, p: True,
        matches=lambda o, f, p: bool(AFFIRMATIVE_OPTION.search(o.text)) and not re.search(r"\bno\b", o.text, re.I),
    ),
    ChoiceRule(
        name="professional_source",
        applies=lambda f, p: bool(HEAR_ABOUT_QUESTION.search(f.label)),
        matches=lambda o, f, p: bool(PROFESSIONAL_SOURCE_OPTION.search(o.text)),
    ),
    ChoiceRule(
        name="location",
        applies=lambda f, p: True,
        matches=lambda o, f, p: _matches_location(o, p),
    ),
    ChoiceRule(
        name="first_valid",
        applies=lambda f, p: True,
        matches=lambda o, f, p: True,
    ),
]


def resolve_choice(form_field: FormField, profile: ApplicantProfile) -> tuple[ChoiceOption | None, str]:
    """Pick an option rule by rule; each rule is tried against every option before the next."""
    options = real_options(form_field)
    if not options:
        return None, "no_options"
    for rule in CHOICE_RULES:
        if not rule.applies(form_field, profile):
            continue
        for option in options:
            if rule.matches(option, form_field, profile):
                return option, f"choice.{rule.name}"
    return None, "no_match"


# --- boolean ---------------------------------------------------------------

OPT_OUT_PATTERN = re.compile(
    r"newsletter|marketing|subscribe|promotional|\bsms\b|text messages?", re.IGNORECASE
)
BACHELOR_PATTERN = re.compile(r"bachelor|\bb\.?s\.?\b|\bb\.?a\.?\b|undergraduate", re.IGNORECASE)
GRADUATE_PATTERN = re.compile(r"master|\bm\.?s\.?\b|\bmba\b|ph\.?d|doctor|graduate degree", re.IGNORECASE)
GRADUATE_DEGREE_PROFILE = re.compile(r"master|\bm\.?s\.?\b|\bmba\b|ph\.?d|doctor", re.IGNORECASE)


def _graduate_checkbox(label: str, profile: ApplicantProfile) -> bool:
    return bool(GRADUATE_DEGREE_PROFILE.search(profile.degree or ""))


BOOLEAN_RULES: list[tuple[str, re.Pattern, Callable[[str, ApplicantProfile], bool]]] = [
    ("consent", re.compile(r"terms|privacy|agree|consent|acknowledge", re.IGNORECASE), lambda l, p: True),
    ("professional_source", re.compile(r"linkedin|job board|google", re.IGNORECASE), lambda l, p: True),
    ("education_graduate", GRADUATE_PATTERN, _graduate_checkbox),
    ("education_bachelor", BACHELOR_PATTERN, lambda l, p: True),
    (
        "role_interest",
        re.compile(r"engineer|software|developer|programming|full[- ]?stack|front[- ]?end|back[- ]?end", re.IGNORECASE),
        lambda l, p: True,
    ),
]


def should_check(label: str, profile: ApplicantProfile) -> tuple[bool, str]:
    label = label or ""
    if OPT_OUT_PATTERN.search(label):
        return False, "boolean.opt_out"
    for name, pattern, decide in BOOLEAN_RULES:
        if pattern.search(label):
            return decide(label, profile), f"boolean.{name}"
    return False, "boolean.no_rule"


# --- open_ended ------------------------------------------------------------

JOIN_TEAM_ANSWER = (
    "I'm excited to join your team because I'm passionate about building exceptional products that solve real "
    "problems. I'm drawn to your company's commitment to innovation and quality, and I believe my technical "
    "expertise and collaborative approach would be a valuable addition to your team."
)
GENERIC_FALLBACK_ANSWER = (
    "I am excited about this opportunity and believe my background and enthusiasm make me a strong candidate "
    "for this role."
)

CannedAnswer = Callable[[ApplicantProfile], str]

CANNED_ANSWERS: list[tuple[str, re.Pattern, CannedAnswer]] = [
    (
        "cover_letter",
        re.compile(r"cover.*letter|letter.*cover", re.IGNORECASE),
        lambda p: p.cover_letter or JOIN_TEAM_ANSWER,
    ),
    (
        "why_join",
        re.compile(r"why.*join|join.*team|tell us why", re.IGNORECASE),
        lambda p: JOIN_TEAM_ANSWER,
    ),
    (
        "motivation",
        re.compile(r"why.*work|motivation|interest|why.*company|why.*role|about you", re.IGNORECASE),
        lambda p: (
            "I'm genuinely excited about this opportunity because it aligns perfectly with my career goals and "
            "technical interests. I'm particularly drawn to the company's innovative approach and the chance to "
            "contribute to meaningful projects while continuing to grow my skills in a collaborative environment."
        ),
    ),
    (
        "first_month",
        re.compile(r"what.*work on|features.*implement|first month|what.*build", re.IGNORECASE),
        lambda p: (
            "In my first month, I'd focus on understanding the codebase and user needs, then contribute to key "
            "features like improving user experience, optimizing performance, and building robust, scalable "
            "components."
        ),
    ),
    (
        "product",
        re.compile(r"pm hat|product.*problem|product.*management|complex.*product", re.IGNORECASE),
        lambda p: (
            "I once led the redesign of a complex user workflow by conducting user research, identifying pain "
            "points, and collaborating with design and engineering teams to create a more intuitive solution. "
            "I prioritized features based on user feedback and business impact."
        ),
    ),
    (
        "strengths",
        re.compile(r"extremely.*good|what.*teach|strengths|expertise|skills.*bring", re.IGNORECASE),
        lambda p: (
            "I excel at building scalable, maintainable software and have deep expertise in modern web "
            "technologies. I'm also strong at translating complex technical concepts into clear, actionable "
            "plans for cross-functional teams."
        ),
    ),
    (
        "salary",
        re.compile(r"salary|compensation|expected.*pay|pay.*range", re.IGNORECASE),
        lambda p: (
            "I am open to discussing a competitive compensation package that aligns with market standards for "
            "this role and my experience level."
        ),
    ),
    (
        "availability",
        re.compile(r"start.*date|availability|when.*start|notice.*period|expected.*notice", re.IGNORECASE),
        lambda p: (
            "I am available to start within 2-4 weeks, with flexibility to accommodate the team's needs and "
            "project timelines."
        ),
    ),
    (
        "location",
        re.compile(r"location|remote|where.*located|timezone|region", re.IGNORECASE),
        lambda p: p.location
        or "I am flexible with location and comfortable working remotely or in-office as needed.",
    ),
    ("age", re.compile(r"age.*18|over.*18|18.*years", re.IGNORECASE), lambda p: "Yes"),
    (
        "work_authorization",
        re.compile(r"work.*auth|visa|sponsor|legal.*work", re.IGNORECASE),
        lambda p: p.work_auth or "I am authorized to work and do not require sponsorship.",
    ),
    (
        "country",
        re.compile(
            r"passport.*country|country.*passport|what.*country|country.*based|country.*residence|"
            r"residence.*country|based.*country",
            re.IGNORECASE,
        ),
        lambda p: p.location or "United States",
    ),
    (
        "hear_about",
        re.compile(r"hear.*about|how.*find|source", re.IGNORECASE),
        lambda p: "Through online job boards and professional networks",
    ),
    (
        "experience",
        re.compile(r"experience|background|skills|previous.*work", re.IGNORECASE),
        lambda p: (
            "I bring a strong technical background with experience in software development and a passion for "
            "building innovative solutions. I'm always eager to learn new technologies and contribute to team "
            "success."
        ),
    ),
    (
        "portfolio",
        re.compile(r"portfolio|projects|work.*samples", re.IGNORECASE),
        lambda p: p.website or "I have various projects showcased on my portfolio website and GitHub profile.",
    ),
    (
        "additional",
        re.compile(r"additional.*comment|anything.*else|other.*information", re.IGNORECASE),
        lambda p: "Thank you for considering my application. I look forward to discussing how I can contribute to the team.",
    ),
    (
        "generic",
        re.compile(r"type here|tell us|describe", re.IGNORECASE),
        lambda p: GENERIC_FALLBACK_ANSWER,
    ),
]


def canned_answer(label: str, profile: ApplicantProfile) -> tuple[str | None, str | None]:
    for name, pattern, answer in CANNED_ANSWERS:
        if pattern.search(label or ""):
            return answer(profile), f"canned.{name}"
    return None, None


# Text defaults used by corrective passes for identity-like fields the first pass skipped.
IDENTITY_DEFAULTS: list[tuple[re.Pattern, Callable[[ApplicantProfile], str]]] = [
    (re.compile(r"first name", re.IGNORECASE), lambda p: p.first_name),
    (re.compile(r"last name", re.IGNORECASE), lambda p: p.last_name),
    (re.compile(r"full name|legal name|^\s*name\b", re.IGNORECASE), lambda p: p.full_name),
    (re.compile(r"e-?mail", re.IGNORECASE), lambda p: p.email),
    (re.compile(r"phone", re.IGNORECASE), lambda p: p.phone),
    (re.compile(r"linkedin", re.IGNORECASE), lambda p: p.linkedin),
    (re.compile(r"github", re.IGNORECASE), lambda p: p.github or p.website),
    (re.compile(r"website|portfolio", re.IGNORECASE), lambda p: p.website or p.github),
    (re.compile(r"school|university|college", re.IGNORECASE), lambda p: p.school),
    (re.compile(r"degree", re.IGNORECASE), lambda p: p.degree),
    (re.compile(r"graduat", re.IGNORECASE), lambda p: p.graduation_date),
]


def identity_default(label: str, profile: ApplicantProfile) -> Optional[str]:
    for pattern, pick in IDENTITY_DEFAULTS:
        if pattern.search(label or ""):
            value = (pick(profile) or "").strip()
            return value or None
    return None


def resolve_open_ended(form_field: FormField, ctx: AnswerContext) -> FieldDecision:
    if (form_field.value or "").strip():
        return _skip(form_field, "already_filled")
    if ctx.mode == ApplyMode.CONFIRM:
        return _skip(form_field, "confirm_mode")

    label = form_field.label
    answer, source = canned_answer(label, ctx.profile)
    if answer is None and len(label) > ctx.settings.oracle_min_label_chars:
        answer = synthesize_answer(
            ctx.provider,
            question=label,
            role_title=ctx.job.title or "this",
            company=ctx.job.company or "your company",
            context=applicant_context(ctx.profile.model_dump()),
            settings=ctx.settings,
        )
        source = "oracle" if answer else None
    if not answer:
        answer, source = GENERIC_FALLBACK_ANSWER, "canned.fallback"

    return FieldDecision(
        field=form_field,
        action="fill",
        value=answer[: ctx.settings.answer_max_chars],
        source=source or "",
    )


def resolve_field(form_field: FormField, ctx: AnswerContext) -> FieldDecision:
    """Decide what to write into one field. Already-answered fields always yield ``skip``."""
    tag = form_field.tag
    if tag in {FieldTag.SKIP_EEO, FieldTag.SKIP_IDENTITY, FieldTag.UPLOAD}:
        return _skip(form_field, tag.value)

    if tag in {FieldTag.CHOICE, FieldTag.CHOICE_GROUP}:
        if has_selection(form_field):
            return _skip(form_field, "already_selected")
        option, source = resolve_choice(form_field, ctx.profile)
        if option is None:
            return _skip(form_field, source)
        return FieldDecision(field=form_field, action="select", value=option.text, option=option, source=source)

    if tag == FieldTag.BOOLEAN:
        if form_field.checked:
            return _skip(form_field, "already_checked")
        check, source = should_check(form_field.label, ctx.profile)
        if not check:
            return _skip(form_field, source)
        return FieldDecision(field=form_field, action="check", source=source)

    return resolve_open_ended(form_field, ctx)
