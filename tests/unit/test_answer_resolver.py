import pytest

from app.core.enums import ApplyMode, FieldKind, FieldTag
from app.db.models import ApplicantProfile, JobRef
from app.services import oracle
from app.services.answer_resolver import (
    GENERIC_FALLBACK_ANSWER,
    AnswerContext,
    canned_answer,
    identity_default,
    resolve_choice,
    resolve_field,
    should_check,
)
from app.services.field_classifier import ChoiceOption, FormField, classify_field
from app.services.oracle import LLMProvider


class _RecordingProvider(LLMProvider):
    def __init__(self, text: str = "I love building developer tools.") -> None:
        self.text = text
        self.prompts: list[str] = []

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        self.prompts.append(prompt)
        return self.text


class _FailingProvider(LLMProvider):
    def generate(self, prompt: str, *, system: str | None = None) -> str:
        raise RuntimeError("quota exceeded")


class _AllowAll:
    def allow(self, key, limit, window_seconds):
        return True


@pytest.fixture(autouse=True)
def _local_rate_limiter(monkeypatch):
    monkeypatch.setattr(oracle, "get_rate_limiter", lambda: _AllowAll())


def _profile(**overrides) -> ApplicantProfile:
    data = {
        "first_name": "Alex",
        "last_name": "Carter",
        "email": "alex@example.com",
        "resume_path": "resume.pdf",
        "location": "",
    }
    data.update(overrides)
    return ApplicantProfile(**data)


def _ctx(settings, provider=None, mode=ApplyMode.AUTO, **profile) -> AnswerContext:
    return AnswerContext(
        profile=_profile(**profile),
        job=JobRef(id="job-1", title="Backend Engineer", company="Acme"),
        mode=mode,
        provider=provider,
        settings=settings,
    )


def _field(label: str, kind: FieldKind, **kwargs) -> FormField:
    field = FormField(idx=kwargs.pop("idx", 1), kind=kind, label=label, **kwargs)
    field.tag = classify_field(field)
    return field


def _options(*texts: str) -> list[ChoiceOption]:
    return [ChoiceOption(text=text, value="" if text.startswith("Select") else text.lower()) for text in texts]


def test_salary_question_uses_canned_answer_without_oracle(settings):
    provider = _RecordingProvider()
    decision = resolve_field(_field("What are your salary expectations?", FieldKind.TEXT), _ctx(settings, provider))

    assert decision.action == "fill"
    assert decision.value.startswith("I am open to discussing a competitive compensation package")
    assert decision.source == "canned.salary"
    assert provider.prompts == []


def test_canned_answers_use_profile_values():
    profile = _profile(location="Toronto, Canada", work_auth="I hold a valid work permit")
    assert canned_answer("Where are you located?", profile)[0] == "Toronto, Canada"
    assert canned_answer("Work authorization status", profile)[0] == "I hold a valid work permit"
    assert canned_answer("Are you over 18 years of age?", profile)[0] == "Yes"


def test_long_unknown_question_goes_to_oracle(settings):
    provider = _RecordingProvider("I enjoy turning ambiguous problems into shipped features.")
    decision = resolve_field(
        _field("Share a moment you changed your mind about something", FieldKind.TEXTAREA),
        _ctx(settings, provider),
    )

    assert decision.source == "oracle"
    assert decision.value == "I enjoy turning ambiguous problems into shipped features."
    assert "Backend Engineer at Acme" in provider.prompts[0]


def test_oracle_failure_falls_back_to_generic_answer(settings):
    decision = resolve_field(
        _field("Share a moment you changed your mind about something", FieldKind.TEXTAREA),
        _ctx(settings, _FailingProvider()),
    )
    assert decision.value == GENERIC_FALLBACK_ANSWER
    assert decision.source == "canned.fallback"


def test_short_unknown_label_never_calls_oracle(settings):
    provider = _RecordingProvider()
    decision = resolve_field(_field("Pronouns", FieldKind.TEXT), _ctx(settings, provider))
    assert decision.value == GENERIC_FALLBACK_ANSWER
    assert provider.prompts == []


def test_answers_are_truncated(settings):
    provider = _RecordingProvider("a" * 900)
    decision = resolve_field(
        _field("Share a moment you changed your mind about something", FieldKind.TEXTAREA),
        _ctx(settings, provider),
    )
    assert len(decision.value) == settings.answer_max_chars


def test_open_ended_is_skipped_in_confirm_mode(settings):
    decision = resolve_field(_field("Why this role?", FieldKind.TEXTAREA), _ctx(settings, mode=ApplyMode.CONFIRM))
    assert decision.action == "skip"
    assert decision.source == "confirm_mode"


def test_resolver_is_idempotent_on_answered_fields(settings):
    ctx = _ctx(settings)
    filled = _field("Why this role?", FieldKind.TEXTAREA, value="Because I use the product daily.")
    checked = _field("I agree to the terms", FieldKind.CHECKBOX, checked=True)
    selected = _field("Country", FieldKind.SELECT, value="canada", options=_options("Select...", "Canada", "United States"))
    radio = _field("Open to relocation?", FieldKind.RADIO, options=[ChoiceOption("Yes", "yes", checked=True), ChoiceOption("No", "no")])

    for field in (filled, checked, selected, radio):
        assert resolve_field(field, ctx).writes is False


def test_terms_checkbox_is_checked_and_newsletter_is_not():
    profile = _profile()
    assert should_check("I agree to the Terms and Privacy Policy", profile) == (True, "boolean.consent")
    assert should_check("Master's newsletter", profile)[0] is False
    assert should_check("Send me marketing emails", profile)[0] is False
    assert should_check("Receive SMS updates about my application", profile)[0] is False


def test_required_checkbox_without_rule_stays_unchecked(settings):
    field = _field("I have read the hiring FAQ", FieldKind.CHECKBOX, required=True)
    decision = resolve_field(field, _ctx(settings))
    assert decision.action == "skip"


def test_education_checkboxes_follow_profile_degree():
    bachelor = _profile(degree="B.S. Computer Science")
    master = _profile(degree="Master of Science")

    assert should_check("Bachelor's degree", bachelor)[0] is True
    assert should_check("Master's degree", bachelor)[0] is False
    assert should_check("Master's degree", master)[0] is True
    assert should_check("Software engineering", bachelor)[0] is True


def test_sponsorship_choice_answers_from_profile():
    field = _field("Will you require visa sponsorship?", FieldKind.SELECT, options=_options("Select...", "Yes", "No"))
    assert resolve_choice(field, _profile())[0].text == "No"
    assert resolve_choice(field, _profile(requires_sponsorship=True))[0].text == "Yes"


def test_choice_prefers_yes_then_source_then_location_then_first_valid():
    profile = _profile()

    yes_no = _field("Can you work from our office?", FieldKind.SELECT, options=_options("Select...", "No", "Yes"))
    assert resolve_choice(yes_no, profile)[0].text == "Yes"

    source = _field(
        "How did you hear about us?",
        FieldKind.SELECT,
        options=_options("Select...", "Friend", "LinkedIn", "Other"),
    )
    assert resolve_choice(source, profile) == (source.options[2], "choice.professional_source")

    country = _field("Country", FieldKind.SELECT, options=_options("Select...", "Canada", "United States"))
    assert resolve_choice(country, profile)[0].text == "United States"

    other = _field("Team preference", FieldKind.SELECT, options=_options("Select...", "-- none --", "Platform", "Growth"))
    assert resolve_choice(other, profile) == (other.options[2], "choice.first_valid")


def test_location_rule_matches_non_us_profile():
    field = _field("Country", FieldKind.SELECT, options=_options("Select...", "United States", "Canada"))
    option, source = resolve_choice(field, _profile(location="Toronto, Canada"))
    assert option.text == "Canada"
    assert source == "choice.location"


def test_choice_with_only_placeholders_is_skipped(settings):
    field = _field("Team", FieldKind.SELECT, options=_options("Select...", "Choose one"))
    decision = resolve_field(field, _ctx(settings))
    assert decision.action == "skip"
    assert decision.source == "no_options"


def test_identity_and_eeo_fields_are_skipped(settings):
    ctx = _ctx(settings)
    assert resolve_field(_field("Email", FieldKind.TEXT), ctx).source == FieldTag.SKIP_IDENTITY.value
    assert resolve_field(_field("Veteran status", FieldKind.SELECT), ctx).source == FieldTag.SKIP_EEO.value


def test_identity_defaults_come_from_profile():
    profile = _profile(phone="+1 555 0100", school="State University")
    assert identity_default("Phone number", profile) == "+1 555 0100"
    assert identity_default("School", profile) == "State University"
    assert identity_default("Graduation date", profile) is None
    assert identity_default("Why this role?", profile) is None
