import re

import pytest

from app.core.enums import ApplyMode
from app.core.exceptions import ResumeNotFoundError, ValidationRetriesExhausted
from app.db.models import ApplicantProfile, ApplicationRecord, JobRef
from app.services import form_submission_service
from app.services.answer_resolver import AnswerContext
from app.services.form_filler import FillReport
from app.services.form_submission_service import (
    apply_to_job,
    capture_screenshot,
    resolve_resume_path,
    run_corrective_pass,
    run_submission_loop,
    submit_application_record,
)
from tests.fakes import FakeControl, FakePage


def _profile(resume_path: str, **overrides) -> ApplicantProfile:
    data = {
        "first_name": "Alex",
        "last_name": "Carter",
        "email": "alex@example.com",
        "resume_path": resume_path,
        "phone": "+1 555 0100",
    }
    data.update(overrides)
    return ApplicantProfile(**data)


def _ctx(settings, resume_path: str = "resume.pdf", **profile) -> AnswerContext:
    return AnswerContext(
        profile=_profile(resume_path, **profile),
        job=JobRef(id="job-1", title="Backend Engineer", company="Acme"),
        mode=ApplyMode.AUTO,
        provider=None,
        settings=settings,
    )


def test_resolve_resume_path_raises_for_missing_file(tmp_path):
    with pytest.raises(ResumeNotFoundError):
        resolve_resume_path(str(tmp_path / "missing.pdf"))


def test_resolve_resume_path_returns_absolute_path(resume_file):
    assert resolve_resume_path(str(resume_file)) == resume_file.resolve()


def test_missing_resume_fails_before_browser_starts(tmp_path, settings, monkeypatch):
    def _no_browser(*args, **kwargs):
        raise AssertionError("browser flow must not run")

    monkeypatch.setattr(form_submission_service, "execute_attempt", _no_browser)
    result = apply_to_job(
        "https://jobs.ashbyhq.com/acme/123",
        {"first_name": "Alex", "last_name": "Carter", "email": "alex@example.com", "resume_path": str(tmp_path / "nope.pdf")},
        settings=settings,
    )

    assert result["ok"] is False
    assert "Resume file not found" in result["error"]
    assert result["attempts"] == 0


def test_invalid_input_is_reported_as_failure(settings, resume_file):
    missing_email = apply_to_job(
        "https://jobs.ashbyhq.com/acme/123",
        {"first_name": "Alex", "last_name": "Carter", "resume_path": str(resume_file)},
        settings=settings,
    )
    bad_mode = apply_to_job(
        "https://jobs.ashbyhq.com/acme/123", _profile(str(resume_file)), "sometimes", settings=settings
    )

    assert missing_email["ok"] is False
    assert missing_email["error"].startswith("Invalid application input")
    assert bad_mode["ok"] is False


def test_submit_application_record_rejects_other_ats(settings, resume_file):
    record = ApplicationRecord(
        job_id="job-1",
        job=JobRef(id="job-1", apply_url="https://boards.greenhouse.io/acme/1", ats_provider="greenhouse"),
        profile=_profile(str(resume_file)),
    )
    result = submit_application_record(record, settings=settings)

    assert result["ok"] is False
    assert "Unsupported ATS provider" in result["error"]


def test_submit_application_record_requires_apply_url(settings, resume_file):
    record = ApplicationRecord(job_id="job-1", job=JobRef(id="job-1"), profile=_profile(str(resume_file)))
    assert submit_application_record(record, settings=settings)["error"] == "Job has no apply URL"


def test_capture_screenshot_names_file_by_outcome(settings):
    page = FakePage([])
    path = capture_screenshot(page, "applied", settings)

    assert path is not None
    assert re.search(r"applied-\d{8}T\d{6}\d+Z\.png$", path)
    assert page.screenshots == [path]


def test_capture_screenshot_failure_returns_none(settings):
    class _BrokenPage:
        def screenshot(self, **kwargs):
            raise RuntimeError("target closed")

    assert capture_screenshot(_BrokenPage(), "failed", settings) is None


def test_submission_loop_is_bounded(settings):
    page = FakePage([FakeControl("First name", value="Alex")], error_text="Phone is required")
    page.always_fail = True

    with pytest.raises(ValidationRetriesExhausted) as exc:
        run_submission_loop(page, _ctx(settings))

    assert page.submit_count == settings.max_submit_attempts
    assert exc.value.attempts == settings.max_submit_attempts
    assert exc.value.error_text == "Phone is required"
    assert exc.value.missing_fields == ["Phone number"]


def test_submission_loop_fills_empty_required_field_and_resubmits(settings):
    page = FakePage(
        [
            FakeControl("First name", value="Alex"),
            FakeControl("Why this role?", tag="textarea", type="textarea", required=True),
        ]
    )

    outcome = run_submission_loop(page, _ctx(settings))

    assert outcome["attempts"] == 2
    assert outcome["corrective_passes"] == 1
    assert outcome["success_text"] == "Thank you for applying."
    assert page.controls[1].value


def test_corrective_pass_uses_profile_defaults_and_leaves_marketing_unchecked(settings):
    page = FakePage(
        [
            FakeControl("Phone number", type="tel", required=True),
            FakeControl("I agree to the Terms and Privacy Policy", type="checkbox", required=True),
            FakeControl("Send me marketing emails", type="checkbox"),
            FakeControl("Veteran status", tag="select", options=[{"text": "Decline", "value": "d"}]),
        ]
    )
    report = FillReport()

    changes = run_corrective_pass(page, _ctx(settings), report)

    assert changes == 2
    assert page.controls[0].value == "+1 555 0100"
    assert page.controls[1].checked is True
    assert page.controls[2].checked is False
    assert page.controls[3].value == ""
    assert report.filled == ["Phone number", "I agree to the Terms and Privacy Policy"]


def test_corrective_pass_is_a_no_op_on_complete_form(settings):
    page = FakePage(
        [
            FakeControl("Phone number", type="tel", value="+1 555 0100"),
            FakeControl("Why this role?", tag="textarea", type="textarea", value="I use the product daily."),
        ]
    )
    assert run_corrective_pass(page, _ctx(settings), FillReport()) == 0
    assert page.writes == []
