import pytest

from app.db.models import ApplicantProfile
from app.services.form_filler import answer_policy_questions, navigate_to_application, upload_resume
from tests.fakes import FakeContext, FakeControl, FakePage

JOB_URL = "https://jobs.ashbyhq.com/acme/backend-engineer"
SPONSORSHIP = "Will you now or in the future require visa sponsorship?"
ANCHOR_DAYS = "This role is in-office three days a week. Does that work for you?"
YES_NO = [{"text": "Select...", "value": ""}, {"text": "Yes", "value": "yes"}, {"text": "No", "value": "no"}]


def _profile(**overrides) -> ApplicantProfile:
    data = {
        "first_name": "Alex",
        "last_name": "Carter",
        "email": "alex@example.com",
        "resume_path": "/tmp/resume.pdf",
    }
    data.update(overrides)
    return ApplicantProfile(**data)


def _controls(page: FakePage) -> dict[str, FakeControl]:
    return {control.label: control for control in page.controls}


def test_policy_questions_follow_profile_booleans():
    page = FakePage([
        FakeControl("Yes", type="radio", name="sponsor", block=SPONSORSHIP),
        FakeControl("No", type="radio", name="sponsor", block=SPONSORSHIP),
        FakeControl("Select one", tag="select", options=YES_NO, block=ANCHOR_DAYS),
        FakeControl("Are you willing to relocate?", tag="select", options=YES_NO),
    ])

    answered = answer_policy_questions(page, _profile(requires_sponsorship=False, willing_to_relocate=False))

    assert answered == ["sponsorship", "anchor_days", "relocation"]
    yes_radio, no_radio, anchor, relocation = page.controls
    assert no_radio.checked is True
    assert yes_radio.checked is False
    assert anchor.value == "yes"
    assert relocation.value == "no"


def test_sponsorship_answer_flips_with_profile():
    page = FakePage([
        FakeControl("Yes", type="radio", name="sponsor", block=SPONSORSHIP),
        FakeControl("No", type="radio", name="sponsor", block=SPONSORSHIP),
    ])

    assert answer_policy_questions(page, _profile(requires_sponsorship=True)) == ["sponsorship"]
    assert [control.checked for control in page.controls] == [True, False]


@pytest.mark.parametrize("understands, checked", [(True, True), (False, False)])
def test_policy_checkbox_is_ticked_only_for_yes(understands, checked):
    page = FakePage([
        FakeControl("I understand", type="checkbox", block="We work on-site Tuesdays and Thursdays."),
    ])

    assert answer_policy_questions(page, _profile(understands_anchor_days=understands)) == ["anchor_days"]
    assert page.controls[0].checked is checked


def test_policy_questions_without_matching_controls_are_skipped():
    page = FakePage([FakeControl("First name"), FakeControl("Resume", type="file")])
    assert answer_policy_questions(page, _profile()) == []
    assert page.writes == []


def test_single_file_input_gets_the_resume(settings, resume_file):
    page = FakePage([FakeControl("Attach", type="file")])

    assert upload_resume(page, resume_file, settings) is True
    assert page.controls[0].value == str(resume_file)
    assert page.chooser_files == []


def test_resume_goes_to_labelled_input_when_several_exist(settings, resume_file):
    page = FakePage([FakeControl("Cover letter", type="file"), FakeControl("Resume", type="file")])

    assert upload_resume(page, resume_file, settings) is True
    controls = _controls(page)
    assert controls["Resume"].value == str(resume_file)
    assert controls["Cover letter"].value == ""


def test_upload_button_uses_file_chooser(settings, resume_file):
    page = FakePage([FakeControl("First name")], upload_button=True)

    assert upload_resume(page, resume_file, settings) is True
    assert page.chooser_files == [str(resume_file)]


def test_unlabelled_file_inputs_fall_back_to_first(settings, resume_file):
    page = FakePage([FakeControl("Attachment", type="file"), FakeControl("Portfolio", type="file")])

    assert upload_resume(page, resume_file, settings) is True
    assert [control.value for control in page.controls] == [str(resume_file), ""]


def test_upload_reports_failure_when_nothing_accepts_a_file(settings, resume_file):
    page = FakePage([FakeControl("First name")])

    assert upload_resume(page, resume_file, settings) is False
    assert page.uploads == []


def test_apply_control_opening_a_new_page_hands_off(settings):
    landing = FakePage([], apply_button=True)
    form = FakePage([FakeControl("First name")])

    active = navigate_to_application(landing, FakeContext(popup=form), JOB_URL, settings)

    assert active is form
    assert landing.visited == [JOB_URL]
    assert landing.apply_clicked is True
    assert form.default_timeout == settings.page_timeout_ms


def test_apply_control_without_new_page_stays_in_place(settings):
    landing = FakePage([FakeControl("First name")], apply_button=True)

    assert navigate_to_application(landing, FakeContext(), JOB_URL, settings) is landing
    assert landing.apply_clicked is True


def test_page_without_apply_control_is_used_as_is(settings):
    page = FakePage([FakeControl("First name")])

    assert navigate_to_application(page, FakeContext(), JOB_URL, settings) is page
    assert page.apply_clicked is False
