"""One application attempt against an Ashby-hosted form.

``apply_to_job`` owns the browser lifecycle; ``execute_attempt`` runs the
fill/submit/verify flow on an already-open page and converts every failure
into a result dict. Both return dicts, they never raise.
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import Settings, get_settings
from app.core.enums import ApplyMode, FieldKind, FieldTag
from app.core.exceptions import ResumeNotFoundError, ValidationRetriesExhausted
from app.core.logging import get_logger, log_context
from app.db.models import ApplicantProfile, ApplicationRecord, JobRef
from app.services.answer_resolver import (
    AnswerContext,
    FieldDecision,
    identity_default,
    resolve_field,
    should_check,
)
from app.services.field_classifier import FormField, scan_form_fields
from app.services.form_filler import (
    FillReport,
    answer_policy_questions,
    apply_decision,
    fill_discovered_fields,
    fill_identity,
    navigate_to_application,
    upload_resume,
    wait_for_form,
)
from app.services.oracle import LLMProvider, build_llm_provider
from app.services.validation import (
    detect_validation_error,
    find_success_text,
    missing_field_suggestions,
    pre_submit_check,
)

logger = get_logger(__name__)

SUBMIT_BUTTON_NAME = re.compile(r"submit|apply", re.IGNORECASE)
SUPPORTED_ATS_PROVIDERS = {"ashby"}


def resolve_resume_path(resume_path: str) -> Path:
    path = Path(resume_path).expanduser().resolve()
    if not path.is_file():
        raise ResumeNotFoundError(f"Resume file not found at {path}")
    return path


def capture_screenshot(page, outcome: str, settings: Settings) -> str | None:
    shots_dir = Path(settings.screenshot_dir).resolve()
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    output_path = shots_dir / f"{outcome}-{stamp}.png"
    try:
        shots_dir.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(output_path), full_page=True)
    except Exception:
        logger.warning("Screenshot capture failed", extra={"extra": {"outcome": outcome}}, exc_info=True)
        return None
    return str(output_path)


def _failure_result(
    error: str,
    *,
    screenshot_path: str | None = None,
    attempts: int = 0,
    missing_fields: list[str] | None = None,
    unfilled_fields: list[str] | None = None,
    validation_error: str | None = None,
) -> dict[str, Any]:
    return {
        "ok": False,
        "error": error,
        "validation_error": validation_error,
        "missing_fields": missing_fields or [],
        "screenshot_path": screenshot_path,
        "attempts": attempts,
        "unfilled_fields": unfilled_fields or [],
    }


def click_submit(page, settings: Settings) -> None:
    page.get_by_role("button", name=SUBMIT_BUTTON_NAME).last.click()
    page.wait_for_timeout(settings.post_submit_settle_ms)


def run_corrective_pass(page, ctx: AnswerContext, report: FillReport) -> int:
    """Re-scan and fill whatever is still unsatisfied. Returns the number of writes that stuck."""
    changes = 0
    for form_field in scan_form_fields(page):
        if form_field.tag in {FieldTag.SKIP_EEO, FieldTag.UPLOAD}:
            continue

        decision: FieldDecision | None = None
        is_text = form_field.kind in {FieldKind.TEXT, FieldKind.TEXTAREA}
        if is_text and not (form_field.value or "").strip():
            default = identity_default(form_field.label, ctx.profile)
            if default:
                decision = FieldDecision(field=form_field, action="fill", value=default, source="profile.default")

        if decision is None and form_field.tag == FieldTag.BOOLEAN:
            if form_field.checked:
                continue
            check, source = should_check(form_field.label, ctx.profile)
            if not check:
                if form_field.required:
                    logger.warning(
                        "Required checkbox left unchecked",
                        extra={"extra": {"label": form_field.display_label, "rule": source}},
                    )
                continue
            decision = FieldDecision(field=form_field, action="check", source=source)

        if decision is None:
            if form_field.tag == FieldTag.SKIP_IDENTITY:
                continue
            decision = resolve_field(form_field, ctx)
        if not decision.writes:
            continue

        if apply_decision(page, decision):
            changes += 1
            report.filled.append(form_field.display_label)
            if form_field.display_label in report.unfilled:
                report.unfilled.remove(form_field.display_label)
        elif form_field.display_label not in report.unfilled:
            report.unfilled.append(form_field.display_label)
    return changes


def run_submission_loop(page, ctx: AnswerContext, report: FillReport | None = None) -> dict[str, Any]:
    """Submit, then correct and resubmit until the page shows no validation error.

    At most ``max_submit_attempts`` submits are made, each retry preceded by
    at most ``max_corrective_passes`` corrective passes. Raises
    ``ValidationRetriesExhausted`` when the bound runs out.
    """
    settings = ctx.settings
    report = report or FillReport()

    empty_required = pre_submit_check(scan_form_fields(page))
    if empty_required:
        logger.warning("Required fields may be empty", extra={"extra": {"fields": empty_required}})
    page.wait_for_timeout(settings.pre_submit_wait_ms)

    corrective_passes = 0
    last_error = ""
    for attempt in range(1, settings.max_submit_attempts + 1):
        click_submit(page, settings)
        error = detect_validation_error(page)
        if error is None:
            logger.info("Submission accepted", extra={"extra": {"attempt": attempt}})
            return {
                "attempts": attempt,
                "corrective_passes": corrective_passes,
                "success_text": find_success_text(page),
            }

        last_error = error
        logger.warning("Validation error after submit", extra={"extra": {"attempt": attempt, "error": error}})
        if attempt == settings.max_submit_attempts:
            break

        for _ in range(settings.max_corrective_passes):
            corrective_passes += 1
            changes = run_corrective_pass(page, ctx, report)
            if changes == 0:
                break
            if not pre_submit_check(scan_form_fields(page)):
                break

    raise ValidationRetriesExhausted(
        f"Validation failed after {settings.max_submit_attempts} submit attempts: {last_error}",
        error_text=last_error,
        missing_fields=missing_field_suggestions(last_error),
        attempts=settings.max_submit_attempts,
    )


def execute_attempt(page, context, *, url: str, resume_path: Path, ctx: AnswerContext) -> dict[str, Any]:
    settings = ctx.settings
    report = FillReport()
    active = page
    try:
        active = navigate_to_application(page, context, url, settings)
        wait_for_form(active, settings)
        fill_identity(active, ctx.profile)
        if not upload_resume(active, resume_path, settings):
            report.unfilled.append("Resume")
        answer_policy_questions(active, ctx.profile)
        report.merge(fill_discovered_fields(active, ctx))
        outcome = run_submission_loop(active, ctx, report)
    except ValidationRetriesExhausted as exc:
        logger.error(
            "Application failed validation",
            extra={"extra": {"url": url, "error": exc.error_text, "missing_fields": exc.missing_fields}},
        )
        return _failure_result(
            str(exc),
            screenshot_path=capture_screenshot(active, "failed", settings),
            attempts=exc.attempts,
            missing_fields=exc.missing_fields,
            unfilled_fields=report.unfilled,
            validation_error=exc.error_text,
        )
    except Exception as exc:
        logger.error("Application attempt failed", extra={"extra": {"url": url}}, exc_info=True)
        return _failure_result(
            f"{type(exc).__name__}: {exc}",
            screenshot_path=capture_screenshot(active, "failed", settings),
            unfilled_fields=report.unfilled,
        )

    return {
        "ok": True,
        "success_text": outcome["success_text"],
        "screenshot_path": capture_screenshot(active, "applied", settings),
        "attempts": outcome["attempts"],
        "corrective_passes": outcome["corrective_passes"],
        "unfilled_fields": report.unfilled,
    }


def _close_quietly(resource, name: str) -> None:
    if resource is None:
        return
    try:
        resource.close()
    except Exception:
        logger.warning("Failed to close browser resource", extra={"extra": {"resource": name}}, exc_info=True)


def apply_to_job(
    url: str,
    profile: ApplicantProfile | dict[str, Any],
    mode: ApplyMode | str = ApplyMode.AUTO,
    *,
    job: JobRef | None = None,
    settings: Settings | None = None,
    llm_provider: LLMProvider | None = None,
) -> dict[str, Any]:
    settings = settings or get_settings()
    try:
        profile = profile if isinstance(profile, ApplicantProfile) else ApplicantProfile.model_validate(profile)
        mode = ApplyMode(mode)
    except ValueError as exc:
        return _failure_result(f"Invalid application input: {exc}")

    try:
        resume_path = resolve_resume_path(profile.resume_path)
    except ResumeNotFoundError as exc:
        logger.error("Resume missing; not starting browser", extra={"extra": {"resume_path": profile.resume_path}})
        return _failure_result(str(exc))

    if llm_provider is None:
        try:
            llm_provider = build_llm_provider(settings)
        except ValueError as exc:
            logger.warning("Oracle disabled", extra={"extra": {"error": str(exc)}})

    ctx = AnswerContext(
        profile=profile,
        job=job or JobRef(id=url, apply_url=url),
        mode=mode,
        provider=llm_provider,
        settings=settings,
    )

    try:
        from playwright.sync_api import sync_playwright
    except ImportError:
        return _failure_result("Playwright is required for form submission. Install playwright and browsers.")

    logger.info("Starting application attempt", extra={"extra": {"url": url, "mode": mode.value}})
    browser = None
    browser_context = None
    try:
        with log_context(url=url, mode=mode.value), sync_playwright() as playwright:
            try:
                browser = playwright.chromium.launch(headless=settings.browser_headless)
                browser_context = browser.new_context()
                page = browser_context.new_page()
                page.set_default_timeout(settings.page_timeout_ms)
                return execute_attempt(page, browser_context, url=url, resume_path=resume_path, ctx=ctx)
            finally:
                _close_quietly(browser_context, "context")
                _close_quietly(browser, "browser")
    except Exception as exc:
        logger.error("Browser session failed", extra={"extra": {"url": url}}, exc_info=True)
        return _failure_result(f"Browser session failed: {type(exc).__name__}: {exc}")


def submit_application_record(
    record: ApplicationRecord,
    *,
    mode: ApplyMode = ApplyMode.AUTO,
    settings: Settings | None = None,
) -> dict[str, Any]:
    provider = (record.job.ats_provider or "").strip().lower()
    if provider not in SUPPORTED_ATS_PROVIDERS:
        return _failure_result(f"Unsupported ATS provider: {record.job.ats_provider}")
    if not record.job.apply_url:
        return _failure_result("Job has no apply URL")
    return apply_to_job(record.job.apply_url, record.profile, mode, job=record.job, settings=settings)
