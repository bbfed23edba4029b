"""
Verification engine
Decides whether the estimate-derived and report-derived calibration lists agree
"""

from ...schemas import REVIEW_HINTS, VERIFIED_HINTS, ScrubResult, VerificationOutcome

DEFAULT_DISCREPANCY_REASON = "Calibration counts do not match."


def classify(scrub_result: ScrubResult, strict: bool = False) -> VerificationOutcome:
    """
    Classify a scrub as VERIFIED or NEEDS_REVIEW

    Rules are priority ordered and the first match wins:
      1. a verified upstream status hint
      2. needs_review explicitly False (and no attention flag) with both lists
         empty, or equal counts and nothing flagged missing
      3. needs_attention / needs_review explicitly True
      4. a review upstream status hint
      5. flagged missing calibrations, or calibration counts that differ
      6. nothing conclusive: verified, unless ``strict`` and the report
         lists calibrations

    Args:
        scrub_result: Comparison input for one RO
        strict: Route inconclusive scrubs to review instead of verifying them

    Returns:
        VerificationOutcome with a human-readable reason
    """
    estimate_count = len(scrub_result.estimate_calibrations)
    report_count = len(scrub_result.report_calibrations)
    hint = scrub_result.status_hint
    has_missing = bool(scrub_result.missing_calibrations)

    if hint in VERIFIED_HINTS:
        return VerificationOutcome(is_verified=True, reason=f"Upstream status {hint.value}")

    if scrub_result.needs_review is False and scrub_result.needs_attention is not True:
        if estimate_count == 0 and report_count == 0:
            return VerificationOutcome(
                is_verified=True, reason="No calibrations required by either source"
            )
        if estimate_count == report_count and not has_missing:
            return VerificationOutcome(
                is_verified=True,
                reason=f"Estimate and report agree on {report_count} calibration(s)",
            )

    if scrub_result.needs_attention is True or scrub_result.needs_review is True:
        return _needs_review(scrub_result)

    if hint in REVIEW_HINTS:
        return _needs_review(scrub_result)

    if has_missing or estimate_count != report_count:
        return _needs_review(scrub_result)

    if strict and report_count:
        return _needs_review(scrub_result)

    return VerificationOutcome(is_verified=True, reason="No discrepancy signal")


def discrepancy_reason(scrub_result: ScrubResult) -> str:
    """Explain a discrepancy in terms of the two calibration counts"""
    estimate_count = len(scrub_result.estimate_calibrations)
    report_count = len(scrub_result.report_calibrations)

    if estimate_count > 0 and report_count == 0:
        return f"Estimate suggests {estimate_count} calibration(s) but report shows none."
    if estimate_count == 0 and report_count > 0:
        return (
            f"Report shows {report_count} calibration(s) but no matching repair operations found."
        )
    if estimate_count != report_count:
        return f"Estimate: {estimate_count} calibrations vs Report: {report_count} calibrations."
    return scrub_result.status_message or DEFAULT_DISCREPANCY_REASON


def _needs_review(scrub_result: ScrubResult) -> VerificationOutcome:
    return VerificationOutcome(is_verified=False, reason=discrepancy_reason(scrub_result))
