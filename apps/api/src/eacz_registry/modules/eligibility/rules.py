"""
Eligibility Rule Engine

Pure admission checks for individual and organization applicants. No I/O:
anything that needs the database (PREA membership status, uploaded
documents) is passed in by the caller.

Business-rule failures come back as ``EligibilityResult(ok=False, reason=...)``.
Malformed input is reported the same way with a generic reason instead of
raising.
"""

import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from eacz_registry.modules.eligibility.schemas import (
    EligibilityResult,
    IndividualApplicationData,
    OrganizationApplicationData,
)

logger = logging.getLogger(__name__)

MATURE_ENTRY_AGE = 27
MIN_O_LEVEL_PASSES = 5
MIN_A_LEVEL_PASSES = 2

INDIVIDUAL_BASELINE_REQUIREMENTS = [
    "Upload certified O-Level certificate",
    "Upload valid ID or Passport",
    "Upload birth certificate",
]

# (doc_type, checklist label); one police clearance per director is appended
ORGANIZATION_REQUIRED_DOCUMENTS: list[tuple[str, str]] = [
    ("bank_trust_letter", "Trust Account letter from Commercial Bank"),
    ("certificate_incorporation", "Certificate of Incorporation OR Partnership Agreement"),
    ("annual_return_1", "Annual Return Form 1"),
    ("annual_return_2", "Annual Return Form 2"),
    ("annual_return_3", "Annual Return Form 3"),
    ("cr6", "CR6 Form (Director Proof)"),
    ("cr11", "Certified CR11 Forms"),
    ("tax_clearance", "Tax Clearance Certificate"),
]

INCORPORATION_ALTERNATIVES = ("certificate_incorporation", "partnership_agreement")


def calculate_age(dob: date, today: date | None = None) -> int:
    """Whole years since ``dob``, not counting a birthday still to come this year."""
    today = today or datetime.now(UTC).date()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def _reject(reason: str) -> EligibilityResult:
    return EligibilityResult(ok=False, reason=reason)


# ============================================
# Individual
# ============================================


def check_individual_eligibility(
    data: IndividualApplicationData | Mapping[str, Any],
    today: date | None = None,
    mature_age: int = MATURE_ENTRY_AGE,
) -> EligibilityResult:
    """
    Check an individual applicant's education and age requirements.

    1. At least 5 O-Level passes including English and Mathematics.
    2. Applicants aged ``mature_age`` or older (mature entry) need nothing more.
    3. Younger applicants need 2+ A-Level passes or an equivalent
       qualification with an evidence document.
    """
    try:
        application = IndividualApplicationData.model_validate(data)
        age = calculate_age(application.personal.dob, today)
    except (TypeError, ValueError) as e:
        logger.debug(f"Malformed individual eligibility input: {e}")
        return _reject("Invalid application data provided")

    o_level = application.o_level
    if o_level.passes_count < MIN_O_LEVEL_PASSES:
        return _reject("Must have at least 5 O-Level passes")
    if not o_level.has_english:
        return _reject("Must have O-Level English pass")
    if not o_level.has_math:
        return _reject("Must have O-Level Mathematics pass")

    requirements: list[str] = []
    warnings: list[str] = []

    has_a_level = (
        application.a_level is not None
        and application.a_level.passes_count >= MIN_A_LEVEL_PASSES
    )
    is_mature_entry = age >= mature_age

    if is_mature_entry:
        if has_a_level:
            warnings.append("A-Level qualifications will strengthen your application")
    else:
        equivalent = application.equivalent_qualification
        has_equivalent = equivalent is not None and bool(equivalent.evidence_doc_id)

        if not has_a_level and not has_equivalent:
            return _reject(
                f"Applicants under {mature_age} must have either 2+ A-Level passes "
                "or certified equivalent qualification"
            )

        if has_a_level:
            requirements.append("Provide certified A-Level certificate")
        else:
            requirements.append("Provide certified evidence of equivalent qualification")

    requirements.extend(INDIVIDUAL_BASELINE_REQUIREMENTS)

    return EligibilityResult(
        ok=True,
        mature=is_mature_entry,
        requirements=requirements,
        warnings=warnings or None,
    )


# ============================================
# Organization
# ============================================


def organization_document_checklist(
    data: OrganizationApplicationData,
) -> list[tuple[str, str]]:
    """Fixed organizational documents plus one police clearance per director."""
    checklist = list(ORGANIZATION_REQUIRED_DOCUMENTS)
    for index, director in enumerate(data.directors, start=1):
        checklist.append(
            (f"police_clearance_director_{index}", f"Police Clearance letter for {director.name}")
        )
    return checklist


def _has_incorporation_document(doc_map: Mapping[str, bool]) -> bool:
    return any(doc_map.get(doc_type) for doc_type in INCORPORATION_ALTERNATIVES)


def check_organization_eligibility(
    data: OrganizationApplicationData | Mapping[str, Any],
    doc_map: Mapping[str, bool] | None = None,
    prea_is_active: bool = False,
    prea_is_director: bool = False,
) -> EligibilityResult:
    """
    Check an organization applicant.

    Args:
        data: Organization profile, trust account, PREA and directors
        doc_map: Uploaded document types, ``{doc_type: True}``
        prea_is_active: Whether the declared PREA is an active individual member
        prea_is_director: Whether the PREA appears on the company's director records

    Hard failures (missing profile fields, inactive PREA, no directors)
    return immediately. Otherwise the result lists every missing document and
    is ``ok`` only when nothing is missing.
    """
    doc_map = doc_map or {}

    try:
        application = OrganizationApplicationData.model_validate(data)
    except (TypeError, ValueError) as e:
        logger.debug(f"Malformed organization eligibility input: {e}")
        return _reject("Invalid organization data provided")

    warnings: list[str] = []

    if len(application.org_profile.legal_name.strip()) < 2:
        return _reject("Valid organization legal name is required")
    if not application.org_profile.emails:
        return _reject("At least one email address is required")
    if len(application.trust_account.bank_name.strip()) < 2:
        return _reject("Trust account bank name is required")
    if not application.prea_member_id:
        return _reject("Principal Registered Estate Agent (PREA) must be declared")
    if not prea_is_active:
        return _reject("Principal Registered Estate Agent must be an active individual member")

    if not prea_is_director:
        warnings.append("Verify that the PREA is listed as a director in CR6 form")

    if not application.directors:
        return _reject("At least one director must be listed")

    requirements: list[str] = []

    missing = [
        label
        for doc_type, label in organization_document_checklist(application)
        if not (
            _has_incorporation_document(doc_map)
            if doc_type == "certificate_incorporation"
            else doc_map.get(doc_type)
        )
    ]
    if missing:
        requirements.append("Upload all required documents:")
        requirements.extend(f"- {label}" for label in missing)

    if not _has_incorporation_document(doc_map):
        requirements.append("Provide either Certificate of Incorporation OR Partnership Agreement")

    prea_in_directors = any(
        director.member_id == application.prea_member_id for director in application.directors
    )
    if not prea_in_directors:
        warnings.append("Ensure the PREA is listed among the directors")

    return EligibilityResult(
        ok=not requirements,
        reason="Missing required documents or information" if requirements else None,
        requirements=requirements or None,
        warnings=warnings or None,
    )
