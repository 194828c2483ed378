"""
Document Requirement Validator

Computes which required documents are still missing for an application.
Runs at submission time because documents are uploaded incrementally after
the application is started.
"""

from collections.abc import Iterable

from eacz_registry.modules.eligibility.schemas import EligibilityResult

INDIVIDUAL_REQUIRED_DOCUMENTS = ["o_level_cert", "id_or_passport", "birth_certificate"]

ORGANIZATION_REQUIRED_DOCUMENTS = [
    "bank_trust_letter",
    "cr6",
    "cr11",
    "tax_clearance",
    "annual_return_1",
    "annual_return_2",
    "annual_return_3",
]

DOCUMENT_DISPLAY_NAMES = {
    "o_level_cert": "O-Level Certificate",
    "a_level_cert": "A-Level Certificate",
    "equivalent_cert": "Equivalent Qualification Certificate",
    "id_or_passport": "ID or Passport",
    "birth_certificate": "Birth Certificate",
    "bank_trust_letter": "Bank Trust Account Letter",
    "certificate_incorporation": "Certificate of Incorporation",
    "partnership_agreement": "Partnership Agreement",
    "cr6": "CR6 Form",
    "cr11": "CR11 Form",
    "tax_clearance": "Tax Clearance Certificate",
    "annual_return_1": "Annual Return Form 1",
    "annual_return_2": "Annual Return Form 2",
    "annual_return_3": "Annual Return Form 3",
    "police_clearance_director": "Police Clearance for Director",
    "application_fee_pop": "Application Fee Proof of Payment",
}


def document_display_name(doc_type: str) -> str:
    return DOCUMENT_DISPLAY_NAMES.get(doc_type, doc_type)


def validate_document_requirements(
    application_type: str,
    uploaded_doc_types: Iterable[str],
    *,
    mature_entry: bool | None = None,
    director_count: int | None = None,
) -> EligibilityResult:
    """
    List the required documents missing from ``uploaded_doc_types``.

    Individual: O-Level certificate, ID/passport and birth certificate; an
    A-Level certificate or equivalent evidence unless ``mature_entry``.

    Organization: seven fixed documents, a certificate of incorporation or
    partnership agreement, and ``police_clearance_director_{n}`` for each
    director (at least one).
    """
    uploaded = set(uploaded_doc_types)
    missing: list[str] = []

    if application_type == "individual":
        if mature_entry is False and not uploaded & {"a_level_cert", "equivalent_cert"}:
            missing.append("A-Level certificate OR equivalent qualification evidence")

        missing.extend(
            document_display_name(doc_type)
            for doc_type in INDIVIDUAL_REQUIRED_DOCUMENTS
            if doc_type not in uploaded
        )

    elif application_type == "organization":
        if not uploaded & {"certificate_incorporation", "partnership_agreement"}:
            missing.append("Certificate of Incorporation OR Partnership Agreement")

        missing.extend(
            document_display_name(doc_type)
            for doc_type in ORGANIZATION_REQUIRED_DOCUMENTS
            if doc_type not in uploaded
        )

        for index in range(1, max(director_count or 1, 1) + 1):
            if f"police_clearance_director_{index}" not in uploaded:
                missing.append(f"Police Clearance for Director {index}")

    else:
        return EligibilityResult(ok=False, reason=f"Unknown application type: {application_type}")

    return EligibilityResult(
        ok=not missing,
        reason="Missing required documents" if missing else None,
        requirements=missing or None,
    )
