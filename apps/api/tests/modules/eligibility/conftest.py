"""
Fixtures for eligibility tests.
"""

from datetime import date

import pytest

TODAY = date(2025, 6, 15)


def dob_for_age(age: int, today: date = TODAY) -> date:
    """A date of birth that makes the applicant exactly ``age`` on ``today``."""
    return today.replace(year=today.year - age)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_individual():
    """Build an individual eligibility payload with overridable parts."""

    def _make(
        age: int = 30,
        passes: int = 5,
        english: bool = True,
        math: bool = True,
        a_level_passes: int | None = None,
        equivalent_evidence: str | None = None,
    ) -> dict:
        payload = {
            "personal": {
                "first_name": "Tendai",
                "last_name": "Moyo",
                "dob": dob_for_age(age).isoformat(),
                "email": "tendai@example.com",
                "country_of_residence": "Zimbabwe",
            },
            "o_level": {
                "subjects": ["English", "Mathematics", "Geography", "History", "Biology"],
                "has_english": english,
                "has_math": math,
                "passes_count": passes,
            },
        }
        if a_level_passes is not None:
            payload["a_level"] = {"subjects": ["Economics"], "passes_count": a_level_passes}
        if equivalent_evidence is not None:
            payload["equivalent_qualification"] = {
                "type": "diploma",
                "institution": "Harare Polytechnic",
                "level_map": "A-Level",
                "evidence_doc_id": equivalent_evidence,
            }
        return payload

    return _make


@pytest.fixture
def organization_payload():
    return {
        "org_profile": {
            "legal_name": "Kopje Realty (Pvt) Ltd",
            "trading_name": "Kopje Realty",
            "reg_no": "1234/2019",
            "emails": ["info@kopjerealty.co.zw"],
            "phones": ["+263771234567"],
        },
        "trust_account": {"bank_name": "CBZ Bank", "branch": "Avondale"},
        "prea_member_id": "EAC-MBR-2024-0012",
        "directors": [
            {"name": "Rudo Chikwanha", "member_id": "EAC-MBR-2024-0012"},
            {"name": "Farai Ndlovu"},
        ],
    }


ALL_ORGANIZATION_DOCS = {
    "bank_trust_letter": True,
    "certificate_incorporation": True,
    "annual_return_1": True,
    "annual_return_2": True,
    "annual_return_3": True,
    "cr6": True,
    "cr11": True,
    "tax_clearance": True,
    "police_clearance_director_1": True,
    "police_clearance_director_2": True,
}


@pytest.fixture
def all_organization_docs():
    return dict(ALL_ORGANIZATION_DOCS)
