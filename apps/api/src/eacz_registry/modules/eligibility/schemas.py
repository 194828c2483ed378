"""
Eligibility Schemas

Typed application payloads and the eligibility result. The payload models
double as the stored shape of the application JSON columns.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class PayloadModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


# ============================================
# Individual
# ============================================


class PhoneNumber(PayloadModel):
    country_code: str = Field(..., min_length=1)
    number: str = Field(..., min_length=5)


class PersonalInfo(PayloadModel):
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    dob: date
    national_id: str | None = None
    email: EmailStr
    phone: PhoneNumber | None = None
    address: str | None = None
    country_of_residence: str = Field(..., min_length=2)
    current_employer: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class OLevelRecord(PayloadModel):
    subjects: list[str] = Field(default_factory=list)
    has_english: bool
    has_math: bool
    passes_count: int = Field(..., ge=0)


class ALevelRecord(PayloadModel):
    subjects: list[str] = Field(default_factory=list)
    passes_count: int = Field(..., ge=0)


class EquivalentQualification(PayloadModel):
    type: str
    institution: str
    level_map: str
    evidence_doc_id: str | None = None


class IndividualApplicationData(PayloadModel):
    """Everything the individual eligibility check looks at."""

    personal: PersonalInfo
    o_level: OLevelRecord
    a_level: ALevelRecord | None = None
    equivalent_qualification: EquivalentQualification | None = None


# ============================================
# Organization
# ============================================


class OrgProfile(PayloadModel):
    legal_name: str = Field(..., max_length=255)
    trading_name: str | None = None
    reg_no: str | None = None
    tax_no: str | None = None
    address: str | None = None
    emails: list[EmailStr] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)


class TrustAccount(PayloadModel):
    bank_name: str
    branch: str | None = None
    account_no_masked: str | None = None


class Director(PayloadModel):
    name: str = Field(..., min_length=1)
    national_id: str | None = None
    member_id: str | None = None


class OrganizationApplicationData(PayloadModel):
    """Everything the organization eligibility check looks at."""

    org_profile: OrgProfile
    trust_account: TrustAccount
    prea_member_id: str = ""
    directors: list[Director] = Field(default_factory=list)


# ============================================
# Result
# ============================================


class EligibilityResult(BaseModel):
    """
    Outcome of an eligibility or document-requirement check.

    Business-rule failures are reported here, never raised.
    """

    ok: bool
    mature: bool | None = None
    reason: str | None = None
    requirements: list[str] | None = None
    warnings: list[str] | None = None
