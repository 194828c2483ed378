"""Applicant registration and save-and-resume drafts."""

from eacz_registry.modules.applicants.models import Applicant, ApplicantStatus

__all__ = ["Applicant", "ApplicantStatus"]
