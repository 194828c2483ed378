"""
Email Templates

Builders for every notification the registry sends. Each returns an
``EmailMessage`` ready for ``EmailDispatcher.enqueue``; every interpolated
value is HTML-escaped.
"""

from datetime import date
from decimal import Decimal
from html import escape

from eacz_registry.core.config import settings
from eacz_registry.core.email import EmailMessage

COUNCIL_NAME = "Estate Agents Council of Zimbabwe"

_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { background-color: #1034a6; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }
    .content { padding: 20px; background-color: #f9fafb; }
    .box { background-color: #e0f2fe; padding: 16px; border-radius: 8px; margin: 16px 0; border-left: 4px solid #0284c7; }
    .warning-box { background-color: #fef3c7; padding: 16px; border-radius: 8px; margin: 16px 0; border-left: 4px solid #f59e0b; }
    .button { display: inline-block; background-color: #1034a6; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .code { font-size: 28px; letter-spacing: 6px; font-weight: bold; color: #1034a6; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _type_display(application_type: str) -> str:
    return "Individual Membership" if application_type == "individual" else "Organization Registration"


def _render(heading: str, body: str) -> str:
    support = escape(settings.support_email)
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <div class="header"><h1>{escape(heading)}</h1></div>
            <div class="content">
                {body}
                <p>If you have any questions, please contact us at {support}</p>
            </div>
            <div class="footer">
                <p>{COUNCIL_NAME}</p>
            </div>
        </div>
    </body>
    </html>
    """


def _status_box(application_id: str, current: str, next_stage: str | None = None) -> str:
    next_line = f"<p><strong>Next Stage:</strong> {escape(next_stage)}</p>" if next_stage else ""
    return f"""
    <div class="box">
        <p><strong>Application ID:</strong> {escape(application_id)}</p>
        <p><strong>Current Stage:</strong> {escape(current)}</p>
        {next_line}
    </div>
    """


# ============================================
# Applicant registration
# ============================================


def applicant_welcome(to_email: str, name: str, applicant_id: str) -> EmailMessage:
    body = f"""
    <h2>Welcome, {escape(name)}!</h2>
    <p>Thank you for starting your application with the {COUNCIL_NAME}.</p>
    <div class="box">
        <p><strong>Your Applicant ID</strong></p>
        <p style="font-size: 18px;">{escape(applicant_id)}</p>
        <p>Please save this ID for your records. You will need it to sign in.</p>
    </div>
    <p>To continue, please verify your email address using the link in the verification email we are sending you.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject="Welcome to EACZ - Your Application ID",
        html=_render("Estate Agents Council of Zimbabwe", body),
        text=f"Welcome to EACZ, {name}! Your Applicant ID: {applicant_id}",
    )


def applicant_verification(to_email: str, name: str, token: str) -> EmailMessage:
    verification_url = f"{settings.frontend_url}/verify-email?token={token}"
    safe_url = escape(verification_url, quote=True)
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Please verify your email address by clicking the button below:</p>
    <a href="{safe_url}" class="button">Verify Email</a>
    <p>Or copy and paste this link into your browser:</p>
    <p style="word-break: break-all;">{safe_url}</p>
    <p><strong>This link expires in 24 hours.</strong></p>
    """
    return EmailMessage(
        to=[to_email],
        subject="Verify Your Email Address - EACZ Application",
        html=_render("Verify Your Email", body),
        text=f"Verify your email address: {verification_url}",
    )


# ============================================
# Application lifecycle
# ============================================


def application_confirmation(
    to_email: str,
    name: str,
    application_id: str,
    application_type: str,
    fee_amount: Decimal | int,
    fee_currency: str,
) -> EmailMessage:
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Your {_type_display(application_type)} application has been created with the {COUNCIL_NAME}.</p>
    {_status_box(application_id, "Draft")}
    <div class="warning-box">
        <p><strong>Application Fee: {escape(str(fee_amount))} {escape(fee_currency)}</strong></p>
        <ul>
            <li>Upload all required documents</li>
            <li>Pay the application fee or upload proof of payment</li>
            <li>Submit your application for review</li>
        </ul>
    </div>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Application Submitted - {application_id}",
        html=_render("Application Created", body),
        text=(
            f"Your application {application_id} has been created. "
            f"Application fee: {fee_amount} {fee_currency}."
        ),
    )


def under_review(to_email: str, name: str, application_id: str, application_type: str) -> EmailMessage:
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Your {_type_display(application_type)} application is now under review by our team.</p>
    {_status_box(application_id, "Initial Review", "Document Verification")}
    <p>You may be contacted if additional information is needed.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Application Under Review - {application_id}",
        html=_render("Application Under Review", body),
        text=f"Your application {application_id} is now under review.",
    )


def document_review(to_email: str, name: str, application_id: str, application_type: str) -> EmailMessage:
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Your {_type_display(application_type)} application has passed initial review and is now in the document verification stage.</p>
    {_status_box(application_id, "Document Verification", "Payment Review")}
    <p>Document verification typically takes 3-5 business days.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Document Review Stage - {application_id}",
        html=_render("Document Review In Progress", body),
        text=f"Your application {application_id} is in document review.",
    )


def payment_review(to_email: str, name: str, application_id: str, application_type: str) -> EmailMessage:
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Your {_type_display(application_type)} application documents have been verified and we are now reviewing your payment.</p>
    {_status_box(application_id, "Payment Verification", "Final Approval")}
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Payment Review - {application_id}",
        html=_render("Payment Review", body),
        text=f"Your application {application_id} is in payment review.",
    )


def staff_action_required(
    to_emails: list[str],
    application_id: str,
    applicant_name: str,
    stage: str,
    application_type: str,
) -> EmailMessage:
    review_url = escape(f"{settings.frontend_url}/admin/applications/{application_id}", quote=True)
    body = f"""
    <p>An application requires your attention and review.</p>
    <div class="warning-box">
        <p><strong>Application ID:</strong> {escape(application_id)}</p>
        <p><strong>Applicant:</strong> {escape(applicant_name)}</p>
        <p><strong>Type:</strong> {_type_display(application_type)}</p>
        <p><strong>Stage:</strong> {escape(stage)}</p>
    </div>
    <a href="{review_url}" class="button">Review Application</a>
    """
    return EmailMessage(
        to=to_emails,
        subject=f"Action Required: {stage} - {application_id}",
        html=_render("Application Requires Your Review", body),
        text=f"Application {application_id} ({applicant_name}) requires review: {stage}.",
    )


def approval_certificate(
    to_email: str,
    name: str,
    application_type: str,
    registration_number: str,
    expiry_date: date,
) -> EmailMessage:
    type_display = "Membership" if application_type == "individual" else "Organization"
    number_label = "Membership Number" if application_type == "individual" else "Registration Number"
    body = f"""
    <h2>Congratulations {escape(name)}!</h2>
    <p>Your {_type_display(application_type)} application has been approved by the {COUNCIL_NAME}.</p>
    <div class="box">
        <p><strong>{number_label}:</strong> {escape(registration_number)}</p>
        <p><strong>Status:</strong> Active</p>
        <p><strong>Valid Until:</strong> {expiry_date.isoformat()}</p>
    </div>
    <p>Please keep this email as your {type_display.lower()} certificate of registration.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Your {type_display} Certificate - EACZ",
        html=_render("Application Approved", body),
        text=(
            f"Your application has been approved. {number_label}: {registration_number}. "
            f"Valid until {expiry_date.isoformat()}."
        ),
    )


def rejection(to_email: str, name: str, application_id: str, reasons: list[str]) -> EmailMessage:
    items = "".join(f"<li>{escape(reason)}</li>" for reason in reasons)
    reasons_html = f"<ul>{items}</ul>" if items else ""
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Thank you for your interest in registering with the {COUNCIL_NAME}.</p>
    <p>After careful review, we are unable to approve application <strong>{escape(application_id)}</strong> at this time.</p>
    {reasons_html}
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Update on your EACZ application - {application_id}",
        html=_render("Application Decision", body),
        text=f"Application {application_id} was not approved. " + " ".join(reasons),
    )


def needs_applicant_action(to_email: str, name: str, application_id: str, comment: str | None) -> EmailMessage:
    note = f'<div class="warning-box"><p>{escape(comment)}</p></div>' if comment else ""
    body = f"""
    <h2>Hello {escape(name)},</h2>
    <p>Your application <strong>{escape(application_id)}</strong> needs your attention before review can continue.</p>
    {note}
    <p>Please sign in, make the requested changes and resubmit your application.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Additional information needed - {application_id}",
        html=_render("Action Needed", body),
        text=f"Application {application_id} needs your attention. {comment or ''}".strip(),
    )


def draft_expired(to_email: str, application_id: str, days: int) -> EmailMessage:
    body = f"""
    <p>Your draft application <strong>{escape(application_id)}</strong> was not submitted within {days} days and has expired.</p>
    <p>You are welcome to start a new application at any time.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject=f"Your EACZ draft application has expired - {application_id}",
        html=_render("Draft Application Expired", body),
        text=f"Draft application {application_id} expired after {days} days.",
    )


def otp_code(to_email: str, application_id: str, code: str, expiry_minutes: int) -> EmailMessage:
    body = f"""
    <p>Use the code below to resume application <strong>{escape(application_id)}</strong>:</p>
    <p class="code">{escape(code)}</p>
    <p><strong>This code expires in {expiry_minutes} minutes.</strong></p>
    <p>If you did not request this code, you can safely ignore this email.</p>
    """
    return EmailMessage(
        to=[to_email],
        subject="Your EACZ application access code",
        html=_render("Resume Your Application", body),
        text=f"Your access code for {application_id} is {code}. It expires in {expiry_minutes} minutes.",
    )
