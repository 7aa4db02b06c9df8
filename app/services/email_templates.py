from datetime import date
from html import escape
from typing import NamedTuple

BRAND = "TourDesk"

DOCUMENT_LABELS = {
    "license": "Tour guide license",
    "certificate": "Professional certificate",
    "id_card": "Government-issued ID card",
    "other": "Supporting document",
}


class Mail(NamedTuple):
    subject: str
    html: str


def _wrap(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<h2>{escape(title)}</h2>{body}"
        f"<p style=\"color: #666; font-size: 12px;\">&copy; {date.today().year} {BRAND}</p>"
        "</body></html>"
    )


def guide_registration(full_name: str) -> Mail:
    docs = "".join(f"<li>{label}</li>" for key, label in DOCUMENT_LABELS.items() if key != "other")
    return Mail(
        "Guide registration received - next steps",
        _wrap(
            "Guide registration received",
            f"<p>Hello {escape(full_name)},</p>"
            f"<p>Thank you for registering as a tour guide with {BRAND}.</p>"
            f"<p>Please upload your verification documents:</p><ul>{docs}</ul>"
            "<p>Our team reviews documents within 2-3 business days. "
            "You will be notified as soon as your profile is approved.</p>",
        ),
    )


def guide_document_received(full_name: str, document_type: str) -> Mail:
    label = DOCUMENT_LABELS.get(document_type, document_type)
    return Mail(
        "Document received - pending verification",
        _wrap(
            "Document received",
            f"<p>Hello {escape(full_name)},</p>"
            f"<p>We received your document: <strong>{escape(label)}</strong>.</p>"
            "<p>Status: <strong>Pending verification</strong></p>",
        ),
    )


def guide_approved(full_name: str) -> Mail:
    return Mail(
        "Your guide account is approved",
        _wrap(
            "You are now an approved guide",
            f"<p>Hello {escape(full_name)},</p>"
            "<p>All of your documents have been verified and your account is active. "
            "You can now be assigned to tours.</p>",
        ),
    )


def guide_rejected(full_name: str, reason: str) -> Mail:
    return Mail(
        "Guide application update - action required",
        _wrap(
            "Guide application update",
            f"<p>Hello {escape(full_name)},</p>"
            "<p>Unfortunately we are unable to approve your guide application at this time.</p>"
            f"<p><strong>Reason:</strong> {escape(reason)}</p>"
            "<p>You can upload corrected documents from your dashboard to be reviewed again.</p>",
        ),
    )


def guide_assignment(guide_name: str, package_name: str, travel_date: date, booking_ref: str) -> Mail:
    return Mail(
        f"New tour assignment - {BRAND}",
        _wrap(
            "New tour assignment",
            f"<p>Hello {escape(guide_name)},</p>"
            "<p>You have been assigned to a new tour:</p><ul>"
            f"<li><strong>Package:</strong> {escape(package_name)}</li>"
            f"<li><strong>Travel date:</strong> {travel_date.isoformat()}</li>"
            f"<li><strong>Booking reference:</strong> {escape(booking_ref)}</li></ul>",
        ),
    )


def tourist_guide_assigned(guide_name: str, guide_contact: str | None, package_name: str, travel_date: date) -> Mail:
    return Mail(
        f"Tour guide assigned - {BRAND}",
        _wrap(
            "Tour guide assigned",
            "<p>Great news! A tour guide has been assigned to your booking.</p><ul>"
            f"<li><strong>Guide:</strong> {escape(guide_name)}</li>"
            f"<li><strong>Contact:</strong> {escape(guide_contact or 'Available in dashboard')}</li>"
            f"<li><strong>Package:</strong> {escape(package_name)}</li>"
            f"<li><strong>Travel date:</strong> {travel_date.isoformat()}</li></ul>"
            "<p>Your guide will contact you before your tour date.</p>",
        ),
    )


def email_verification(link: str, expires_hours: int = 24) -> Mail:
    return Mail(
        f"Verify your email - {BRAND}",
        _wrap(
            "Confirm your email address",
            f"<p>Welcome to {BRAND}! Please confirm your email address:</p>"
            f"<p><a href=\"{escape(link, quote=True)}\">Verify email</a></p>"
            f"<p>The link expires in {expires_hours} hours.</p>",
        ),
    )


def password_reset(link: str) -> Mail:
    return Mail(
        f"Reset your password - {BRAND}",
        _wrap(
            "Password reset",
            "<p>We received a request to reset your password.</p>"
            f"<p><a href=\"{escape(link, quote=True)}\">Choose a new password</a></p>"
            "<p>If you did not ask for this, you can ignore this email.</p>",
        ),
    )
