import resend
import logging
from referral_ledger.core.config import settings

logger = logging.getLogger(__name__)

def send_email(to: str, subject: str, html_content: str) -> None:
    """Sends an email using the Resend service."""
    if not settings.RESEND_API_KEY or not settings.RESEND_API_KEY.get_secret_value():
        logger.warning(f"RESEND_API_KEY is not configured. Skipping email to {to} with subject '{subject}'.")
        return

    try:
        resend.api_key = settings.RESEND_API_KEY.get_secret_value()
        params = {
            "from": settings.EMAIL_FROM_ADDRESS,
            "to": [to],
            "subject": subject,
            "html": html_content,
        }
        email = resend.Emails.send(params)
        logger.info(f"Email sent successfully to {to}. Message ID: {email['id']}")
    except Exception as e:
        logger.error(f"Failed to send email to {to}. Error: {e}")
        raise # Re-raise so the caller decides whether the failure matters

def referral_reward_email(referrer_name: str, reward_points: int, total_earnings: int, referral_code: str | None) -> tuple[str, str]:
    """Subject and HTML body for the referrer's reward email."""
    referral_link = f"{settings.FRONTEND_URL}/signup?ref={referral_code}" if referral_code else settings.FRONTEND_URL
    subject = f"You earned {reward_points} points from a referral!"
    html_content = f"""
    <p>Hi {referrer_name or "there"},</p>
    <p>Someone you referred just completed their first order, so we've added <strong>{reward_points} points</strong> to your account.</p>
    <p>You've earned {total_earnings} points from referrals so far.</p>
    <p>Keep sharing your link: <a href="{referral_link}">{referral_link}</a></p>
    <p>Enjoy the wings!<br>The Wingside Team</p>
    """
    return subject, html_content

