import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from cafm.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Transactional mail for account lifecycle events"""

    def __init__(self):
        self.smtp_server = settings.smtp_server
        self.smtp_port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.sender = settings.mail_from

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_server and self.username and self.password)

    def send_password_reset(self, recipient_email: str, full_name: str, token: str) -> bool:
        link = f"{settings.frontend_url}/reset-password?token={token}"
        minutes = settings.password_reset_expire_minutes
        text = (
            f"Hello {full_name},\n\n"
            f"We received a request to reset your CAFM password.\n"
            f"Use the link below within {minutes} minutes:\n\n{link}\n\n"
            f"If you did not request this, you can ignore this email."
        )
        html = (
            f"<p>Hello {full_name},</p>"
            f"<p>We received a request to reset your CAFM password. "
            f"The link below expires in {minutes} minutes.</p>"
            f"<p><a href=\"{link}\">Reset password</a></p>"
            f"<p>If you did not request this, you can ignore this email.</p>"
        )
        return self._send(recipient_email, "Reset your CAFM password", text, html)

    def send_welcome(self, recipient_email: str, full_name: str, temporary_password: str) -> bool:
        text = (
            f"Hello {full_name},\n\n"
            f"An account has been created for you on CAFM.\n"
            f"Temporary password: {temporary_password}\n\n"
            f"Please sign in at {settings.frontend_url} and change it right away."
        )
        return self._send(recipient_email, "Welcome to CAFM", text)

    def _send(self, recipient_email: str, subject: str, text: str, html: str = None) -> bool:
        if not self.is_configured:
            logger.info(f"SMTP not configured, skipping '{subject}' email to {recipient_email}")
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = recipient_email
        msg.attach(MIMEText(text, 'plain'))
        if html:
            msg.attach(MIMEText(html, 'html'))

        try:
            server = smtplib.SMTP(self.smtp_server, self.smtp_port)
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.sender, recipient_email, msg.as_string())
            server.quit()
            logger.info(f"Email '{subject}' sent to {recipient_email}")
            return True
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error sending '{subject}' to {recipient_email}: {e}")
            return False


email_service = EmailService()
