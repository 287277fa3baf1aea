import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from functools import lru_cache

from ..core.config import get_settings
from ..core.exceptions import PermanentSendError, TransientSendError

logger = logging.getLogger(__name__)


def _is_permanent_code(code: int) -> bool:
    return 500 <= code < 600


class SmtpMailTransport:
    """
    Sends HTML mail over SMTP with STARTTLS.

    Failures are classified for the dispatcher: 5xx replies, refused
    recipients and malformed addresses raise PermanentSendError; 4xx
    replies, disconnects and network errors raise TransientSendError.
    """

    def __init__(self, server: str, port: int, username: str = "", password: str = "", timeout: float = 10.0):
        self.smtp_server = server
        self.smtp_port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    def send(self, to_email: str, subject: str, html_content: str, from_email: str) -> None:
        if not to_email or "@" not in to_email:
            raise PermanentSendError(f"Invalid recipient address: {to_email!r}")

        message = MIMEMultipart()
        message["From"] = from_email
        message["To"] = to_email
        message["Subject"] = subject

        html_part = MIMEText(html_content, "html", "utf-8")
        message.attach(html_part)

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(message)
        except smtplib.SMTPRecipientsRefused as e:
            codes = [code for code, _ in e.recipients.values()]
            if codes and all(_is_permanent_code(code) for code in codes):
                raise PermanentSendError(f"Recipient refused: {e.recipients}") from e
            raise TransientSendError(f"Recipient temporarily refused: {e.recipients}") from e
        except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError) as e:
            raise TransientSendError(f"SMTP connection failed: {e}") from e
        except smtplib.SMTPResponseException as e:
            if _is_permanent_code(e.smtp_code):
                raise PermanentSendError(f"SMTP {e.smtp_code}: {e.smtp_error!r}") from e
            raise TransientSendError(f"SMTP {e.smtp_code}: {e.smtp_error!r}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransientSendError(f"Error sending email: {e}") from e

        logger.info(f"Email sent successfully to {to_email}")


@lru_cache
def get_mail_transport() -> SmtpMailTransport:
    settings = get_settings()
    return SmtpMailTransport(
        server=settings.MAIL_SERVER,
        port=settings.MAIL_PORT,
        username=settings.MAIL_USERNAME,
        password=settings.MAIL_PASSWORD,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
    )
