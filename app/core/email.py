"""
Email transport for signature codes and workflow notifications
File: app/core/email.py
Sends through fastapi-mail when SMTP credentials are configured
"""

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig
from typing import Dict, List, Optional
import html
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Check if email credentials are configured
EMAIL_CONFIGURED = settings.mail_configured

# Email configuration (only if credentials are available)
conf = None
fm = None

if EMAIL_CONFIGURED:
    try:
        conf = ConnectionConfig(
            MAIL_USERNAME=settings.MAIL_USERNAME,
            MAIL_PASSWORD=settings.MAIL_PASSWORD,
            MAIL_FROM=settings.MAIL_FROM,
            MAIL_FROM_NAME=settings.MAIL_FROM_NAME,
            MAIL_PORT=settings.MAIL_PORT,
            MAIL_SERVER=settings.MAIL_SERVER,
            MAIL_STARTTLS=settings.MAIL_STARTTLS,
            MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
            USE_CREDENTIALS=True,
            VALIDATE_CERTS=True
        )
        fm = FastMail(conf)
        logger.info(" Email service configured successfully")
    except Exception as e:
        logger.warning(f" Email configuration failed: {str(e)}")
        EMAIL_CONFIGURED = False
else:
    logger.warning(" Email credentials not found in environment. Email OTP delivery is disabled.")


def is_email_configured() -> bool:
    return EMAIL_CONFIGURED and fm is not None


def build_email_html(content: Dict[str, str], highlight: Optional[str] = None) -> str:
    """
    Wrap rendered template parts (greeting, message, footer) in the HTML layout.
    `highlight` is shown in a large code box, used for verification codes.
    """
    greeting = html.escape(content.get("greeting", ""))
    message = html.escape(content.get("message", ""))
    footer = html.escape(content.get("footer", ""))
    code_block = ""
    if highlight:
        code_block = f'<div class="code">{html.escape(highlight)}</div>'

    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .header {{ background: linear-gradient(135deg, #2762cb 0%, #73B4E0 100%);
                       color: white; padding: 30px; text-align: center; border-radius: 8px 8px 0 0; }}
            .content {{ background: #f8f9fa; padding: 30px; border-radius: 0 0 8px 8px; }}
            .code {{ font-size: 32px; font-weight: bold; letter-spacing: 8px; text-align: center;
                     background: #e9ecef; padding: 15px; border-radius: 4px; margin: 20px 0; }}
            .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 12px; padding: 20px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>{html.escape(settings.APP_NAME)}</h1>
            </div>
            <div class="content">
                <h2 style="color: #2762cb;">{greeting}</h2>
                <p style="font-size: 16px;">{message}</p>
                {code_block}
                <p>{footer}</p>
            </div>
            <div class="footer">
                <p>This is an automated email. Please do not reply.</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(recipients: List[str], subject: str, html_body: str) -> None:
    """
    Send an HTML email. Raises RuntimeError when email is not configured;
    transport errors from fastapi-mail propagate to the caller.
    """
    if not is_email_configured():
        raise RuntimeError("Email service is not configured. Please set MAIL_USERNAME and MAIL_PASSWORD.")

    message = MessageSchema(
        subject=subject,
        recipients=recipients,
        body=html_body,
        subtype="html"
    )
    await fm.send_message(message)
    logger.info(f" Email '{subject}' sent to {len(recipients)} recipient(s)")
