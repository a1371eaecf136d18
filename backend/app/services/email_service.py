"""
Email Service for the Library Management API
============================================
Handles all email sending functionality including:
- OTP codes (password reset, verification)
- Welcome emails on registration
- Loan confirmations, due date reminders and overdue notices
- Reservation confirmations and pickup notices
- Account status changes

Delivery is over SMTP with aiosmtplib. When SMTP credentials are missing the
service logs a warning and reports the email as not sent.
"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional, List, Dict, Any, Tuple, Union
from datetime import datetime, date

from app.core.config import settings
from app.core.logging_config import logger


class EmailService:
    """Async email service using SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured"""
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email asynchronously.

        Returns True if successful, False otherwise.
        """
        if not self.is_configured:
            logger.warning(f"[Email] Email service not configured, skipping email to {to_email}")
            return False

        try:
            message = MIMEMultipart("alternative")
            message["From"] = f"{self.from_name} <{self.from_email}>"
            message["To"] = to_email
            message["Subject"] = subject

            # Plain text version first so clients prefer the HTML part
            if text_content:
                message.attach(MIMEText(text_content, "plain"))
            message.attach(MIMEText(html_content, "html"))

            # Port 465 speaks implicit TLS, everything else upgrades with STARTTLS
            implicit_tls = self.smtp_port == 465
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
            )

            logger.info(f"[Email/SMTP] Successfully sent email to {to_email}: {subject}")
            return True

        except Exception as e:
            logger.error(f"[Email/SMTP] Failed to send email to {to_email}: {e}")
            return False

    def _layout(self, heading: str, body_html: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <style>
                body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background: #1e3a8a; color: white; padding: 24px; text-align: center; border-radius: 10px 10px 0 0; }}
                .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px; }}
                .code {{ font-size: 32px; letter-spacing: 8px; font-weight: 700; text-align: center; color: #1e3a8a; margin: 20px 0; }}
                .footer {{ text-align: center; margin-top: 30px; font-size: 12px; color: #6b7280; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>{escape(heading)}</h1></div>
                <div class="content">{body_html}</div>
                <div class="footer">
                    <p>&copy; {datetime.utcnow().year} {escape(self.from_name)}</p>
                </div>
            </div>
        </body>
        </html>
        """

    async def send_otp_email(self, to_email: str, code: str, expiry_minutes: int, purpose: str = "PASSWORD_RESET") -> bool:
        """Send a one-time code"""
        action = "reset your password" if purpose == "PASSWORD_RESET" else "verify your request"
        subject = "Your verification code"

        html_content = self._layout(
            "Verification code",
            f"""
            <p>Use the code below to {action}:</p>
            <div class="code">{escape(code)}</div>
            <p>The code expires in {expiry_minutes} minutes. If you did not request it, you can ignore this email.</p>
            """,
        )
        text_content = (
            f"Use this code to {action}: {code}\n"
            f"The code expires in {expiry_minutes} minutes."
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_welcome_email(self, to_email: str, user_name: str) -> bool:
        """Send welcome email after registration"""
        subject = f"Welcome to {self.from_name}"
        login_url = f"{self.frontend_url.rstrip('/')}/login"

        html_content = self._layout(
            "Welcome!",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>Your library account is ready. You can now browse the catalog, reserve books and read ebooks online.</p>
            <p><a href="{login_url}">Sign in to your account</a></p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"Your library account is ready. Sign in at {login_url}"
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    @staticmethod
    def _title_list(book_titles: List[str]) -> Tuple[str, str]:
        """(html list, plain text list)"""
        html_items = "".join(f"<li>{escape(t)}</li>" for t in book_titles)
        return f"<ul>{html_items}</ul>", "\n".join(f"- {t}" for t in book_titles)

    async def send_borrow_reminder_email(
        self,
        to_email: str,
        user_name: str,
        book_titles: List[str],
        due_date: date
    ) -> bool:
        """Remind a reader that a loan is due soon"""
        subject = "Reminder: your borrowed books are due soon"
        due = due_date.strftime("%d/%m/%Y")
        items_html, items_text = self._title_list(book_titles)

        html_content = self._layout(
            "Return reminder",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>The following books are due on <strong>{due}</strong>:</p>
            {items_html}
            <p>Please return or renew them before the due date to avoid late fees.</p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"The following books are due on {due}:\n{items_text}"
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_loan_email(
        self,
        to_email: str,
        user_name: str,
        book_titles: List[str],
        due_date: date
    ) -> bool:
        """Confirm a new loan at the desk"""
        subject = "Book Loan Confirmation"
        due = due_date.strftime("%d/%m/%Y")
        items_html, items_text = self._title_list(book_titles)
        loans_url = f"{self.frontend_url.rstrip('/')}/my-borrows"

        html_content = self._layout(
            "Book loan confirmed",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>You have borrowed:</p>
            {items_html}
            <p>Please return them by <strong>{due}</strong> to avoid late fees.</p>
            <p><a href="{loans_url}">View your loans</a></p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"You have borrowed:\n{items_text}\n\n"
            f"Please return them by {due}. Your loans: {loans_url}"
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_overdue_email(
        self,
        to_email: str,
        user_name: str,
        book_titles: List[str],
        due_date: date,
        days_overdue: int,
        fine_amount: Optional[float] = None
    ) -> bool:
        """Tell a reader their loan is past due"""
        subject = "Overdue Book Notice"
        due = due_date.strftime("%d/%m/%Y")
        days = f"{days_overdue} day{'s' if days_overdue != 1 else ''}"
        items_html, items_text = self._title_list(book_titles)
        fine = f"{fine_amount:,.0f} VND" if fine_amount else ""
        fine_html = f"<p>Late fee so far: <strong>{fine}</strong></p>" if fine else ""

        html_content = self._layout(
            "Overdue notice",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>The following books were due on <strong>{due}</strong> and are now {days} overdue:</p>
            {items_html}
            {fine_html}
            <p>Please return them as soon as possible so other readers can borrow them.</p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"The following books were due on {due} and are now {days} overdue:\n{items_text}"
            + (f"\n\nLate fee so far: {fine}" if fine else "")
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_reservation_confirmation_email(
        self,
        to_email: str,
        user_name: str,
        book_title: str,
        start_date: date,
        queue_position: int
    ) -> bool:
        """Confirm a reservation that is waiting for a free copy"""
        subject = "Book Reservation Confirmation"
        start = start_date.strftime("%d/%m/%Y")

        html_content = self._layout(
            "Reservation confirmed",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>Your reservation for <strong>{escape(book_title)}</strong> from {start} is registered.</p>
            <p>You are number <strong>{queue_position}</strong> in the queue. We will let you know as soon as a copy is ready.</p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f'Your reservation for "{book_title}" from {start} is registered. '
            f"You are number {queue_position} in the queue."
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_reservation_ready_email(
        self,
        to_email: str,
        user_name: str,
        book_titles: List[str],
        pickup_deadline: date
    ) -> bool:
        """A queued reservation was approved and can be collected"""
        subject = "Your Reserved Book is Ready"
        deadline = pickup_deadline.strftime("%d/%m/%Y")
        items_html, items_text = self._title_list(book_titles)

        html_content = self._layout(
            "Your book is ready",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>Good news! Your reservation is ready for pickup at the library desk:</p>
            {items_html}
            <p>Please collect it by <strong>{deadline}</strong> or the reservation will lapse.</p>
            """,
        )
        text_content = (
            f"Hi {user_name or 'there'},\n\n"
            f"Your reservation is ready for pickup:\n{items_text}\n\n"
            f"Please collect it by {deadline}."
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_account_status_email(self, to_email: str, user_name: str, status: str) -> bool:
        """Tell a user an administrator activated or deactivated their account"""
        subject = "Account Status Update"
        active = status == "ACTIVE"
        summary = (
            "Your account has been activated. You can sign in and borrow books again."
            if active else
            "Your account has been deactivated. You will not be able to sign in until it is reactivated."
        )

        html_content = self._layout(
            "Account status update",
            f"""
            <p>Hi {escape(user_name or 'there')},</p>
            <p>{summary}</p>
            <p>If you have questions about this change, reply to <a href="mailto:{self.from_email}">{escape(self.from_email)}</a>.</p>
            """,
        )
        text_content = f"Hi {user_name or 'there'},\n\n{summary}\nQuestions: {self.from_email}"
        return await self.send_email(to_email, subject, html_content, text_content)

    async def dispatch(self, template: str, to_email: str, context: Dict[str, Any]) -> bool:
        """Send a named template with a JSON-serializable context"""
        name = context.get("user_name", "")
        if template == "otp":
            return await self.send_otp_email(
                to_email, context["code"], context.get("expiry_minutes", settings.OTP_EXPIRY_MINUTES),
                context.get("purpose", "PASSWORD_RESET"),
            )
        if template == "welcome":
            return await self.send_welcome_email(to_email, name)
        if template == "borrow_reminder":
            return await self.send_borrow_reminder_email(
                to_email, name, context.get("book_titles", []), _as_date(context["due_date"])
            )
        if template == "loan":
            return await self.send_loan_email(
                to_email, name, context.get("book_titles", []), _as_date(context["due_date"])
            )
        if template == "loan_overdue":
            return await self.send_overdue_email(
                to_email, name, context.get("book_titles", []), _as_date(context["due_date"]),
                context["days_overdue"], context.get("fine_amount"),
            )
        if template == "reservation_confirmation":
            return await self.send_reservation_confirmation_email(
                to_email, name, context["book_title"], _as_date(context["start_date"]), context["queue_position"]
            )
        if template == "reservation_ready":
            return await self.send_reservation_ready_email(
                to_email, name, context.get("book_titles", []), _as_date(context["pickup_deadline"])
            )
        if template == "account_status":
            return await self.send_account_status_email(to_email, name, context["status"])

        logger.error(f"[Email] Unknown email template: {template}")
        return False


def _as_date(value: Union[str, date]) -> date:
    # Queued contexts carry ISO strings
    return date.fromisoformat(value) if isinstance(value, str) else value


# Singleton instance
email_service = EmailService()


async def queue_email(template: str, to_email: str, context: Dict[str, Any]) -> None:
    """
    Hand an email to the task queue, or send it inline when the queue is disabled.

    Failures never propagate to the caller: an email is a side effect of the
    request, not part of it.
    """
    if settings.TASK_QUEUE_ENABLED:
        from app.modules.notifications.tasks import send_email_task

        try:
            send_email_task.delay(template, to_email, _jsonable(context))
            return
        except Exception as e:
            logger.error(f"[Email] Failed to queue {template} email for {to_email}: {e}")
            return

    await email_service.dispatch(template, to_email, context)


def _jsonable(context: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.isoformat() if isinstance(v, (date, datetime)) else v) for k, v in context.items()}
