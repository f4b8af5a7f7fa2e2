import logging
from concurrent.futures import Future, ThreadPoolExecutor

from app.core.config import get_settings
from app.integrations.email_client import EmailClient
from app.services.authority_resolver import AuthorityView
from app.services.escalation_executor import EscalationRecordView

logger = logging.getLogger(__name__)


class EscalationNotifier:
    """Sends escalation and reminder e-mails off the escalation thread.

    Only called after the escalation transaction committed; a failed send is
    logged and never reflected in the escalation outcome.
    """

    def __init__(self, email: EmailClient | None = None) -> None:
        self.settings = get_settings()
        self.email = email or EmailClient()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="escalation-notify")

    def notify_escalation(
        self,
        complaint_number: str,
        record: EscalationRecordView,
        authority: AuthorityView,
        dry_run: bool = False,
    ) -> Future | None:
        prefix = "[DRY RUN] " if dry_run else ""
        subject = f"{prefix}[Escalation L{record.to_level}] Complaint {complaint_number}"
        body = "\n".join(
            [
                f"Complaint: {complaint_number}",
                f"Escalation level: {record.from_level} -> {record.to_level}",
                f"Assigned authority: {authority.name} (department {authority.department_id})",
                f"Reason: {record.reason}",
            ]
        )
        return self._submit(subject, body, authority.email)

    def notify_reminder(self, complaint_number: str, reason: str, to_address: str | None = None) -> Future | None:
        subject = f"[Reminder] Complaint {complaint_number} awaiting action"
        body = "\n".join([f"Complaint: {complaint_number}", f"Reason: {reason}"])
        return self._submit(subject, body, to_address)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _submit(self, subject: str, body: str, to_address: str | None) -> Future | None:
        if not self.settings.escalation_notifications_enabled:
            return None
        try:
            return self._executor.submit(self._send, subject, body, to_address)
        except RuntimeError:
            logger.warning("Notifier already shut down; dropping notification %r", subject)
            return None

    def _send(self, subject: str, body: str, to_address: str | None) -> None:
        try:
            self.email.send(subject=subject, body=body, to_address=to_address)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Escalation notification failed; escalation already committed: %s", exc)
