from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.init_db import init_db
from app.db.session import get_session_factory
from app.services.escalation_service import EscalationService
from app.services.notification_service import EscalationNotifier


def run_escalations() -> dict:
    configure_logging(get_settings().log_level)
    session = get_session_factory()()
    notifier = EscalationNotifier()
    try:
        init_db(session)
        outcomes = EscalationService(session, notifier=notifier).process_escalations()
        return {
            "processed": len(outcomes),
            "escalated": sum(1 for outcome in outcomes if outcome.escalated),
            "results": [f"{outcome.complaint_id}: {outcome.outcome} - {outcome.reason}" for outcome in outcomes],
        }
    finally:
        notifier.shutdown(wait=True)
        session.close()


if __name__ == "__main__":
    print(run_escalations())
