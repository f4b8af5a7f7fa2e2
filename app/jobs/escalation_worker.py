import logging
import threading
from collections.abc import Callable

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import CycleInProgressError
from app.db.session import get_session_factory
from app.services.condition_evaluator import ThresholdResolver
from app.services.escalation_service import EscalationOutcome, EscalationService
from app.services.notification_service import EscalationNotifier

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTION_INTERVAL_SECONDS = 3600
PILOT_OVERRIDE_MAX_INTERVAL_SECONDS = 30


def resolve_worker_interval(settings: Settings) -> tuple[int, str]:
    configured = settings.escalation_worker_interval_seconds
    if settings.test_override_enabled:
        if 0 < configured < PILOT_OVERRIDE_MAX_INTERVAL_SECONDS:
            return configured, "pilot override"
        return PILOT_OVERRIDE_MAX_INTERVAL_SECONDS, "pilot override"
    if configured > 0:
        return configured, "configured"
    return DEFAULT_PRODUCTION_INTERVAL_SECONDS, "production"


def log_runtime_overrides(settings: Settings, interval_seconds: int, interval_reason: str) -> None:
    if interval_reason == "pilot override":
        logger.warning("[PILOT INTERVAL] Escalation worker interval %ss (capped for test override)", interval_seconds)
    else:
        logger.info("Escalation worker interval %ss (%s)", interval_seconds, interval_reason)
    if settings.test_override_enabled:
        logger.warning("[TEST OVERRIDE] ENABLED: SLA %s minutes for every rule", settings.test_escalation_override_minutes)
    else:
        logger.info("Test escalation override disabled")
    if settings.pilot_dry_run:
        logger.warning("[DRY RUN] Escalations are labelled as dry-run attempts")


class EscalationWorker:
    """Periodic escalation loop on a background thread.

    ``start`` runs one cycle immediately and then one per interval until
    ``stop`` is called. ``stop`` returns after the in-flight cycle finished.
    """

    def __init__(
        self,
        interval_seconds: float,
        session_factory: Callable[[], Session] | None = None,
        threshold_resolver: ThresholdResolver | None = None,
        notifier: EscalationNotifier | None = None,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory or get_session_factory()
        self.threshold_resolver = threshold_resolver
        self.notifier = notifier
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.cycles_completed = 0
        self.last_outcomes: list[EscalationOutcome] = []

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.info("Escalation worker is already running")
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="escalation-worker", daemon=True)
        self._thread.start()
        logger.info("Escalation worker started (interval: %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        if self._thread is None:
            return
        logger.info("Stopping escalation worker...")
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Escalation worker did not stop within %ss", timeout)
            return
        self._thread = None
        logger.info("Escalation worker stopped")

    def run_once(self) -> list[EscalationOutcome]:
        db = self.session_factory()
        try:
            service = EscalationService(db, threshold_resolver=self.threshold_resolver, notifier=self.notifier)
            outcomes = service.process_escalations(wait=False)
        except CycleInProgressError:
            logger.info("Previous escalation cycle still running; skipping this tick")
            return []
        finally:
            db.close()
        self.cycles_completed += 1
        self.last_outcomes = outcomes
        return outcomes

    def _run(self) -> None:
        while True:
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("Error processing escalations")
            # Event.wait doubles as the interval sleep and the stop signal.
            if self._stop_event.wait(self.interval_seconds):
                return
