import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import Authority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorityView:
    authority_id: int
    name: str
    department_id: int
    location_id: int
    pincode: str | None
    level: int
    email: str | None


class AuthorityResolver:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_authority(
        self,
        department_id: int,
        location_id: int,
        level: int,
        pincode: str | None = None,
    ) -> AuthorityView | None:
        base = (
            select(Authority)
            .where(
                Authority.department_id == department_id,
                Authority.level == level,
                Authority.is_active.is_(True),
            )
            .order_by(Authority.id.asc())
            .limit(1)
        )

        authority = None
        if pincode:
            authority = self.db.scalar(base.where(Authority.pincode == pincode))
        if authority is None:
            authority = self.db.scalar(base.where(Authority.location_id == location_id))

        if authority is None:
            logger.warning(
                "No authority for department=%s location=%s pincode=%s level=%s; escalation deferred",
                department_id,
                location_id,
                pincode,
                level,
            )
            return None

        return AuthorityView(
            authority_id=authority.id,
            name=authority.name,
            department_id=authority.department_id,
            location_id=authority.location_id,
            pincode=authority.pincode,
            level=authority.level,
            email=authority.email,
        )
