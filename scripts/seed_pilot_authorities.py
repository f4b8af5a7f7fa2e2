from sqlalchemy import select

from app.db.init_db import init_db
from app.db.models import Authority
from app.db.session import get_session_factory

# (department_id, location_id, level, name, email)
PILOT_AUTHORITIES = [
    (1, 1, 1, "Assistant Engineer, Public Works", "ae-pwd@example.gov.in"),
    (1, 1, 2, "Executive Engineer, Public Works", "ee-pwd@example.gov.in"),
    (1, 1, 3, "Superintending Engineer, Public Works", "se-pwd@example.gov.in"),
    (2, 1, 1, "Sanitary Inspector", "si-health@example.gov.in"),
    (2, 1, 2, "Municipal Health Officer", "mho@example.gov.in"),
    (2, 1, 3, "Commissioner", "commissioner@example.gov.in"),
]


def run() -> None:
    session = get_session_factory()()
    try:
        init_db(session)
        for department_id, location_id, level, name, email in PILOT_AUTHORITIES:
            existing = session.scalar(
                select(Authority).where(
                    Authority.department_id == department_id,
                    Authority.location_id == location_id,
                    Authority.level == level,
                )
            )
            if existing:
                continue
            session.add(
                Authority(
                    name=name,
                    department_id=department_id,
                    location_id=location_id,
                    level=level,
                    email=email,
                )
            )
        session.commit()
    finally:
        session.close()


if __name__ == "__main__":
    run()
