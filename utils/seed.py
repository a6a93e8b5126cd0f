import logging

from models import db
from models.user import Role

logger = logging.getLogger(__name__)

# CUSTOMER books courts, OWNER runs fields and decides cancellations,
# ADMIN operates the platform
DEFAULT_ROLES = ("CUSTOMER", "OWNER", "ADMIN")


def seed_roles():
    existing = {name for (name,) in db.session.query(Role.name).all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    if not missing:
        return 0
    db.session.add_all(Role(name=name) for name in missing)
    db.session.commit()
    logger.info("Seeded roles: %s", ", ".join(missing))
    return len(missing)
