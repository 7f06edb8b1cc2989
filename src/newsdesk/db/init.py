from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from newsdesk.db import models  # noqa: F401
from newsdesk.db.base import Base

LOGGER = logging.getLogger(__name__)


def init_db(engine: Engine) -> list[str]:
    """Create the news, meta and cache tables if missing and return their names."""
    Base.metadata.create_all(bind=engine)
    tables = sorted(Base.metadata.tables)
    LOGGER.debug("Schema ready on %s: %s", engine.url.render_as_string(hide_password=True), ", ".join(tables))
    return tables
