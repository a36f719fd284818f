from habitcontrol.db.base import Base, engine as default_engine
import logging

logger = logging.getLogger(__name__)


def create_tables(engine=None):
    """Create the habit tables if they do not exist yet"""
    # Import models to ensure they're registered on Base.metadata
    from habitcontrol.models import habit  # noqa: F401

    bind = engine or default_engine
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating tables: {e}")
        raise
