import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Engine echo is off; keep SQLAlchemy's own loggers quiet unless asked.
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
