import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduling.core import config


logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    if database_url.startswith('sqlite'):
        return create_engine(database_url, connect_args={'check_same_thread': False})
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(bind)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('end_time', 'ALTER TABLE appointments ADD COLUMN end_time TIMESTAMP'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
            ('deleted_at', 'ALTER TABLE appointments ADD COLUMN deleted_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_start ON appointments(provider_id, start_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_location_start ON appointments(location_id, start_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status_start ON appointments(status, start_time)')
            )

        if bind.dialect.name == 'postgresql':
            _ensure_provider_exclusion_constraint(bind)

        _appointment_schema_checked = True


def _ensure_provider_exclusion_constraint(bind: Engine) -> None:
    # Storage-level backstop for non-overlapping provider appointments.
    try:
        with bind.begin() as connection:
            connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
            exists = connection.execute(
                text("SELECT 1 FROM pg_constraint WHERE conname = 'appointments_provider_no_overlap'")
            ).first()
            if exists is None:
                connection.execute(
                    text(
                        'ALTER TABLE appointments ADD CONSTRAINT appointments_provider_no_overlap '
                        'EXCLUDE USING gist (provider_id WITH =, tsrange(start_time, end_time) WITH &&) '
                        "WHERE (status <> 'CANCELLED' AND deleted_at IS NULL)"
                    )
                )
    except SQLAlchemyError:
        logger.exception('Could not add the provider overlap exclusion constraint; relying on advisory locks only.')
