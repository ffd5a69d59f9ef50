from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base; constraint names follow ``NAMING_CONVENTION`` so migrations stay stable."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# Import models so Alembic autogenerate sees every table.
try:  # pragma: no cover - import side effects only
    import repaircoin_api.models  # noqa: F401
except ImportError:  # pragma: no cover - partial installs during migrations
    pass
