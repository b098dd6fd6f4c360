from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def value_enum(enum_cls, name: str) -> SQLEnum:
    """Enum column that persists the lower-case ``.value`` rather than the member name."""
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])
