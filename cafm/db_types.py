"""
Column types bridging domain enums and database values.
"""
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class EnumType(TypeDecorator):
    """Store a DbEnum by its db value and read rows back case-insensitively.

    Postgres enum columns created by older migrations hold mixed case values,
    so reads go through ``from_db_value`` instead of a strict lookup.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_cls, length: int = 50, **kwargs):
        self.enum_cls = enum_cls
        super().__init__(length, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls.from_db_value(value).db_value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls.from_db_value(value)
