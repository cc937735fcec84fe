from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from cafm.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": settings.db_echo}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "echo": settings.db_echo,
    }


engine = create_engine(settings.database_connection_url, **_engine_kwargs(settings.database_connection_url))


# Ensure search_path is set to public schema for PostgreSQL
@event.listens_for(engine, "connect")
def set_search_path(dbapi_connection, connection_record):
    if engine.dialect.name != "postgresql":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("SET search_path TO public")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def apply_tenant_setting(db, company_id) -> bool:
    """Push the tenant id into the Postgres session for row level security policies."""
    if db.get_bind().dialect.name != "postgresql":
        return False
    value = str(company_id) if company_id else ""
    db.execute(text("SELECT set_config('app.current_company_id', :company_id, false)"), {"company_id": value})
    return True
