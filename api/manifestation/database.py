import logging
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL, MIGRATIONS_DIR

logger = logging.getLogger(__name__)


def build_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    eng = create_engine(url, future=True, connect_args=connect_args)
    if url.startswith("sqlite"):
        @event.listens_for(eng, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


def build_session_factory(url: str):
    return sessionmaker(bind=build_engine(url), autoflush=False, autocommit=False, future=True)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def resolve_migrations_dir() -> Path:
    local_dir = Path(__file__).resolve().parents[1] / "migrations"
    migrations_dir = Path(MIGRATIONS_DIR) if MIGRATIONS_DIR else local_dir
    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(
            "Migrations directory not found. Checked: "
            f"MIGRATIONS_DIR={MIGRATIONS_DIR or '<unset>'}, {local_dir}"
        )
    return migrations_dir


def _split_statements(sql: str) -> list[str]:
    # sqlite executes a single statement per call
    return [stmt.strip() for stmt in sql.split(";") if stmt.strip()]


def run_migrations(session_factory=None, migrations_dir: Path | None = None) -> list[str]:
    factory = session_factory or SessionLocal
    directory = migrations_dir or resolve_migrations_dir()
    files = sorted([f.name for f in directory.iterdir() if f.is_file() and f.suffix == ".sql"])
    applied_now: list[str] = []
    with factory() as db:
        db.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS _migrations (
                  id INTEGER PRIMARY KEY,
                  name TEXT NOT NULL UNIQUE,
                  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        )
        applied = {row["name"] for row in db.execute(text("SELECT name FROM _migrations")).mappings().all()}
        for fname in files:
            if fname in applied:
                continue
            sql = (directory / fname).read_text(encoding="utf-8")
            for stmt in _split_statements(sql):
                db.execute(text(stmt))
            db.execute(text("INSERT INTO _migrations (name) VALUES (:name)"), {"name": fname})
            applied_now.append(fname)
            logger.info("[migrations] applied %s", fname)
        db.commit()
    return applied_now
