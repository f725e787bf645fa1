"""
Database initialization script.

Enables pgvector, creates all tables and lists them for verification.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text

from licitaradar.db.models import Base
from licitaradar.db.session import create_db_engine


def init_database(engine):
    """Create all database tables."""
    print("Creating database tables...")
    if engine.dialect.name == "postgresql":
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    Base.metadata.create_all(engine)
    print("Tables created successfully.")


def list_tables(engine):
    """List all tables in the database."""
    tables = inspect(engine).get_table_names()
    print("\nDatabase tables:")
    for table in sorted(tables):
        print(f"  - {table}")
    return tables


if __name__ == "__main__":
    engine = create_db_engine()
    init_database(engine)

    tables = list_tables(engine)
    expected = ["procurement_records", "sync_runs", "document_chunks", "relevance_votes"]
    missing = [t for t in expected if t not in tables]
    if missing:
        print(f"\nWarning: Missing tables: {missing}")
        sys.exit(1)
    print("\nAll tables present. Database is ready.")
