"""Unit tests for agreement between the migration, the ORM and the settings."""

import importlib.util
from pathlib import Path

from app.config import Settings, settings
from app.models import DocumentEmbedding

ROOT = Path(__file__).resolve().parents[2]
MIGRATION = ROOT / "greenor" / "alembic" / "versions" / "001_initial_schema.py"


def load_migration():
    spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_migration_vector_size_matches_settings_default() -> None:
    """Test that the migrated vector column has the default embedding size."""
    migration = load_migration()

    assert migration.EMBEDDING_DIMENSION == Settings.model_fields["embedding_dimension"].default


def test_orm_vector_size_follows_settings() -> None:
    """Test that the ORM column is sized from the configured dimension."""
    assert DocumentEmbedding.__table__.c.embedding.type.dim == settings.embedding_dimension
