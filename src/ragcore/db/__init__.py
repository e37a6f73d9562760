"""ragcore database layer."""

from ragcore.db.connection import Database
from ragcore.db.migrations import MIGRATIONS, run_migrations
from ragcore.db.repository import Repository
from ragcore.db.schema import initialize
from ragcore.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
