"""Backend core for a notes and essays site: API schemas, SQLite migrations, entities and pooling."""

__version__ = "0.1.0"

__all__ = ["app", "db", "derive", "entities", "migrations", "schema"]