"""Rewriting of Flow-annotated syntax trees into TypeScript ones."""
