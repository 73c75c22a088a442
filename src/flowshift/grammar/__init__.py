"""Closed node families for the origin (Flow) and target (TypeScript) type grammars."""
