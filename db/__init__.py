"""Persistence layer: ORM models, engine/session helpers and seed data."""
