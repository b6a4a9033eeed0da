"""Relational schema."""
