"""
Database module for the Library Management API

Contains seed data and database utilities.
"""
from app.db.seed_data import seed_all, seed_reference_data, clear_all

__all__ = ["seed_all", "seed_reference_data", "clear_all"]
