"""Google Sheets -> Supabase (PostgreSQL) order migrator."""

__version__ = "0.3.0"
