"""Host adapters — package database and user database."""
