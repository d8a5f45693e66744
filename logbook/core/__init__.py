"""Core settings, logging, database and errors."""
