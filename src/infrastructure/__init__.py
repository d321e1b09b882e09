"""
infrastructure - Concrete implementations of domain ports.

Contains all vendor-specific code: LangChain chat models, SQLite persistence,
environment configuration. Depends on domain/ only (implements ports).
"""
