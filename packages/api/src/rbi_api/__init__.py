"""rbi_api — Query/Access Facade for the rbi registry and its FastAPI surface."""

__version__ = "0.1.0"
