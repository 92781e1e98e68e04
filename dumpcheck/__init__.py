"""DumpCheck: find MySQL 8.4 upgrade blockers in 8.0 export files."""

__version__ = "1.0.0"
