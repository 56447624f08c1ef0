"""School Library - borrowing engine for a school library

This package contains:
- Borrowing, return, overdue sweep and blacklist services (services/)
- SQLite and in-memory storage backends (stores/)
- Catalog and read facade (library.py)
- HTTP API (api.py)
- CLI interface (cli.py)
"""

from .errors import LibraryError
from .library import SchoolLibrary

__version__ = "1.0.0"

__all__ = ["LibraryError", "SchoolLibrary", "__version__"]
