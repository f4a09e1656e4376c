"""Magz core package.

Modules:
- scanner: library discovery, incremental diffing, worker pool
- archive: zip/rar/directory containers, page order, cover selection
- thumbnails: cover thumbnail pipeline (embedded data URIs)
- repository: SQLite cache store
- library: read-path services and thumbnail backfill
- api: FastAPI app and routing
- monitor: periodic auto refresh
- config: INI parsing and config object
"""

__version__ = "0.1.0"
