"""
Unregistry - a private file and Docker image storage service.

Server and client ship in one package:
- core: Framework-agnostic object model (namespaces, name rules)
- infrastructure: Object storage backends
- api: FastAPI routes and dependencies
- config: Server configuration
- client: HTTP client, streaming transfer pipeline, and CLI
"""

__version__ = "0.1.0"
