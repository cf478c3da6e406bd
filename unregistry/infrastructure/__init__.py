"""
Infrastructure layer.

- storage: where object bytes live (a data directory, or memory in mock mode)
"""
