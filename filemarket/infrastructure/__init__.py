"""Infrastructure layer module.

Configuration, persistence and HTTP adapters for external collaborators.
"""
