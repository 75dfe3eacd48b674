"""
Controllers Package

Caller-facing boundary between the UI layer and the import engine services.
"""

from controllers.import_controller import ImportController

__all__ = [
    'ImportController',
]
