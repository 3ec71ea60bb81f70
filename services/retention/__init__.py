"""
Politique de rétention des données
"""

from .data_retention import DataRetentionService, RetentionReport

__all__ = ["DataRetentionService", "RetentionReport"]
