"""
Presentation Layer Package

HTTP routers and request dependencies (bearer authentication).
"""

from diabetify.presentation import controllers

__all__ = ["controllers"]
