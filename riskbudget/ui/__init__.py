"""
User Interface components
"""

from .console import Console
from .commands import CommandHandler

__all__ = ['Console', 'CommandHandler']
