"""
Core framework components
"""

from .framework import Framework
from .module import BaseModule
from .session import Session

__all__ = ['Framework', 'BaseModule', 'Session']
