"""
Long-running service orchestration
"""

from .link_server import LinkServer

__all__ = ['LinkServer']
