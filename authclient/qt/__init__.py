"""
Qt integration for the Auth Session Client.

This package republishes session state changes as Qt signals so widgets can
react to login and logout without polling.
"""

from .session_bridge import SessionStateBridge

__all__ = ['SessionStateBridge']
