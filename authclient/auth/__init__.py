"""
Authentication package for the Auth Session Client.

This package contains the session manager that owns the authentication state
and the key-value stores that keep issued tokens across restarts.
"""
