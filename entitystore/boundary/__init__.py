"""
Boundary layer for external system integrations.

Handles all interactions with store backends.
Provides adapters and clients for infrastructure dependencies.
"""
