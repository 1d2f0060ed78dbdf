"""
Heirloom Integrations Package

Clients for the external inference runtime and the remote voice-cloning service.
"""
