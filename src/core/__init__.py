"""Core domain package for telehook.

Core contains routing, identity, media, delivery orchestration, and the
connection lifecycle without any Telegram or Discord-specific code; adapters
plug in through the protocols in core.ports.
"""
