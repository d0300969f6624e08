"""
connectors — OAuth integration module for external services.

Provides a generic connector framework that handles:
  • OAuth2 auth-URL generation with an opaque, optionally signed state
  • Callback handling (code → token exchange)
  • AES-256-CBC encryption of tokens at rest
  • Per-provider project listing normalized into one shape
  • Local disconnect

Each provider (GitHub, Notion, Slack, …) is a subclass of BaseConnector.
"""
