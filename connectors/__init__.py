"""
connectors — per-user authorization and tools for external services.

Provides a generic connector framework that handles:
  • OAuth2 auth-URL generation and Plaid link tokens
  • Callback handling (code → token exchange)
  • Per-user credential storage with single-flight refresh
  • Fernet encryption of tokens at rest
  • Schema-checked tool calls and revocation / disconnect

Each provider (Google Sheets, Plaid, …) is a subclass of BaseConnector.
"""
