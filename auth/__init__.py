"""
auth — caller identity for the integrations API.

Provides:
  • HMAC-signed bearer token verification
  • ``get_current_user_id`` FastAPI dependency
"""
