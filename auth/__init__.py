"""
auth — Account authentication module.

Provides:
  • Access / refresh token issuance & verification (``TokenIssuer``)
  • Password hashing (bcrypt)
  • Refresh-token session store with rotation
  • Login / refresh / logout API routes
  • ``get_authenticated_account`` FastAPI dependency
"""
