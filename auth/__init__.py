"""
auth — Session-based user authentication.

Provides:
  • Password hashing (bcrypt, configurable cost)
  • Opaque session tokens with fixed expiry
  • ``AuthService``: register / login / logout / resolve
  • Register / Login / Logout / Me API routes
  • ``get_current_user`` and ``require_admin`` FastAPI dependencies
"""
