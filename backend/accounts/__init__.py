# accounts/__init__.py
"""
Accounts app - Authentication and authorization for the ledger.

This app provides:
- User: Custom email-login user model (also the salary ledger's employee)
- AccessPermission: Fine-grained permission codes
- UserAccess: A user's role plus explicit permission grants
- ActorContext: Authorization context utilities
"""
