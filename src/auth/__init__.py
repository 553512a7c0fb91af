"""
Authentication Module

Staff accounts, JWT login and role-based permissions.

Key Components:
- utils.py: Password hashing (passlib/bcrypt) and JWT encoding (PyJWT)
- permissions.py: Staff roles and the permission map
- service.py: Staff account management and authentication
- dependencies.py: get_current_user and require_permission FastAPI dependencies
- router.py: Login, current user and staff account endpoints
"""
