"""
qa_rbac: role-based access control core for the Q&A platform.

Permissions, roles and temporal user-role assignments persisted on either
MongoDB or PostgreSQL behind one data-access contract, with effective
permission resolution on top.
"""

__version__ = '1.0.0'
