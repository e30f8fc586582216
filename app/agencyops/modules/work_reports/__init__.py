"""
Work reports: daily time entries per user.

Admins and super admins see every report; other roles only their own.
"""
