"""
Database connection backends.
"""
