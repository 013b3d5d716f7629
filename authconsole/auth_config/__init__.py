"""
Storage and access control for tenant authentication configuration.
"""
