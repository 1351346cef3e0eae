"""
Object storage system clients.
"""
