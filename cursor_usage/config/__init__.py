"""
Configuration and credentials.
"""
