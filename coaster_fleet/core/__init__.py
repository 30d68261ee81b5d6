"""
Configuration, record types and errors shared by every component.
"""
