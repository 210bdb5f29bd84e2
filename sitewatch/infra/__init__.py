"""
Infrastructure adapters: HTTP, scheduling and storage.
"""
