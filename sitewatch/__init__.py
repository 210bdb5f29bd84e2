"""
sitewatch - scheduled web page watcher with change and error notifications.
"""

__version__ = "1.0.0"

DEFAULT_USERAGENT = f"sitewatch/{__version__}"
