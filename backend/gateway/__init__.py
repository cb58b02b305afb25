"""
Drive upload gateway.

Accepts multipart uploads over HTTP, writes every field to the local data
folder and forwards the same bytes to a shared Google Drive folder.
"""

__version__ = "0.1.0"
