"""
FastAPI application for the Excel sections system.

This package contains the REST API for uploading the template workbook and
reading its configured key/value sections.
"""

__version__ = "1.0.0"
