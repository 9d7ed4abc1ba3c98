"""
casebot - Centax Online case research client

Searches and downloads case documents, renders them to PDF and ranks them
against a described legal situation with a language model.
"""

__version__ = "0.1.0"
