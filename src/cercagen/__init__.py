"""
cercagen - bulk ingestion and indexing of genealogical transcriptions

Loads user-authored CSV import templates, ingests parish and civil register
transcriptions through them, and keeps the derived data (demography and
name-frequency roll-ups, book indexing progress, search documents and user
achievements) consistent with each record's moderation status.
"""

__version__ = "0.1.0"
__author__ = "cercagen contributors"
