"""
footprint - installable-software snapshot and diff.

Takes a Pre snapshot before a system change and a Post snapshot after it,
then reports what was added and removed across services, scheduled tasks,
registry run/uninstall keys, folders, shortcuts and files.
"""

from footprint.records import CATEGORIES, RECORD_TYPES, Stage

__version__ = "1.0.0"

__all__ = ["CATEGORIES", "RECORD_TYPES", "Stage", "__version__"]
