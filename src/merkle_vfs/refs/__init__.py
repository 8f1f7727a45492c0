"""
Ref table: mutable named pointers into the object store, with change notification.
"""

from .ref_table import RefInfo, RefListener, RefTable, check_ref_name

__all__ = ['RefInfo', 'RefListener', 'RefTable', 'check_ref_name']
