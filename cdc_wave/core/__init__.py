"""Core wave planning logic."""

from cdc_wave.core.grouping import SourceGroup, TableMetadata, group_tables
from cdc_wave.core.layout import Layout, LayoutMode

__all__ = ["Layout", "LayoutMode", "SourceGroup", "TableMetadata", "group_tables"]
