from scasentinel.engines.filters.false_positive import FalsePositiveFilter
from scasentinel.engines.filters.version_filter import VersionFilter

__all__ = ["FalsePositiveFilter", "VersionFilter"]
