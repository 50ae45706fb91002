from scasentinel.engines.consolidation.bundling import DependencyBundler
from scasentinel.engines.consolidation.merging import DependencyMerger

__all__ = ["DependencyBundler", "DependencyMerger"]
