from scasentinel.engines.identification.cpe import CpeIdentifier

__all__ = ["CpeIdentifier"]
