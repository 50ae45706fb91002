from scasentinel.engines.vulnerability.lookup import VulnerabilityLookup

__all__ = ["VulnerabilityLookup"]
