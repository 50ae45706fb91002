from scasentinel.engines.evidence.loader import load_evidence, parse_evidence

__all__ = ["load_evidence", "parse_evidence"]
