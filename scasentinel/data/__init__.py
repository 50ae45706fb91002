"""Backing services — the CPE search index and the vulnerability database."""
