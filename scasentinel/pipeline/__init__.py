"""Analysis pipeline — phases, stage contracts and the scan engine."""
