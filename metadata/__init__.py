"""Candidate track records and cross-provider merging."""
