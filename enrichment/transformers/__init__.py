"""
Pure helpers for pulling identifiers and reference keys out of dump payloads.
"""
