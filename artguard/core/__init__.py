"""Core pipeline: types, failures, staging and the duplicate guard."""
