"""DoseWatch: missed-medication escalation service."""
