"""Diabetify prediction job orchestrator."""
