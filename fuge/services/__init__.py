"""Fuge services: state holder, stores, AI advisor, reminders and review."""
