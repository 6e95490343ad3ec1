"""Shared library code: exceptions, error notices, logging, resilience."""
