"""Shared infrastructure: exceptions, logging and API schemas."""
