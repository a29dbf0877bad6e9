"""Core infrastructure: exceptions, logging and background loops."""
