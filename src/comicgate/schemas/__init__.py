"""Pydantic models shared by the services and the HTTP surface."""
