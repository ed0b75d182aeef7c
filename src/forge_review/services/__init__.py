"""Clients for the model endpoint and GitHub, and the comment state store."""
