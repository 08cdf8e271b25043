"""Framework integrations.

Available integrations:
- dslkit.integrations.fastapi - HTTP endpoint for operation requests
"""
