"""Slack integration: Web API gateway, Block Kit builders, bolt listeners.

RULES:
- All Slack actions must be ack()'d within 3 seconds
- Runs in HTTP mode (mounted in the FastAPI server) or Socket Mode
"""
