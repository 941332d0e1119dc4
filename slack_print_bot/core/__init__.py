"""Correlation core: registries, the submission state machine, and routing.

WHY: A print request arrives as several independent Slack deliveries. The
core decides which deliveries belong together without touching the
network itself.
"""
