"""Slack print bot: 3D print requests from Slack into Google Drive and Sheets.

WHY: The print team tracks every job in a spreadsheet and keeps the model
files in a shared Drive folder. Asking people to do both by hand loses
files and details. This package lets them run /print in Slack, fill in a
short form, upload the file, and have both records written for them.

HOW: Three layers: correlation state (core), chat and Google integrations
(slack, services), and the process surface (server, Socket Mode entry
point). The core never imports bolt, slack_sdk or Google clients.

RULES:
- All pending state is in-memory and lost on restart
- The core depends only on injected collaborators
"""

__version__ = "0.1.0"
