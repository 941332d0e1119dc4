"""Package entry point for ``python -m slack_print_bot``.

WHY: Operators start the bot as ``python -m slack_print_bot`` behind a
public URL (HTTP mode), or ``python -m slack_print_bot --socket`` where no
inbound URL is available (Socket Mode).

RULES:
- ``--socket`` runs the bolt Socket Mode handler
- Without ``--socket``, serves the FastAPI app with uvicorn on PORT
"""

import sys

if __name__ == "__main__":
    if "--socket" in sys.argv:
        from slack_print_bot.slack.bot import main
        main()
    else:
        from slack_print_bot.server.app import run
        run()
