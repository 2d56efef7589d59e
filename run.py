# Eventlet monkey patching MUST be first before any other imports
import eventlet
eventlet.monkey_patch()

import os  # noqa: E402

from app import create_app, db, socketio  # noqa: E402
from app.models import GameResult, League, LockedLine, Pick, WeeklyPoints  # noqa: E402

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "League": League,
        "Pick": Pick,
        "LockedLine": LockedLine,
        "GameResult": GameResult,
        "WeeklyPoints": WeeklyPoints,
    }


if __name__ == "__main__":
    socketio.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 5000)),
        debug=app.config.get("DEBUG", False),
    )
