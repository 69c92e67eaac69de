# app.py
import logging
import os
import socket
import sys

from flask import Flask, jsonify
from flask_cors import CORS

from interview_conductor.config import settings
from interview_conductor.extensions import db, socketio
from interview_conductor.routes.interview_routes import interview_bp
from interview_conductor.routes.speech_routes import speech_bp
# registers the socketio handlers on the shared instance before init_app
from interview_conductor.routes import ws_routes  # noqa: F401


def create_app(test_config=None):
    logging.basicConfig(level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=settings.SECRET_KEY,
        SQLALCHEMY_DATABASE_URI=settings.DATABASE_URL,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SEND_FILE_MAX_AGE_DEFAULT=0,
    )
    if test_config:
        app.config.update(test_config)

    CORS(app)
    db.init_app(app)
    socketio.init_app(app)

    # Register blueprints
    app.register_blueprint(interview_bp)
    app.register_blueprint(speech_bp)

    @app.route("/health")
    def health():
        return jsonify({"ok": True})

    with app.app_context():
        db.create_all()
    return app


def _pick_port(default_port: int) -> int:
    base = default_port
    for a in sys.argv[1:]:
        if a.startswith("--port="):
            try:
                base = int(a.split("=", 1)[1])
            except ValueError:
                pass
            break
    else:
        try:
            base = int(os.getenv("PORT", default_port))
        except ValueError:
            base = default_port
    for p in range(base, base + 20):
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            s.bind(("0.0.0.0", p))
            return p
        except OSError:
            continue
        finally:
            s.close()
    return base


def main():
    app = create_app()
    socketio.run(app, host="0.0.0.0", port=_pick_port(8000), debug=False, allow_unsafe_werkzeug=True)


if __name__ == "__main__":
    main()
