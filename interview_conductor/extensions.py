from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Use message_queue/async_mode settings for production as needed.
socketio = SocketIO(cors_allowed_origins="*", async_mode="threading")
