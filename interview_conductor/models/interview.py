"""Interview record and its in-memory session copy."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from interview_conductor.extensions import db

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"
HIRED = "hired"
REJECTED = "rejected"


class Interview(db.Model):
    __tablename__ = "interviews"

    id         = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_title  = db.Column(db.String(200), nullable=False, default="")
    status     = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    notes      = db.Column(db.Text)  # opaque JSON bundle
    language   = db.Column(db.String(16), nullable=False, default="en")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "job_title": self.job_title,
            "status": self.status,
            "notes": self.notes,
            "language": self.language,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class InterviewSession:
    """Transient copy of an interview held by the controller while it runs."""

    id: str
    status: str
    questions: List[str]
    language: str
    transcripts: Dict[int, str] = field(default_factory=dict)
    completed_at: Optional[str] = None

    def bundle(self) -> dict:
        # JSON object keys are strings; keep them ordered by question index
        return {
            "questions": list(self.questions),
            "transcripts": {str(i): self.transcripts[i] for i in sorted(self.transcripts)},
            "language": self.language,
            "completed_at": self.completed_at,
        }
