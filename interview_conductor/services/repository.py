"""Persistence for interview records."""
import json
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from interview_conductor.extensions import db
from interview_conductor.models.errors import PersistenceWriteFailed, SessionNotFound
from interview_conductor.models.interview import IN_PROGRESS, PENDING, Interview

logger = logging.getLogger(__name__)


class InterviewRepository:

    def get_session(self, interview_id: str) -> Interview:
        interview = db.session.get(Interview, interview_id)
        if interview is None:
            raise SessionNotFound(f"Interview {interview_id} not found")
        return interview

    def create_session(self, job_title: str, questions, language: str = "en", extra: Optional[dict] = None) -> Interview:
        notes = {"questions": list(questions), "language": language}
        if extra:
            notes.update(extra)
        interview = Interview(job_title=job_title, status=PENDING, notes=json.dumps(notes), language=language)
        db.session.add(interview)
        self._commit()
        return interview

    def update_session(self, interview_id: str, status: Optional[str] = None, notes: Optional[str] = None) -> None:
        """Point update of status and/or notes; other columns are left alone."""
        values = {}
        if status is not None:
            values["status"] = status
        if notes is not None:
            values["notes"] = notes
        if not values:
            return
        try:
            updated = db.session.query(Interview).filter_by(id=interview_id).update(values)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("update of interview %s failed", interview_id)
            raise PersistenceWriteFailed(str(e)) from e
        if not updated:
            db.session.rollback()
            raise PersistenceWriteFailed(f"Interview {interview_id} not found")
        self._commit()

    def start_session(self, interview_id: str) -> Interview:
        interview = self.get_session(interview_id)
        if interview.status != PENDING:
            return interview
        self.update_session(interview_id, status=IN_PROGRESS)
        db.session.refresh(interview)
        return interview

    @staticmethod
    def _commit():
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("commit failed")
            raise PersistenceWriteFailed(str(e)) from e
