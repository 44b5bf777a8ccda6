from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection

router = APIRouter(tags=['sessions'])

SessionType = Literal['initial', 'follow-up', 'emergency', 'final']


class SessionNotes(BaseModel):
    symptoms: str | None = None
    observations: str | None = None
    interventions: str | None = None
    homework: str | None = None
    progressNotes: str | None = None

    class Config:
        extra = 'forbid'


class MoodScore(BaseModel):
    before: int | None = Field(default=None, ge=1, le=10)
    after: int | None = Field(default=None, ge=1, le=10)

    class Config:
        extra = 'forbid'


class CreateSessionRequest(BaseModel):
    appointmentId: str
    therapistId: str
    patientId: str
    sessionDate: datetime
    duration: int = Field(gt=0)
    sessionType: SessionType = 'follow-up'
    notes: SessionNotes | None = None
    mood: MoodScore | None = None
    goals: list[str] = []
    nextSessionPlan: str | None = None
    isCompleted: bool = False
    confidential: bool = True

    class Config:
        extra = 'forbid'


class UpdateSessionRequest(BaseModel):
    sessionDate: datetime | None = None
    duration: int | None = Field(default=None, gt=0)
    sessionType: SessionType | None = None
    notes: SessionNotes | None = None
    mood: MoodScore | None = None
    goals: list[str] | None = None
    nextSessionPlan: str | None = None
    isCompleted: bool | None = None
    confidential: bool | None = None

    class Config:
        extra = 'forbid'


def get_sessions(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'sessions', 'sessionId')


def summarize_session_progress(sessions: list[dict]) -> dict:
    mood_progress = []
    session_types: dict[str, int] = {}
    improvements = []

    for session in sessions:
        mood = session.get('mood') or {}
        before, after = mood.get('before'), mood.get('after')
        improvement = after - before if before is not None and after is not None else None
        mood_progress.append({
            'date': session.get('sessionDate'),
            'before': before,
            'after': after,
            'improvement': improvement,
        })
        if improvement is not None:
            improvements.append(improvement)

        session_type = session.get('sessionType', 'follow-up')
        session_types[session_type] = session_types.get(session_type, 0) + 1

    return {
        'totalSessions': len(sessions),
        'moodProgress': mood_progress,
        'sessionTypes': session_types,
        'averageImprovement': round(sum(improvements) / len(improvements), 2) if improvements else 0,
    }


@router.post('', status_code=status.HTTP_201_CREATED)
def create_session(data: CreateSessionRequest, sessions: DocumentCollection = Depends(get_sessions)):
    ensure_database_ready()

    session = sessions.create(data.model_dump(mode='json'))
    return {'message': 'Session created successfully', 'session': session}


@router.get('')
def list_sessions(
    therapist_id: str | None = Query(default=None, alias='therapistId'),
    patient_id: str | None = Query(default=None, alias='patientId'),
    appointment_id: str | None = Query(default=None, alias='appointmentId'),
    session_type: str | None = Query(default=None, alias='sessionType'),
    is_completed: bool | None = Query(default=None, alias='isCompleted'),
    sessions: DocumentCollection = Depends(get_sessions),
):
    ensure_database_ready()

    results = sessions.find(
        filters={
            'therapistId': therapist_id,
            'patientId': patient_id,
            'appointmentId': appointment_id,
            'sessionType': session_type,
            'isCompleted': is_completed,
        },
        sort_key='sessionDate',
        descending=True,
    )
    if not results:
        raise NotFoundError('No sessions found')
    return results


@router.get('/patient/{patient_id}/progress')
def get_patient_session_progress(patient_id: str, sessions: DocumentCollection = Depends(get_sessions)):
    ensure_database_ready()

    completed = sessions.find(
        filters={'patientId': patient_id, 'isCompleted': True},
        sort_key='sessionDate',
    )
    if not completed:
        raise NotFoundError('No completed sessions found for this patient')
    return summarize_session_progress(completed)


@router.get('/{session_id}')
def get_session(session_id: str, sessions: DocumentCollection = Depends(get_sessions)):
    ensure_database_ready()

    session = sessions.get(session_id)
    if session is None:
        raise NotFoundError(f'Session with ID {session_id} not found')
    return session


@router.patch('/{session_id}')
def update_session(
    session_id: str,
    data: UpdateSessionRequest,
    sessions: DocumentCollection = Depends(get_sessions),
):
    ensure_database_ready()

    session = sessions.update(session_id, data.model_dump(mode='json', exclude_unset=True))
    if session is None:
        raise NotFoundError(f'Session with ID {session_id} not found')
    return {'message': 'Session updated successfully', 'session': session}


@router.delete('/{session_id}')
def delete_session(session_id: str, sessions: DocumentCollection = Depends(get_sessions)):
    ensure_database_ready()

    if not sessions.delete(session_id):
        raise NotFoundError(f'Session with ID {session_id} not found')
    return {'message': 'Session deleted successfully', 'sessionId': session_id}
