from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection, generate_document_id

router = APIRouter(tags=['treatment plans'])

GoalStatus = Literal['not-started', 'in-progress', 'achieved', 'abandoned']
PlanStatus = Literal['active', 'completed', 'on-hold', 'cancelled']


class PlanDiagnosis(BaseModel):
    primary: str | None = None
    secondary: list[str] = []

    class Config:
        extra = 'forbid'


class Goal(BaseModel):
    goalId: str | None = None
    description: str | None = None
    targetDate: date | None = None
    status: GoalStatus = 'not-started'
    progress: int = Field(default=0, ge=0, le=100)

    class Config:
        extra = 'forbid'


class GoalUpdateRequest(BaseModel):
    description: str | None = None
    targetDate: date | None = None
    status: GoalStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)

    class Config:
        extra = 'forbid'


class Intervention(BaseModel):
    type: str | None = None
    description: str | None = None
    frequency: str | None = None
    startDate: date | None = None
    endDate: date | None = None

    class Config:
        extra = 'forbid'


class PlanMedication(BaseModel):
    name: str | None = None
    dosage: str | None = None
    frequency: str | None = None
    prescribedDate: date | None = None

    class Config:
        extra = 'forbid'


class SessionFrequency(BaseModel):
    sessions: int | None = Field(default=None, ge=0)
    period: Literal['week', 'month'] | None = None

    class Config:
        extra = 'forbid'


class PlanDuration(BaseModel):
    estimated: int | None = Field(default=None, ge=0)
    actual: int | None = Field(default=None, ge=0)

    class Config:
        extra = 'forbid'


class Milestone(BaseModel):
    title: str
    description: str | None = None
    targetDate: date | None = None
    achievedDate: date | None = None
    isAchieved: bool = False

    class Config:
        extra = 'forbid'


class CreateTreatmentPlanRequest(BaseModel):
    patientId: str
    therapistId: str
    title: str
    description: str | None = None
    diagnosis: PlanDiagnosis | None = None
    goals: list[Goal] = []
    interventions: list[Intervention] = []
    medications: list[PlanMedication] = []
    sessionFrequency: SessionFrequency | None = None
    duration: PlanDuration | None = None
    startDate: date
    endDate: date | None = None
    status: PlanStatus = 'active'
    milestones: list[Milestone] = []
    notes: str | None = None
    reviewDate: date | None = None
    lastUpdatedBy: str | None = None

    class Config:
        extra = 'forbid'


class UpdateTreatmentPlanRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    diagnosis: PlanDiagnosis | None = None
    interventions: list[Intervention] | None = None
    medications: list[PlanMedication] | None = None
    sessionFrequency: SessionFrequency | None = None
    duration: PlanDuration | None = None
    endDate: date | None = None
    status: PlanStatus | None = None
    notes: str | None = None
    reviewDate: date | None = None
    lastUpdatedBy: str | None = None

    class Config:
        extra = 'forbid'


def get_treatment_plans(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'treatment_plans', 'planId')


def summarize_plan_progress(plans: list[dict]) -> dict:
    goals = [goal for plan in plans for goal in plan.get('goals') or []]
    plans_by_status: dict[str, int] = {}
    for plan in plans:
        plans_by_status[plan['status']] = plans_by_status.get(plan['status'], 0) + 1

    return {
        'totalPlans': len(plans),
        'activePlans': plans_by_status.get('active', 0),
        'completedPlans': plans_by_status.get('completed', 0),
        'totalGoals': len(goals),
        'goalsAchieved': sum(1 for goal in goals if goal.get('status') == 'achieved'),
        'goalsInProgress': sum(1 for goal in goals if goal.get('status') == 'in-progress'),
        'overallProgress': round(sum(goal.get('progress') or 0 for goal in goals) / len(goals), 2) if goals else 0,
        'plansByStatus': plans_by_status,
    }


def _require_plan(plans: DocumentCollection, plan_id: str) -> dict:
    plan = plans.get(plan_id)
    if plan is None:
        raise NotFoundError(f'Treatment plan with ID {plan_id} not found')
    return plan


@router.post('', status_code=status.HTTP_201_CREATED)
def create_treatment_plan(
    data: CreateTreatmentPlanRequest,
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    body = data.model_dump(mode='json')
    for goal in body['goals']:
        goal['goalId'] = goal.get('goalId') or generate_document_id(8)

    plan = plans.create(body)
    return {'message': 'Treatment plan created successfully', 'plan': plan}


@router.get('/patient/{patient_id}')
def list_patient_treatment_plans(
    patient_id: str,
    plan_status: str | None = Query(default=None, alias='status'),
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    results = plans.find(
        filters={'patientId': patient_id, 'status': plan_status},
        sort_key='startDate',
        descending=True,
    )
    if not results:
        raise NotFoundError('No treatment plans found for this patient')
    return results


@router.get('/patient/{patient_id}/progress')
def get_patient_plan_progress(patient_id: str, plans: DocumentCollection = Depends(get_treatment_plans)):
    ensure_database_ready()

    results = plans.find(filters={'patientId': patient_id})
    if not results:
        raise NotFoundError('No treatment plans found for this patient')
    return summarize_plan_progress(results)


@router.get('/therapist/{therapist_id}')
def list_therapist_treatment_plans(
    therapist_id: str,
    plan_status: str | None = Query(default=None, alias='status'),
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    results = plans.find(
        filters={'therapistId': therapist_id, 'status': plan_status},
        sort_key='startDate',
        descending=True,
    )
    if not results:
        raise NotFoundError('No treatment plans found for this therapist')
    return results


@router.get('/{plan_id}')
def get_treatment_plan(plan_id: str, plans: DocumentCollection = Depends(get_treatment_plans)):
    ensure_database_ready()

    return _require_plan(plans, plan_id)


@router.patch('/{plan_id}/goals/{goal_id}')
def update_treatment_plan_goal(
    plan_id: str,
    goal_id: str,
    data: GoalUpdateRequest,
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    plan = _require_plan(plans, plan_id)
    goal = next((goal for goal in plan.get('goals') or [] if goal.get('goalId') == goal_id), None)
    if goal is None:
        raise NotFoundError(f'Goal with ID {goal_id} not found')

    goal.update(data.model_dump(mode='json', exclude_unset=True))
    plan = plans.replace(plan)
    return {'message': 'Goal updated successfully', 'plan': plan}


@router.post('/{plan_id}/milestones')
def add_treatment_plan_milestone(
    plan_id: str,
    data: Milestone,
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    plan = _require_plan(plans, plan_id)
    milestones = (plan.get('milestones') or []) + [data.model_dump(mode='json')]

    plan = plans.update(plan_id, {'milestones': milestones})
    return {'message': 'Milestone added successfully', 'plan': plan}


@router.patch('/{plan_id}')
def update_treatment_plan(
    plan_id: str,
    data: UpdateTreatmentPlanRequest,
    plans: DocumentCollection = Depends(get_treatment_plans),
):
    ensure_database_ready()

    plan = plans.update(plan_id, data.model_dump(mode='json', exclude_unset=True))
    if plan is None:
        raise NotFoundError(f'Treatment plan with ID {plan_id} not found')
    return {'message': 'Treatment plan updated successfully', 'plan': plan}


@router.delete('/{plan_id}')
def delete_treatment_plan(plan_id: str, plans: DocumentCollection = Depends(get_treatment_plans)):
    ensure_database_ready()

    if not plans.delete(plan_id):
        raise NotFoundError(f'Treatment plan with ID {plan_id} not found')
    return {'message': 'Treatment plan deleted successfully', 'planId': plan_id}
