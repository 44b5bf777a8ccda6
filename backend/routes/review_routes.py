from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection

router = APIRouter(tags=['reviews'])

REVIEW_CATEGORIES = ('professionalism', 'communication', 'effectiveness', 'empathy')


class ReviewCategories(BaseModel):
    professionalism: int | None = Field(default=None, ge=1, le=5)
    communication: int | None = Field(default=None, ge=1, le=5)
    effectiveness: int | None = Field(default=None, ge=1, le=5)
    empathy: int | None = Field(default=None, ge=1, le=5)

    class Config:
        extra = 'forbid'


class CreateReviewRequest(BaseModel):
    therapistId: str
    patientId: str
    appointmentId: str | None = None
    rating: int = Field(ge=1, le=5)
    categories: ReviewCategories | None = None
    comment: str | None = None
    isAnonymous: bool = False
    isVerified: bool = False
    isVisible: bool = True

    class Config:
        extra = 'forbid'


class UpdateReviewRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    categories: ReviewCategories | None = None
    comment: str | None = None
    isAnonymous: bool | None = None
    isVerified: bool | None = None
    isVisible: bool | None = None
    helpful: int | None = Field(default=None, ge=0)

    class Config:
        extra = 'forbid'


class ReviewResponseRequest(BaseModel):
    content: str

    class Config:
        extra = 'forbid'

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Response content is required.')
        return normalized


def get_reviews(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'reviews', 'reviewId')


def _average(values: list[int]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def summarize_reviews(reviews: list[dict]) -> dict:
    ratings = [review['rating'] for review in reviews]
    category_averages = {
        category: _average([
            (review.get('categories') or {}).get(category)
            for review in reviews
            if (review.get('categories') or {}).get(category)
        ])
        for category in REVIEW_CATEGORIES
    }

    return {
        'totalReviews': len(reviews),
        'averageRating': _average(ratings),
        'ratingDistribution': {str(score): ratings.count(score) for score in range(5, 0, -1)},
        'categoryAverages': category_averages,
        'verifiedReviews': sum(1 for review in reviews if review.get('isVerified')),
    }


@router.post('', status_code=status.HTTP_201_CREATED)
def create_review(data: CreateReviewRequest, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    body = data.model_dump(mode='json')
    body.update({'helpful': 0, 'response': None})

    review = reviews.create(body)
    return {'message': 'Review created successfully', 'review': review}


@router.get('/therapist/{therapist_id}')
def list_therapist_reviews(
    therapist_id: str,
    is_visible: bool | None = Query(default=None, alias='isVisible'),
    min_rating: int | None = Query(default=None, alias='minRating', ge=1, le=5),
    reviews: DocumentCollection = Depends(get_reviews),
):
    ensure_database_ready()

    results = reviews.find(
        filters={'therapistId': therapist_id, 'isVisible': is_visible},
        predicate=(lambda review: review['rating'] >= min_rating) if min_rating else None,
        sort_key='createdAt',
        descending=True,
    )
    if not results:
        raise NotFoundError('No reviews found for this therapist')
    return results


@router.get('/therapist/{therapist_id}/stats')
def get_therapist_review_stats(therapist_id: str, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    visible = reviews.find(filters={'therapistId': therapist_id, 'isVisible': True})
    if not visible:
        raise NotFoundError('No reviews found for this therapist')
    return summarize_reviews(visible)


@router.get('/patient/{patient_id}')
def list_patient_reviews(patient_id: str, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    results = reviews.find(filters={'patientId': patient_id}, sort_key='createdAt', descending=True)
    if not results:
        raise NotFoundError('No reviews found for this patient')
    return results


@router.get('/{review_id}')
def get_review(review_id: str, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    review = reviews.get(review_id)
    if review is None:
        raise NotFoundError(f'Review with ID {review_id} not found')
    return review


@router.patch('/{review_id}/respond')
def respond_to_review(
    review_id: str,
    data: ReviewResponseRequest,
    reviews: DocumentCollection = Depends(get_reviews),
):
    ensure_database_ready()

    review = reviews.update(review_id, {
        'response': {'content': data.content, 'respondedAt': datetime.now(timezone.utc).isoformat()},
    })
    if review is None:
        raise NotFoundError(f'Review with ID {review_id} not found')
    return {'message': 'Response added successfully', 'review': review}


@router.patch('/{review_id}')
def update_review(review_id: str, data: UpdateReviewRequest, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    review = reviews.update(review_id, data.model_dump(mode='json', exclude_unset=True))
    if review is None:
        raise NotFoundError(f'Review with ID {review_id} not found')
    return {'message': 'Review updated successfully', 'review': review}


@router.delete('/{review_id}')
def delete_review(review_id: str, reviews: DocumentCollection = Depends(get_reviews)):
    ensure_database_ready()

    if not reviews.delete(review_id):
        raise NotFoundError(f'Review with ID {review_id} not found')
    return {'message': 'Review deleted successfully', 'reviewId': review_id}
