"""
Reviews of businesses and professionals.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, ConflictError, NotFoundError
from marketplace.db.models.business import Business
from marketplace.db.models.enums import ListingStatus
from marketplace.db.models.professional import Professional
from marketplace.db.models.review import Review
from marketplace.services.pagination import paginate
from marketplace.services.permissions import ensure_owner_or_admin, is_admin

logger = logging.getLogger(__name__)


def _target_filter(query, business_id: Optional[int], professional_id: Optional[int]):
    if business_id is not None:
        return query.filter(Review.business_id == business_id)
    return query.filter(Review.professional_id == professional_id)


def list_reviews(
    db: Session,
    business_id: Optional[int] = None,
    professional_id: Optional[int] = None,
    status: Optional[ListingStatus] = ListingStatus.APPROVED,
    page: int = 1,
    limit: int = 10,
) -> Dict:
    """Reviews of one target, with the average rating over the same reviews."""
    if (business_id is None) == (professional_id is None):
        raise BadRequestError("Provide exactly one of business_id or professional_id")

    query = _target_filter(db.query(Review), business_id, professional_id)
    average = _target_filter(db.query(func.avg(Review.rating)), business_id, professional_id)
    if status is not None:
        query = query.filter(Review.status == status)
        average = average.filter(Review.status == status)

    result = paginate(query.order_by(Review.created_at.desc(), Review.id.desc()), page, limit)
    avg = average.scalar()
    result["average_rating"] = round(float(avg), 2) if avg is not None else None
    return result


def list_user_reviews(db: Session, user_id: int) -> List[Review]:
    return db.query(Review).filter(Review.user_id == user_id).order_by(Review.id.desc()).all()


def get_review(db: Session, review_id: int) -> Review:
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise NotFoundError("Review not found")
    return review


def create_review(db: Session, data: Dict, user_id: int) -> Review:
    """
    One review per user per target; the target must exist.

    Raises:
        BadRequestError: Not exactly one target, or rating outside 1..5
        NotFoundError: Target missing
        ConflictError: User already reviewed the target
    """
    business_id = data.get("business_id")
    professional_id = data.get("professional_id")
    if (business_id is None) == (professional_id is None):
        raise BadRequestError("Provide exactly one of business_id or professional_id")

    rating = data.get("rating")
    if rating is None or not 1 <= rating <= 5:
        raise BadRequestError("Rating must be between 1 and 5")

    if business_id is not None:
        if not db.query(Business.id).filter(Business.id == business_id).first():
            raise NotFoundError("Business not found")
    elif not db.query(Professional.id).filter(Professional.id == professional_id).first():
        raise NotFoundError("Professional not found")

    existing = _target_filter(db.query(Review.id), business_id, professional_id).filter(Review.user_id == user_id)
    if existing.first():
        raise ConflictError("You have already reviewed this")

    review = Review(
        user_id=user_id,
        business_id=business_id,
        professional_id=professional_id,
        rating=rating,
        comment=data.get("comment"),
        status=ListingStatus.PENDING,
    )
    db.add(review)
    db.commit()
    db.refresh(review)

    logger.info(f"Review created: review_id={review.id}, user_id={user_id}, rating={rating}")
    return review


def update_review(db: Session, review_id: int, data: Dict, caller) -> Review:
    review = get_review(db, review_id)
    ensure_owner_or_admin(review.user_id, caller, "review")

    if "rating" in data and not 1 <= data["rating"] <= 5:
        raise BadRequestError("Rating must be between 1 and 5")

    for field in ("rating", "comment"):
        if field in data:
            setattr(review, field, data[field])

    # Edited reviews go back to moderation
    if not is_admin(caller):
        review.status = ListingStatus.PENDING

    db.commit()
    db.refresh(review)
    return review


def delete_review(db: Session, review_id: int, caller) -> None:
    review = get_review(db, review_id)
    ensure_owner_or_admin(review.user_id, caller, "review")

    db.delete(review)
    db.commit()
    logger.info(f"Review deleted: review_id={review_id}, caller_id={caller.id}")


def set_review_status(db: Session, review_id: int, status: ListingStatus) -> Review:
    review = get_review(db, review_id)
    review.status = status
    db.commit()
    db.refresh(review)
    logger.info(f"Review moderated: review_id={review.id}, status={status.value}")
    return review
