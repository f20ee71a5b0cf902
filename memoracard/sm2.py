from datetime import datetime, timedelta
from typing import Optional, Tuple

from memoracard.schemas import (
    CardRating,
    DEFAULT_EASE_FACTOR,
    Flashcard,
    MIN_EASE_FACTOR,
)
from memoracard.utils import round_half_up, utcnow

# Quality score (0-5 SM-2 scale) for each rating button
RATING_QUALITY = {
    CardRating.AGAIN: 0,
    CardRating.HARD: 3,
    CardRating.GOOD: 4,
    CardRating.EASY: 5,
}


class SM2Algorithm:
    """
    SM-2 spaced repetition algorithm for calculating review intervals.
    Based on SuperMemo 2 algorithm by Piotr Wozniak.

    "again" is a full reset (repetition 0, interval 1 day), never a partial
    penalty, so repeated failures do not compound.
    """

    @staticmethod
    def quality_for(rating: CardRating) -> int:
        """Map a rating button to its SM-2 quality score"""
        return RATING_QUALITY[CardRating(rating)]

    @staticmethod
    def calculate_next_review(
        easiness_factor: Optional[float],
        interval: Optional[int],
        repetitions: Optional[int],
        quality: int,
        reference_time: Optional[datetime] = None
    ) -> Tuple[float, int, int, datetime]:
        """
        Calculate next review time and update SM-2 parameters.

        Args:
            easiness_factor: Current EF, None treated as 2.5
            interval: Current interval in days, None treated as 0
            repetitions: Consecutive passing reviews, None treated as 0
            quality: Response quality (0-5). 0=total blackout, 5=perfect
            reference_time: Time of the review (defaults to now)

        Returns:
            (new_ef, new_interval, new_repetitions, next_review_time)
        """
        ef = DEFAULT_EASE_FACTOR if easiness_factor is None else max(MIN_EASE_FACTOR, float(easiness_factor))
        interval = max(0, int(interval or 0))
        repetitions = max(0, int(repetitions or 0))

        # Interval uses the EF from before this review
        if quality == 0:
            new_repetitions = 0
            new_interval = 1
        else:
            if repetitions == 0:
                new_interval = 1
            elif repetitions == 1:
                new_interval = 6
            else:
                new_interval = round_half_up(interval * ef)
            new_repetitions = repetitions + 1

        # Update easiness factor based on quality, including failed reviews
        new_ef = ef + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
        if new_ef < MIN_EASE_FACTOR:
            new_ef = MIN_EASE_FACTOR

        base_time = reference_time if reference_time else utcnow()
        next_review = base_time + timedelta(days=new_interval)

        return new_ef, new_interval, new_repetitions, next_review

    @staticmethod
    def is_due_for_review(due_date: datetime, now: Optional[datetime] = None) -> bool:
        """Check if a card is due for review"""
        return due_date <= (now or utcnow())


def review_card(card: Flashcard, rating: CardRating, now: Optional[datetime] = None) -> Flashcard:
    """Return a new snapshot of ``card`` with its scheduling fields updated for ``rating``"""
    now = now or utcnow()
    new_ef, new_interval, new_reps, next_review = SM2Algorithm.calculate_next_review(
        card.ease_factor,
        card.interval,
        card.repetition,
        SM2Algorithm.quality_for(rating),
        reference_time=now
    )
    return card.model_copy(update={
        "ease_factor": new_ef,
        "interval": new_interval,
        "repetition": new_reps,
        "due_date": next_review,
        "last_reviewed": now,
    })
