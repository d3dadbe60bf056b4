"""
Feedback aggregation: NPS, per-category averages, rating bands and CSV export.
"""
from __future__ import annotations

import csv
from typing import Any, Dict, Iterable, Optional

from django.db.models import Avg, Count, Q, QuerySet

from .models import RetreatFeedback

PROMOTER_MIN = 9
DETRACTOR_MAX = 6

RATING_CATEGORIES = ("overall", "surfing", "accommodation", "food", "staff")

# band -> inclusive overall_rating range
RATING_BANDS = {
    "high": (4, 5),
    "medium": (3, 3),
    "low": (1, 2),
}

CSV_HEADERS = [
    "Date",
    "Guest Name",
    "Email",
    "Retreat",
    "Overall",
    "Surfing",
    "Accommodation",
    "Food",
    "Staff",
    "NPS Score",
    "Highlights",
    "Improvements",
    "Testimonial",
    "Allow Testimonial",
]


def nps(promoters: int, detractors: int, respondents: int) -> int:
    """Percentage of promoters minus detractors, halves rounded up (12.5 -> 13, -12.5 -> -12)."""
    if respondents == 0:
        return 0
    # floor(x + 0.5) in integers, no float error at the halves
    return (2 * (promoters - detractors) * 100 + respondents) // (2 * respondents)


def nps_summary(queryset: QuerySet) -> Dict[str, Any]:
    """NPS and average ratings over a feedback queryset. Unanswered questions are ignored."""
    agg = queryset.aggregate(
        total=Count("id"),
        respondents=Count("id", filter=Q(recommend_score__isnull=False)),
        promoters=Count("id", filter=Q(recommend_score__gte=PROMOTER_MIN)),
        detractors=Count("id", filter=Q(recommend_score__lte=DETRACTOR_MAX)),
        with_testimonials=Count("id", filter=Q(allow_testimonial_use=True) & ~Q(testimonial="")),
        **{f"avg_{c}": Avg(f"{c}_rating") for c in RATING_CATEGORIES},
    )
    respondents = agg["respondents"]
    return {
        "total": agg["total"],
        "respondents": respondents,
        "promoters": agg["promoters"],
        "passives": respondents - agg["promoters"] - agg["detractors"],
        "detractors": agg["detractors"],
        "nps": nps(agg["promoters"], agg["detractors"], respondents),
        "with_testimonials": agg["with_testimonials"],
        "averages": {c: round(float(agg[f"avg_{c}"] or 0), 2) for c in RATING_CATEGORIES},
    }


def filter_by_band(queryset: QuerySet, band: Optional[str]) -> QuerySet:
    if not band or band == "all":
        return queryset
    try:
        low, high = RATING_BANDS[band]
    except KeyError:
        raise ValueError(f"Unknown rating band '{band}'")
    return queryset.filter(overall_rating__gte=low, overall_rating__lte=high)


# leading characters a spreadsheet reads as the start of a formula
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _cell(value) -> str:
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def export_rows(feedback: Iterable[RetreatFeedback]):
    yield CSV_HEADERS
    for f in feedback:
        yield [
            f.created_at.date().isoformat(),
            _cell(f.booking.full_name),
            _cell(f.email),
            _cell(f.retreat.destination),
            _cell(f.overall_rating),
            _cell(f.surfing_rating),
            _cell(f.accommodation_rating),
            _cell(f.food_rating),
            _cell(f.staff_rating),
            _cell(f.recommend_score),
            _cell(f.highlights),
            _cell(f.improvements),
            _cell(f.testimonial),
            "Yes" if f.allow_testimonial_use else "No",
        ]


def write_csv(feedback: Iterable[RetreatFeedback], stream) -> None:
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL)
    writer.writerows(export_rows(feedback))
