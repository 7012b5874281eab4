from __future__ import annotations

import math
from typing import Any, Mapping

from ..config import MAX_RATING, MIN_RATING
from ..question_tree import QuestionTree, get_question_tree


def _rating_or_default(value: Any) -> float:
    # anything that is not a real number counts as the minimum rating
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return float(MIN_RATING)
    return float(min(max(value, MIN_RATING), MAX_RATING))


def is_valid_rating(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and MIN_RATING <= value <= MAX_RATING


def calculate_score(answers: Mapping[str, Any], tree: QuestionTree | None = None) -> float:
    """Sum of points * rating / 10 over every leaf; unanswered leaves count as 1."""
    tree = tree if tree is not None else get_question_tree()
    total = 0.0
    for leaf in tree.leaves:
        total += leaf.points * (_rating_or_default(answers.get(leaf.id)) / MAX_RATING)
    return total


def get_max_possible_score(tree: QuestionTree | None = None) -> float:
    tree = tree if tree is not None else get_question_tree()
    return calculate_score({leaf_id: MAX_RATING for leaf_id in tree.leaf_ids}, tree)


def complete_answer_sheet(answers: Mapping[str, Any], tree: QuestionTree | None = None) -> dict[str, int]:
    tree = tree if tree is not None else get_question_tree()
    out: dict[str, int] = {}
    for leaf_id in tree.leaf_ids:
        value = answers.get(leaf_id)
        out[leaf_id] = value if is_valid_rating(value) else MIN_RATING
    return out


def answered_count(answers: Mapping[str, Any], tree: QuestionTree | None = None) -> int:
    tree = tree if tree is not None else get_question_tree()
    return sum(1 for leaf_id in tree.leaf_ids if is_valid_rating(answers.get(leaf_id)))


def percent_complete(answers: Mapping[str, Any], tree: QuestionTree | None = None) -> int:
    tree = tree if tree is not None else get_question_tree()
    if not len(tree):
        return 0
    return round(100 * answered_count(answers, tree) / len(tree))


def category_scores(answers: Mapping[str, Any], tree: QuestionTree | None = None) -> dict[str, float]:
    tree = tree if tree is not None else get_question_tree()
    totals: dict[str, list[float]] = {}
    for leaf in tree.leaves:
        totals.setdefault(leaf.category, []).append(_rating_or_default(answers.get(leaf.id)))
    return {category: round(sum(vals) / len(vals), 2) for category, vals in totals.items()}
