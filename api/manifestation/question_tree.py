from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

from .config import QUESTIONS_PATH


@dataclass(frozen=True)
class Question:
    id: str
    points: float
    description: str
    category: str
    children: tuple[Question, ...] = field(default_factory=tuple)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_leaves(self) -> Iterator[Question]:
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "points": self.points,
            "description": self.description,
            "category": self.category,
        }
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


class QuestionTree:
    """Immutable view over the rated criteria.

    Leaves are the only rated nodes; a leaf inherits the category of its
    top-level ancestor.
    """

    def __init__(self, roots: tuple[Question, ...], version: int = 1):
        self.roots = roots
        self.version = version
        self.leaves: tuple[Question, ...] = tuple(leaf for root in roots for leaf in root.iter_leaves())
        self._by_id: dict[str, Question] = {leaf.id: leaf for leaf in self.leaves}

    @property
    def leaf_ids(self) -> tuple[str, ...]:
        return tuple(leaf.id for leaf in self.leaves)

    def __len__(self) -> int:
        return len(self.leaves)

    def is_leaf(self, question_id: str) -> bool:
        return question_id in self._by_id

    def get(self, question_id: str) -> Question | None:
        return self._by_id.get(question_id)

    def category_for(self, question_id: str) -> str | None:
        leaf = self._by_id.get(question_id)
        return leaf.category if leaf else None

    @property
    def categories(self) -> list[str]:
        return [root.category for root in self.roots]

    @property
    def total_points(self) -> float:
        return sum(leaf.points for leaf in self.leaves)

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "questions": [r.to_dict() for r in self.roots]}


def validate_question_definition(definition: dict[str, Any]) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    questions = definition.get("questions")
    if not isinstance(questions, list) or not questions:
        return [{"code": "invalid_schema", "path": "questions", "message": "questions must be a non-empty array"}]

    seen_ids: set[str] = set()

    def _walk(node: Any, path: str, top_level: bool) -> None:
        if not isinstance(node, dict):
            errors.append({"code": "invalid_schema", "path": path, "message": "question must be an object"})
            return
        qid = node.get("id")
        if not isinstance(qid, str) or not qid.strip():
            errors.append({"code": "missing_question_id", "path": f"{path}.id", "message": "question id is required"})
        elif qid in seen_ids:
            errors.append({"code": "duplicate_question_id", "path": f"{path}.id", "message": f"duplicate question id '{qid}'"})
        else:
            seen_ids.add(qid)

        points = node.get("points")
        if isinstance(points, bool) or not isinstance(points, (int, float)) or not math.isfinite(points) or points <= 0:
            errors.append({"code": "invalid_points", "path": f"{path}.points", "message": "points must be a positive number"})
            points = None

        if top_level:
            category = node.get("category")
            if not isinstance(category, str) or not category.strip():
                errors.append({"code": "missing_category", "path": f"{path}.category", "message": "top-level questions need a category"})

        children = node.get("children") or []
        if not isinstance(children, list):
            errors.append({"code": "invalid_children", "path": f"{path}.children", "message": "children must be an array"})
            return
        for idx, child in enumerate(children):
            _walk(child, f"{path}.children[{idx}]", False)

        if children and points is not None:
            child_points = [c.get("points") for c in children if isinstance(c, dict)]
            if all(isinstance(p, (int, float)) and not isinstance(p, bool) for p in child_points):
                if not math.isclose(sum(child_points), points):
                    errors.append(
                        {
                            "code": "points_mismatch",
                            "path": f"{path}.points",
                            "message": f"children of '{qid}' sum to {sum(child_points)}, expected {points}",
                        }
                    )

    for idx, question in enumerate(questions):
        _walk(question, f"questions[{idx}]", True)
    return errors


def _build_node(node: dict[str, Any], category: str) -> Question:
    return Question(
        id=str(node["id"]),
        points=float(node["points"]),
        description=str(node.get("description") or ""),
        category=category,
        children=tuple(_build_node(c, category) for c in node.get("children") or []),
    )


def build_question_tree(definition: dict[str, Any]) -> QuestionTree:
    errors = validate_question_definition(definition)
    if errors:
        raise ValueError(f"Invalid question definition: {errors[0]['path']}: {errors[0]['message']}")
    roots = tuple(_build_node(q, str(q["category"]).strip()) for q in definition["questions"])
    return QuestionTree(roots, version=int(definition.get("version") or 1))


def load_question_tree(path: Path) -> QuestionTree:
    with path.open("r", encoding="utf-8") as f:
        return build_question_tree(json.load(f))


@lru_cache(maxsize=1)
def get_question_tree() -> QuestionTree:
    return load_question_tree(QUESTIONS_PATH)
