"""
Catalog - skill tree nodes, lesson exercises, quiz questions and achievements.

Loaded from a JSON file when one is configured, otherwise from the sample
catalog shipped with the package.
"""

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from learnpath.engines.progression.achievements import Achievement, AchievementChecker
from learnpath.engines.progression.question_bank import (
    Exercise,
    InMemoryQuestionBank,
    Question,
)
from learnpath.engines.progression.skill_tree import ProgressionNode, SkillTree
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

SAMPLE_CATALOG_PATH = Path(__file__).resolve().parent.parent.parent / "data" / "sample_catalog.json"


class Catalog(BaseModel):
    """Everything the engine needs that is not learner state."""

    nodes: List[ProgressionNode]
    exercises: List[Exercise] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)
    achievements: List[Achievement] = Field(default_factory=list)

    def build_tree(self) -> SkillTree:
        return SkillTree(self.nodes)

    def build_bank(self, rng=None) -> InMemoryQuestionBank:
        return InMemoryQuestionBank(self.exercises, self.questions, rng=rng)

    def build_achievements(self) -> AchievementChecker:
        return AchievementChecker(self.achievements)

    def check(self) -> None:
        """Raise ValueError if the tree or the achievements cannot be built."""
        self.build_tree()
        self.build_achievements()


def _read_catalog(path: Path) -> Optional[Catalog]:
    """Parse and check a catalog file; returns None if it is missing or invalid."""
    if not path.exists():
        logger.warning("Catalog file not found", extra={"path": str(path)})
        return None
    try:
        catalog = Catalog.model_validate(json.loads(path.read_text(encoding="utf-8")))
        catalog.check()
    except (json.JSONDecodeError, OSError, ValidationError, ValueError) as exc:
        logger.warning(
            "Catalog file is invalid",
            extra={"path": str(path), "error": str(exc)},
        )
        return None
    return catalog


def load_catalog(path: Optional[str] = None) -> Catalog:
    """
    Load the catalog from `path`, falling back to the packaged sample.

    The sample catalog must always parse; a broken sample raises.
    """
    if path:
        catalog = _read_catalog(Path(path))
        if catalog is not None:
            logger.info(
                "Catalog loaded",
                extra={"path": path, "nodes": len(catalog.nodes)},
            )
            return catalog
    return Catalog.model_validate(json.loads(SAMPLE_CATALOG_PATH.read_text(encoding="utf-8")))
