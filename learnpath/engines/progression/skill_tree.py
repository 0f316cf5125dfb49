"""
Skill Tree - prerequisite DAG of lessons/skills and per-learner node progression.

Node status lifecycle:
- locked: at least one prerequisite is not completed
- current: every prerequisite is completed (entry nodes start here)
- completed: an attempt has been recorded; best_score and stars only go up

Progress maps are never mutated in place: every operation returns a new map,
so a failed operation leaves the caller's state untouched.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from learnpath.engines.progression.errors import (
    InvalidScore,
    PrerequisitesNotMet,
    UnknownLesson,
    UnknownNode,
)
from learnpath.engines.progression.mastery_scorer import MasteryScorer, round_half_up


class NodeStatus(str, Enum):
    """Per-learner status of a skill tree node."""
    LOCKED = "locked"
    CURRENT = "current"
    COMPLETED = "completed"


class ProgressionNode(BaseModel):
    """A lesson or skill in the tree."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str = ""
    prerequisites: List[str] = Field(default_factory=list)
    xp_reward: int = Field(default=0, ge=0)
    lesson_id: Optional[str] = None  # defaults to the node id
    topic_id: Optional[str] = None  # defaults to the node id

    @property
    def lesson(self) -> str:
        return self.lesson_id or self.id

    @property
    def topic(self) -> str:
        return self.topic_id or self.id

    @property
    def is_entry(self) -> bool:
        return not self.prerequisites


class UserNodeProgress(BaseModel):
    """One learner's progress on one node."""

    node_id: str
    status: NodeStatus = NodeStatus.LOCKED
    stars: int = Field(default=0, ge=0, le=3)
    attempts: int = Field(default=0, ge=0)
    best_score: int = Field(default=0, ge=0, le=100)
    completed_at: Optional[datetime] = None


class NodeCompletion(BaseModel):
    """Outcome of recording an attempt on a node."""

    node_id: str
    score: int
    stars_awarded: int  # stars for this attempt's score
    stars: int  # best stars after the attempt
    best_score: int
    attempts: int
    first_completion: bool
    improved: bool
    xp_earned: int = 0
    unlocked_node_ids: List[str] = Field(default_factory=list)
    achievements_unlocked: List[str] = Field(default_factory=list)


class PrerequisiteCheck(BaseModel):
    """Which prerequisites of a node are met."""

    node_id: str
    met: bool
    missing: List[str]
    completed: List[str]


class TreeProgress(BaseModel):
    """Aggregate progress across the whole tree."""

    total_nodes: int
    completed_nodes: int
    percentage: int
    total_stars: int
    max_stars: int


ProgressMap = Dict[str, UserNodeProgress]


class SkillTree:
    """
    Prerequisite graph over ProgressionNodes.

    Declaration order is preserved and used to order unlocks and queries.
    Construction fails with ValueError on duplicate ids, unknown prerequisite
    ids or a prerequisite cycle.
    """

    def __init__(self, nodes: List[ProgressionNode]):
        self._nodes: Dict[str, ProgressionNode] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"Duplicate node id: {node.id}")
            self._nodes[node.id] = node
        self._lessons: Dict[str, str] = {}
        for node in self._nodes.values():
            for prereq in node.prerequisites:
                if prereq not in self._nodes:
                    raise ValueError(f"Node {node.id} has unknown prerequisite: {prereq}")
            self._lessons.setdefault(node.lesson, node.id)
        self._check_acyclic()

    def _check_acyclic(self) -> None:
        """Depth-first search with three colors; a grey node reached again is a cycle."""
        white, grey, black = 0, 1, 2
        color = {node_id: white for node_id in self._nodes}

        def visit(node_id: str, path: List[str]) -> None:
            color[node_id] = grey
            for prereq in self._nodes[node_id].prerequisites:
                if color[prereq] == grey:
                    cycle = path[path.index(prereq):] + [prereq]
                    raise ValueError(f"Prerequisite cycle: {' -> '.join(cycle)}")
                if color[prereq] == white:
                    visit(prereq, path + [prereq])
            color[node_id] = black

        for node_id in self._nodes:
            if color[node_id] == white:
                visit(node_id, [node_id])

    # Lookups

    @property
    def nodes(self) -> List[ProgressionNode]:
        return list(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> ProgressionNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNode(node_id)
        return node

    def node_for_lesson(self, lesson_id: str) -> ProgressionNode:
        """The node a lesson belongs to (first declared, if shared)."""
        node_id = self._lessons.get(lesson_id)
        if node_id is None:
            raise UnknownLesson(lesson_id)
        return self._nodes[node_id]

    # Progress queries

    def _is_completed(self, progress: ProgressMap, node_id: str) -> bool:
        record = progress.get(node_id)
        return record is not None and record.status == NodeStatus.COMPLETED

    def _prerequisites_completed(self, progress: ProgressMap, node: ProgressionNode) -> bool:
        return all(self._is_completed(progress, p) for p in node.prerequisites)

    def initial_progress(self) -> ProgressMap:
        """Fresh progress: entry nodes current, everything else locked."""
        return {
            node.id: UserNodeProgress(
                node_id=node.id,
                status=NodeStatus.CURRENT if node.is_entry else NodeStatus.LOCKED,
            )
            for node in self._nodes.values()
        }

    def reconcile(self, progress: ProgressMap) -> ProgressMap:
        """
        Align stored progress with the current tree.

        Records for nodes no longer in the tree are dropped, missing nodes get
        a fresh record, and every non-completed node's status is recomputed
        from its prerequisites.
        """
        reconciled: ProgressMap = {}
        for node in self._nodes.values():
            record = progress.get(node.id)
            reconciled[node.id] = (
                record.model_copy() if record is not None else UserNodeProgress(node_id=node.id)
            )
        for node in self._nodes.values():
            record = reconciled[node.id]
            if record.status == NodeStatus.COMPLETED:
                continue
            status = (
                NodeStatus.CURRENT
                if self._prerequisites_completed(reconciled, node)
                else NodeStatus.LOCKED
            )
            if status != record.status:
                reconciled[node.id] = record.model_copy(update={"status": status})
        return reconciled

    def check_prerequisites(self, progress: ProgressMap, node_id: str) -> PrerequisiteCheck:
        node = self.get_node(node_id)
        completed = [p for p in node.prerequisites if self._is_completed(progress, p)]
        missing = [p for p in node.prerequisites if p not in completed]
        return PrerequisiteCheck(
            node_id=node_id,
            met=not missing,
            missing=missing,
            completed=completed,
        )

    def prerequisite_chain(self, node_id: str) -> List[str]:
        """All transitive prerequisites of a node, each listed after its own prerequisites."""
        self.get_node(node_id)
        chain: List[str] = []
        seen = set()

        def visit(current: str) -> None:
            for prereq in self._nodes[current].prerequisites:
                if prereq in seen:
                    continue
                seen.add(prereq)
                visit(prereq)
                chain.append(prereq)

        visit(node_id)
        return chain

    def next_available_nodes(self, progress: ProgressMap) -> List[ProgressionNode]:
        """Nodes the learner can work on now, in declaration order."""
        reconciled = self.reconcile(progress)
        return [
            node for node in self._nodes.values()
            if reconciled[node.id].status == NodeStatus.CURRENT
        ]

    def tree_progress(self, progress: ProgressMap) -> TreeProgress:
        total = len(self._nodes)
        completed = [
            progress[node_id] for node_id in self._nodes
            if self._is_completed(progress, node_id)
        ]
        percentage = round_half_up(100 * len(completed) / total) if total else 0
        return TreeProgress(
            total_nodes=total,
            completed_nodes=len(completed),
            percentage=percentage,
            total_stars=sum(record.stars for record in completed),
            max_stars=3 * total,
        )

    # Transitions

    def complete_node(
        self,
        progress: ProgressMap,
        node_id: str,
        score: int,
        now: Optional[datetime] = None,
    ) -> Tuple[ProgressMap, NodeCompletion]:
        """
        Record an attempt on a node and unlock successors.

        Returns the new progress map and the completion outcome. Raises
        UnknownNode, InvalidScore or PrerequisitesNotMet without touching
        `progress`.

        A re-completion that does not beat best_score only counts the
        attempt: nothing unlocks and no XP is earned.
        """
        node = self.get_node(node_id)
        if isinstance(score, bool) or not 0 <= score <= 100:
            raise InvalidScore(score)

        check = self.check_prerequisites(progress, node_id)
        if not check.met:
            raise PrerequisitesNotMet(node_id, check.missing)

        now = now or datetime.now(timezone.utc)
        updated = self.reconcile(progress)
        record = updated[node_id]
        stars_awarded = MasteryScorer.score_to_stars(score)
        first_completion = record.status != NodeStatus.COMPLETED
        improved = first_completion or score > record.best_score
        attempts = record.attempts + 1

        if not improved:
            updated[node_id] = record.model_copy(update={"attempts": attempts})
            return updated, NodeCompletion(
                node_id=node_id,
                score=score,
                stars_awarded=stars_awarded,
                stars=record.stars,
                best_score=record.best_score,
                attempts=attempts,
                first_completion=False,
                improved=False,
            )

        stars = max(record.stars, stars_awarded)
        xp_earned = MasteryScorer.xp_for_stars(node.xp_reward, stars)
        if not first_completion:
            xp_earned -= MasteryScorer.xp_for_stars(node.xp_reward, record.stars)

        updated[node_id] = record.model_copy(
            update={
                "status": NodeStatus.COMPLETED,
                "stars": stars,
                "best_score": max(record.best_score, score),
                "attempts": attempts,
                "completed_at": record.completed_at or now,
            }
        )

        unlocked: List[str] = []
        for candidate in self._nodes.values():
            if updated[candidate.id].status != NodeStatus.LOCKED:
                continue
            if self._prerequisites_completed(updated, candidate):
                updated[candidate.id] = updated[candidate.id].model_copy(
                    update={"status": NodeStatus.CURRENT}
                )
                unlocked.append(candidate.id)

        return updated, NodeCompletion(
            node_id=node_id,
            score=score,
            stars_awarded=stars_awarded,
            stars=stars,
            best_score=max(record.best_score, score),
            attempts=attempts,
            first_completion=first_completion,
            improved=True,
            xp_earned=max(xp_earned, 0),
            unlocked_node_ids=unlocked,
        )
