"""Persistence for generated game assessments and student scores."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from study_flow.store.document_store import DocumentStore, StoredDocument

logger = logging.getLogger(__name__)

COURSES_COLLECTION = "courses"
MODULES_SUBCOLLECTION = "modules"
GAME_ASSESSMENTS_SUBCOLLECTION = "gameAssessments"
USERS_COLLECTION = "users"
GAME_SCORES_SUBCOLLECTION = "gameScores"

MAX_SCORE = 100


class GameAssessmentOutput(BaseModel):
    # Generated content varies by game type; unknown keys are kept.
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str
    game_type: str = Field(default="quiz", alias="gameType")
    questions: list[dict[str, Any]] = Field(default_factory=list)


class GameAssessment(GameAssessmentOutput):
    id: Optional[str] = None
    course_id: str = Field(alias="courseId")
    module_id: str = Field(alias="moduleId")
    approved_by_admin: bool = Field(default=False, alias="approvedByAdmin")
    generated_at: Any = Field(default=None, alias="generatedAt")


class GameScoreSubmission(BaseModel):
    assessment_id: str
    course_id: str
    module_id: str
    score: float
    attempts: int = 1
    answers: dict[str, str] = Field(default_factory=dict)


class UserGameScore(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    user_id: str = Field(alias="userId")
    assessment_id: str = Field(alias="assessmentId")
    course_id: str = Field(alias="courseId")
    module_id: str = Field(alias="moduleId")
    score: float
    max_score: int = Field(default=MAX_SCORE, alias="maxScore")
    time_taken: int = Field(default=0, alias="timeTaken")
    attempts: int = 1
    answers: dict[str, str] = Field(default_factory=dict)
    completed_at: Any = Field(default=None, alias="completedAt")


def _require(message: str, *values: Optional[str]) -> None:
    if not all(values):
        raise ValueError(message)


def _assessments_path(course_id: str, module_id: str) -> tuple[str, ...]:
    return (COURSES_COLLECTION, course_id, MODULES_SUBCOLLECTION, module_id, GAME_ASSESSMENTS_SUBCOLLECTION)


def _to_assessment(doc: StoredDocument) -> GameAssessment:
    return GameAssessment.model_validate({**doc.data, "id": doc.id})


async def save_generated_assessment(
    store: DocumentStore,
    course_id: str,
    module_id: str,
    output: GameAssessmentOutput,
) -> str:
    _require("Course ID and Module ID are required.", course_id, module_id)
    data = {
        **output.model_dump(by_alias=True),
        "courseId": course_id,
        "moduleId": module_id,
        "generatedAt": store.timestamp(),
        "approvedByAdmin": False,
    }
    doc_id = await store.add(_assessments_path(course_id, module_id), data)
    logger.info("Generated game assessment saved with ID %s", doc_id)
    return doc_id


async def get_game_assessment(
    store: DocumentStore,
    course_id: str,
    module_id: str,
    assessment_id: str,
) -> Optional[GameAssessment]:
    _require("Course ID, Module ID, and Assessment ID are required.", course_id, module_id, assessment_id)
    data = await store.get(_assessments_path(course_id, module_id) + (assessment_id,))
    if data is None:
        return None
    return _to_assessment(StoredDocument(id=assessment_id, data=data))


async def get_game_assessments_for_module(
    store: DocumentStore,
    course_id: str,
    module_id: str,
) -> list[GameAssessment]:
    _require("Course ID and Module ID are required.", course_id, module_id)
    docs = await store.list(_assessments_path(course_id, module_id), order_by="generatedAt", descending=True)
    return [_to_assessment(doc) for doc in docs]


async def set_game_assessment_approval(
    store: DocumentStore,
    course_id: str,
    module_id: str,
    assessment_id: str,
    approved: bool,
) -> None:
    _require("Course ID, Module ID, and Assessment ID are required.", course_id, module_id, assessment_id)
    path = _assessments_path(course_id, module_id) + (assessment_id,)
    await store.set(path, {"approvedByAdmin": approved}, merge=True)
    logger.info("Assessment %s approval status set to %s", assessment_id, approved)


async def delete_game_assessment(
    store: DocumentStore,
    course_id: str,
    module_id: str,
    assessment_id: str,
) -> None:
    _require("Course ID, Module ID, and Assessment ID are required.", course_id, module_id, assessment_id)
    await store.delete(_assessments_path(course_id, module_id) + (assessment_id,))
    logger.info("Assessment %s deleted", assessment_id)


async def save_user_game_score(store: DocumentStore, user_id: str, submission: GameScoreSubmission) -> None:
    _require("User ID and Assessment ID are required.", user_id, submission.assessment_id)
    score = UserGameScore(
        user_id=user_id,
        assessment_id=submission.assessment_id,
        course_id=submission.course_id,
        module_id=submission.module_id,
        score=submission.score,
        attempts=submission.attempts,
        answers=submission.answers,
    )
    data = score.model_dump(by_alias=True, exclude={"id", "completed_at"})
    data["completedAt"] = store.timestamp()
    path = (USERS_COLLECTION, user_id, GAME_SCORES_SUBCOLLECTION, submission.assessment_id)
    await store.set(path, data, merge=True)
    logger.info(
        "Game score saved for user %s, assessment %s, score %s",
        user_id,
        submission.assessment_id,
        submission.score,
    )


async def get_user_game_score(store: DocumentStore, user_id: str, assessment_id: str) -> Optional[UserGameScore]:
    _require("User ID and Assessment ID are required.", user_id, assessment_id)
    data = await store.get((USERS_COLLECTION, user_id, GAME_SCORES_SUBCOLLECTION, assessment_id))
    if data is None:
        return None
    return UserGameScore.model_validate({**data, "id": assessment_id})
