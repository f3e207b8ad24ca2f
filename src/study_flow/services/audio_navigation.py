"""Voice navigation: command matching, settings and command logs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from study_flow.context import FlowContext
from study_flow.errors import StudyFlowError
from study_flow.flows.answer_audio_question import answer_audio_question
from study_flow.store.document_store import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
AUDIO_NAV_LOGS_SUBCOLLECTION = "audioNavLogs"
SETTINGS_SUBCOLLECTION = "settings"
AUDIO_NAV_SETTINGS_DOC = "audioNav"

ASK_QUESTION_ACTION = "ask_question"
UNKNOWN_COMMAND_ACTION = "unknown_command"


class AudioNavigationSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_enabled: bool = Field(default=True, alias="isEnabled")
    preferred_language: str = Field(default="en-US", alias="preferredLanguage")


class VoiceCommandMatch(BaseModel):
    action: str
    route: Optional[str] = None
    feedback: str
    was_successful: bool
    error_message: Optional[str] = None


@dataclass(frozen=True)
class NavigationCommand:
    action: str
    route: str
    feedback: str
    phrases: tuple[str, ...]
    admin_only: bool = False


NAVIGATION_COMMANDS: tuple[NavigationCommand, ...] = (
    NavigationCommand("navigate_dashboard", "/", "Navigating to Dashboard...", ("go to dashboard", "open dashboard")),
    NavigationCommand("navigate_courses", "/courses", "Opening Courses...", ("open courses", "show courses")),
    NavigationCommand("navigate_profile", "/profile", "Opening Profile...", ("open profile",)),
    NavigationCommand("navigate_quiz", "/static-quiz", "Starting a Quiz...", ("start quiz", "take a quiz")),
    NavigationCommand(
        "navigate_timetable",
        "/timetable",
        "Opening Timetable...",
        ("open timetable", "show timetable", "my schedule"),
    ),
    NavigationCommand("navigate_admin", "/admin", "Opening Admin Panel...", ("open admin", "admin panel"), True),
    NavigationCommand(
        "navigate_live_meetings",
        "/live-meetings",
        "Opening Live Meetings...",
        ("open live meetings", "show live meetings"),
    ),
)


def match_voice_command(
    command: str,
    *,
    student_id: Optional[str] = None,
    admin_student_ids: Iterable[str] = (),
) -> VoiceCommandMatch:
    """Map a transcript to a navigation action by keyword, first match wins."""
    lower_command = command.lower()
    for nav in NAVIGATION_COMMANDS:
        if not any(phrase in lower_command for phrase in nav.phrases):
            continue
        if nav.admin_only and (student_id is None or student_id not in set(admin_student_ids)):
            return VoiceCommandMatch(
                action=f"{nav.action}_denied",
                feedback="Admin panel access denied.",
                was_successful=False,
                error_message="Access denied to admin panel",
            )
        return VoiceCommandMatch(action=nav.action, route=nav.route, feedback=nav.feedback, was_successful=True)

    if lower_command.strip().startswith("ask") or "?" in lower_command:
        # Answered by process_voice_command; success is decided there.
        return VoiceCommandMatch(action=ASK_QUESTION_ACTION, feedback=f'Command: "{command}"', was_successful=False)

    return VoiceCommandMatch(
        action=UNKNOWN_COMMAND_ACTION,
        feedback="Sorry, I didn't understand that command.",
        was_successful=False,
        error_message="Unrecognized command",
    )


async def process_voice_command(
    context: FlowContext,
    user_id: Optional[str],
    command: str,
    *,
    student_id: Optional[str] = None,
    admin_student_ids: Iterable[str] = (),
) -> VoiceCommandMatch:
    match = match_voice_command(command, student_id=student_id, admin_student_ids=admin_student_ids)

    if match.action == ASK_QUESTION_ACTION:
        question: dict[str, Any] = {"question": command}
        if student_id:
            question["studentId"] = student_id
        try:
            result = await answer_audio_question(context, question)
        except StudyFlowError as exc:
            logger.warning("Voice question failed for user %s: %s", user_id, exc)
            match = match.model_copy(
                update={
                    "feedback": "Sorry, I couldn't answer that question.",
                    "was_successful": False,
                    "error_message": str(exc),
                }
            )
        else:
            match = match.model_copy(update={"feedback": result["answer"], "was_successful": True})

    if user_id:
        await log_audio_command(
            context.require_store(),
            user_id,
            command,
            match.action,
            match.was_successful,
            match.error_message,
        )
    return match


async def log_audio_command(
    store: DocumentStore,
    user_id: str,
    command: str,
    route: str,
    was_successful: bool,
    error_message: Optional[str] = None,
) -> str:
    if not user_id or not command or not route:
        raise ValueError("User ID, command, and route are required to log audio navigation.")

    log_data: dict[str, Any] = {
        "userId": user_id,
        "command": command,
        "route": route,
        "wasSuccessful": was_successful,
        "timestamp": store.timestamp(),
    }
    if error_message:
        log_data["errorMessage"] = error_message

    doc_id = await store.add((USERS_COLLECTION, user_id, AUDIO_NAV_LOGS_SUBCOLLECTION), log_data)
    logger.info("Audio command logged with ID %s for user %s", doc_id, user_id)
    return doc_id


def _settings_path(user_id: str) -> tuple[str, ...]:
    return (USERS_COLLECTION, user_id, SETTINGS_SUBCOLLECTION, AUDIO_NAV_SETTINGS_DOC)


async def get_audio_navigation_settings(store: DocumentStore, user_id: str) -> AudioNavigationSettings:
    if not user_id:
        raise ValueError("User ID is required to get audio navigation settings.")
    data = await store.get(_settings_path(user_id))
    if data is None:
        return AudioNavigationSettings()
    return AudioNavigationSettings.model_validate(data)


async def update_audio_navigation_settings(
    store: DocumentStore,
    user_id: str,
    settings: AudioNavigationSettings,
) -> None:
    if not user_id:
        raise ValueError("User ID is required to update audio navigation settings.")
    await store.set(_settings_path(user_id), settings.model_dump(by_alias=True), merge=True)
    logger.info("Audio navigation settings saved for user %s", user_id)
