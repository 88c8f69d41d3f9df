"""
Response payload variants, one schema per content type.

Payloads arrive in the review UI's camelCase shape and are stored verbatim;
these models only validate them. Only ``timeSpent`` is interpreted by the
core.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from studycore.domain import ContentType
from studycore.errors import ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    time_spent: int = Field(..., alias="timeSpent", ge=0, description="Milliseconds on the item")


class CuecardResponseData(_Payload):
    """Self-graded cuecard flip."""

    feedback: Literal["correct", "incorrect"]
    difficulty_rating: int | None = Field(None, alias="difficultyRating", ge=1, le=5)


class McqResponseData(_Payload):
    """Multiple-choice answer."""

    selected_option: str = Field(..., alias="selectedOption")
    all_options: list[str] = Field(..., alias="allOptions", min_length=2)
    correct_option: str = Field(..., alias="correctOption")
    confidence_level: int | None = Field(None, alias="confidenceLevel", ge=1, le=5)


class OpenQuestionResponseData(_Payload):
    """Free-text answer, optionally AI-scored."""

    user_answer: str = Field(..., alias="userAnswer")
    expected_answer: str | None = Field(None, alias="expectedAnswer")
    ai_score: float | None = Field(None, alias="aiScore", ge=0)


ResponsePayload = Union[CuecardResponseData, McqResponseData, OpenQuestionResponseData]

PAYLOAD_MODELS: dict[ContentType, type[_Payload]] = {
    ContentType.CUECARD: CuecardResponseData,
    ContentType.MCQ: McqResponseData,
    ContentType.OPEN_QUESTION: OpenQuestionResponseData,
}


def parse_response_data(content_type: ContentType | str, data: dict[str, Any]) -> ResponsePayload:
    """
    Validate a raw payload against the schema for its content type.

    Raises:
        ValidationError: unknown content type or payload does not match
    """
    content_type = ContentType.parse(content_type)
    if not isinstance(data, dict):
        raise ValidationError(f"{content_type.value} response data must be an object")
    try:
        return PAYLOAD_MODELS[content_type].model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {content_type.value} response data: {e}") from e
