"""
Document Models

Pydantic shapes for the config and stats documents. Used as cache validators:
a document that does not fit is rejected before it is cached.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError


class _Document(BaseModel):
    model_config = ConfigDict(extra='allow')


class MaintenanceSettings(_Document):
    enabled: Union[bool, int, str, None] = False
    passphrase_sha256: Optional[str] = None
    passphrase_hint: Optional[str] = None
    message: Optional[str] = None


class Phase(_Document):
    id: Union[str, int]
    label: Optional[str] = None
    days: List[int] = []


class StoryArc(_Document):
    phases: List[Phase] = []


class Scoring(_Document):
    categories: List[Dict[str, Any]] = []
    metrics: List[Dict[str, Any]] = []


class ConfigDocument(_Document):
    project: Dict[str, Any] = {}
    characters: Any = None
    scoring: Scoring = Scoring()
    story_arc: StoryArc = StoryArc()
    maintenance: Optional[MaintenanceSettings] = None


class StatsDocument(_Document):
    scores: Dict[str, Any] = {}
    metrics: Dict[str, Any] = {}
    phase: Union[str, int, None] = None
    current_day: Optional[int] = None
    total_days: Optional[int] = None
    current_episode: Optional[int] = None
    next_episode_date: Optional[str] = None


def is_config_document(data: Any) -> bool:
    """Validator for the config document."""
    return _fits(ConfigDocument, data)


def is_stats_document(data: Any) -> bool:
    """Validator for the stats document."""
    return _fits(StatsDocument, data)


def is_episode_list(data: Any) -> bool:
    return isinstance(data, list)


def _fits(model, data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    try:
        model.model_validate(data)
    except PydanticValidationError:
        return False
    return True
