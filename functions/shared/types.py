# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import List, Optional


class ProjectType(StrEnum):
    SOFTWARE = "software"
    MARKETING = "marketing"
    DESIGN = "design"
    RESEARCH = "research"
    OTHER = "other"


class EstimationMethod(StrEnum):
    FIBONACCI = "fibonacci"
    TSHIRT = "tshirt"
    POWERS_OF_2 = "powers_of_2"
    LINEAR = "linear"


class SprintDuration(StrEnum):
    ONE_WEEK = "1_week"
    TWO_WEEKS = "2_weeks"
    THREE_WEEKS = "3_weeks"
    FOUR_WEEKS = "4_weeks"


class SprintStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EpicStatus(StrEnum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


EPIC_COLORS = [
    ("Blue", "#3B82F6"),
    ("Purple", "#8B5CF6"),
    ("Green", "#10B981"),
    ("Yellow", "#F59E0B"),
    ("Red", "#EF4444"),
    ("Indigo", "#6366F1"),
    ("Pink", "#EC4899"),
    ("Teal", "#14B8A6"),
    ("Orange", "#FB923C"),
    ("Cyan", "#06B6D4"),
]


@dataclass
class ProjectFields:
    """The caller-supplied fields of a project.

    Classification fields are open enumerations: the known values live in
    ProjectType, EstimationMethod and SprintDuration, but any string is stored.
    """

    name: str
    description: str = ""
    company_name: str = ""
    project_type: str = ProjectType.SOFTWARE
    estimation_method: str = EstimationMethod.FIBONACCI
    sprint_duration: str = SprintDuration.TWO_WEEKS


@dataclass
class Project:
    """A project document from the `projects` collection."""

    id: str
    name: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    company_name: str = ""
    project_type: str = ProjectType.SOFTWARE
    estimation_method: str = EstimationMethod.FIBONACCI
    sprint_duration: str = SprintDuration.TWO_WEEKS
    # Denormalized count of sprints whose project_id is this project's id.
    sprints_count: int = 0


@dataclass
class Sprint:
    """The subset of a sprint document that project bookkeeping reads."""

    id: str
    project_id: str
    status: str = SprintStatus.DRAFT
    name: str = ""


@dataclass
class EpicFields:
    name: str
    project_id: str
    owner_id: str
    description: str = ""
    acceptance_criteria: List[str] = field(default_factory=list)
    color: str = "#3B82F6"
    icon: Optional[str] = None
    status: str = EpicStatus.PLANNING
    target_date: Optional[datetime] = None
    order: Optional[int] = None


@dataclass
class Epic:
    id: str
    name: str
    project_id: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    acceptance_criteria: List[str] = field(default_factory=list)
    color: str = "#3B82F6"
    icon: Optional[str] = None
    status: str = EpicStatus.PLANNING
    story_count: int = 0
    completed_story_count: int = 0
    target_date: Optional[datetime] = None
    order: Optional[int] = None
