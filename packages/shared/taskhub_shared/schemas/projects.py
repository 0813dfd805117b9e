from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import date, datetime
from .common import ProjectPermission, ProjectRole, ProjectStatus


class ProjectMemberIn(BaseModel):
    user_id: UUID
    role: ProjectRole = ProjectRole.CONTRIBUTOR


class ProjectBase(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PLANNING
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        """Accept a comma-separated string as well as a list."""
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value


class ProjectCreate(ProjectBase):
    members: List[ProjectMemberIn] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None


class ProjectMemberAdd(BaseModel):
    user_id: UUID
    role: ProjectRole = ProjectRole.CONTRIBUTOR


class ProjectMemberRoleUpdate(BaseModel):
    role: ProjectRole


class ProjectMembersReplace(BaseModel):
    members: List[ProjectMemberIn]


class ProjectMemberRead(BaseModel):
    user_id: UUID
    name: str
    email: str
    role: ProjectRole
    added_at: datetime


class ProjectRead(ProjectBase):
    id: UUID
    workspace_id: UUID
    created_by: UUID
    is_archived: bool = False
    members: List[ProjectMemberRead] = []
    created_at: datetime
    updated_at: datetime


class ProjectResponse(BaseModel):
    message: str
    project: ProjectRead
    permission: Optional[ProjectPermission] = None


class ProjectListResponse(BaseModel):
    message: str
    projects: List[ProjectRead]


class ProjectMemberResponse(BaseModel):
    message: str
    member: ProjectMemberRead


class ProjectMembersResponse(BaseModel):
    message: str
    members: List[ProjectMemberRead]
