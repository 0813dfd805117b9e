from enum import Enum
from typing import Optional
from pydantic import BaseModel

class WorkspaceRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

# Roles allowed to manage workspace members and their roles
WORKSPACE_MANAGER_ROLES: frozenset["WorkspaceRole"] = frozenset(
    {WorkspaceRole.OWNER, WorkspaceRole.ADMIN}
)

class InviteRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

class ProjectRole(str, Enum):
    MANAGER = "manager"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"

class ProjectPermission(str, Enum):
    MANAGER = "manager"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"
    NONE = "none"

class ProjectStatus(str, Enum):
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

class TokenPurpose(str, Enum):
    EMAIL_VERIFICATION = "email-verification"
    RESET_PASSWORD = "reset-password"
    WORKSPACE_INVITE = "workspace-invite"
    LOGIN = "login"

class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_COMMENTED = "task_commented"
    TASK_PRIORITY_CHANGED = "task_priority_changed"
    TASK_DUE_SOON = "task_due_soon"
    PROJECT_ADDED = "project_added"
    PROJECT_STATUS_CHANGED = "project_status_changed"
    PROJECT_MEMBER_ADDED = "project_member_added"
    WORKSPACE_INVITED = "workspace_invited"
    WORKSPACE_MEMBER_JOINED = "workspace_member_joined"
    WORKSPACE_UPDATED = "workspace_updated"
    OVERDUE_TASKS = "overdue_tasks"
    WEEKLY_SUMMARY = "weekly_summary"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"

class ResourceType(str, Enum):
    TASK = "Task"
    PROJECT = "Project"
    WORKSPACE = "Workspace"
    USER = "User"

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class MessageResponse(BaseModel):
    message: str

class ErrorResponse(BaseModel):
    message: str
    code: str
    errors: Optional[list] = None
