# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .workspace import Workspace, WorkspaceMember  # noqa: F401
from .project import Project, ProjectMember  # noqa: F401
from .token_record import TokenRecord  # noqa: F401
from .notification import Notification  # noqa: F401
