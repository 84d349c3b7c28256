# SQLModel definitions - imported here to ensure metadata is populated for Alembic.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .profile import Profile  # noqa: F401
from .membership import Membership  # noqa: F401
from .invite import Invite  # noqa: F401
from .invoice import Invoice  # noqa: F401
