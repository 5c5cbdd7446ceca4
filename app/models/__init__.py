from app.models.audit import AuditEvent  # noqa: F401
from app.models.person import AccountRole, ApiKey, Person, PersonStatus  # noqa: F401
from app.models.registration import (  # noqa: F401
    RegistrationRequest,
    RegistrationStatus,
)
from app.models.monograph import (  # noqa: F401
    Collaborator,
    CollaboratorPermission,
    CollaboratorRole,
    Comment,
    Document,
    DocumentStatus,
    DocumentStatusChange,
    RoleFamily,
    Version,
)
