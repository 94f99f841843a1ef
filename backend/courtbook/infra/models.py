"""Central registry for SQLAlchemy models with string-based relationships.

Importing this module loads all ORM classes that may be referenced by string to
avoid mapper configuration errors when individual models are imported in
isolation.
"""

from courtbook.domain.users import db_models as user_db_models  # noqa: F401
from courtbook.domain.organizations import db_models as organization_db_models  # noqa: F401
from courtbook.domain.locations import db_models as location_db_models  # noqa: F401
from courtbook.domain.resources import db_models as resource_db_models  # noqa: F401
from courtbook.domain.bookings import db_models as booking_db_models  # noqa: F401
