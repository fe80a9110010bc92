"""
Credential store: owns user identity records.

Password hashing is delegated to werkzeug.security; the method string comes
from SecurityConfig so tests can trade strength for speed.
"""
import logging

from werkzeug.security import generate_password_hash, check_password_hash

from martpos.models import AppUser, UserRole, UserStatus, GLOBAL_TENANT_ID
from martpos.utils.identifiers import generate_public_id
from martpos.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Checked against when the email is unknown so both login failure paths cost
# one hash verification.
_DUMMY_HASH = generate_password_hash('martpos-dummy-password', method='pbkdf2:sha256:1000')


def normalize_email(email):
    return (email or '').strip().lower()


class CredentialStore:
    """Read and mutate AppUser records within a SQLAlchemy session."""

    def __init__(self, session, config):
        self.session = session
        self.config = config

    # -- lookups ---------------------------------------------------------

    def get_by_user_id(self, user_id, for_update=False):
        query = self.session.query(AppUser).filter_by(user_id=user_id)
        if for_update:
            # Row lock where supported (ignored by SQLite)
            query = query.with_for_update()
        return query.first()

    def find_by_email(self, email, tenant_id=None):
        """
        Find a user by email.

        Emails are unique per tenant. Without a tenant the first match wins,
        preferring active accounts.
        """
        query = self.session.query(AppUser).filter_by(email=normalize_email(email))
        if tenant_id:
            return query.filter_by(tenant_id=tenant_id).first()
        users = query.order_by(AppUser.id.asc()).all()
        for user in users:
            if user.is_active:
                return user
        return users[0] if users else None

    def super_admin_exists(self):
        return self.session.query(AppUser.id).filter_by(
            role=UserRole.SUPER_ADMIN.value
        ).first() is not None

    def get_super_admin(self):
        return self.session.query(AppUser).filter_by(
            role=UserRole.SUPER_ADMIN.value
        ).order_by(AppUser.id.asc()).first()

    def email_taken(self, tenant_id, email):
        return self.session.query(AppUser.id).filter_by(
            tenant_id=tenant_id, email=normalize_email(email)
        ).first() is not None

    # -- passwords -------------------------------------------------------

    def hash_password(self, password):
        return generate_password_hash(password, method=self.config.password_hash_method)

    def verify_password(self, user, password):
        """Check a password; with no user, burn a verification and return False."""
        if user is None or not user.password_hash:
            check_password_hash(_DUMMY_HASH, password or '')
            return False
        return check_password_hash(user.password_hash, password or '')

    # -- mutations -------------------------------------------------------

    def create_user(self, tenant_id, email, password, role, first_name=None,
                    last_name=None, phone=None, created_by=None,
                    status=UserStatus.ACTIVE.value):
        """
        Stage a new user in the session (caller commits).

        Raises:
            ValueError: If role/tenant combination breaks the global-tenant rule.
        """
        role_value = role.value if isinstance(role, UserRole) else role
        if role_value not in {r.value for r in UserRole}:
            raise ValueError(f"Unknown role: {role_value}")
        if (role_value == UserRole.SUPER_ADMIN.value) != (tenant_id == GLOBAL_TENANT_ID):
            raise ValueError("super_admin users, and only they, belong to the global tenant")

        user = AppUser(
            user_id=generate_public_id('user'),
            tenant_id=tenant_id,
            email=normalize_email(email),
            password_hash=self.hash_password(password),
            role=role_value,
            status=status,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            created_by=created_by,
        )
        self.session.add(user)
        self.session.flush()
        logger.info(f"Staged user {user.user_id} role={role_value} tenant={tenant_id}")
        return user

    def set_status(self, user, status):
        status_value = status.value if isinstance(status, UserStatus) else status
        if status_value not in {s.value for s in UserStatus}:
            raise ValueError(f"Unknown user status: {status_value}")
        user.status = status_value
        return user

    def touch_last_login(self, user):
        user.last_login = utcnow()
