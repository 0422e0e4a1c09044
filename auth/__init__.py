"""Authentication module using password credentials and JWT sessions.

This module provides:
1. Account registration and administrative user provisioning
2. Password login issuing a single active session per user
3. The ``Actor`` context and a FastAPI dependency resolving it from a bearer token
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt
from pydantic import BaseModel

from common import UserRole, UnauthorizedError, ConflictError, IssueCollector
from config import settings_conf
from database import get_store
from database.query import eq
from database.store import Store

# Configure logging
logger = logging.getLogger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MAX_PASSWORD_BYTES = 72  # bcrypt input limit
SELF_SERVICE_ROLES = (UserRole.BUYER, UserRole.SELLER)


class Actor(BaseModel):
    """The authenticated caller of an operation."""
    id: uuid.UUID
    role: UserRole


class AuthError(UnauthorizedError):
    """Base exception for authentication errors."""
    pass

class InvalidCredentialsError(AuthError):
    """Raised when an email/password pair does not match."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a session has expired."""
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def check_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a user record safe to return to clients."""
    return {k: v for k, v in user.items() if k != 'hashed_password'}


class AuthManager:
    """Manages accounts and sessions."""

    def __init__(self, store: Optional[Store] = None):
        """Initialize auth manager.

        Args:
            store: Optional entity store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self):
        """Ensure entity store is available."""
        if not self.store:
            self.store = await get_store()

    def _validate_account(self, name: str, email: str, password: str) -> None:
        issues = IssueCollector()
        if not name or len(name.strip()) < 2:
            issues.add('name', 'Name must be at least 2 characters')
        if not email or not EMAIL_PATTERN.match(email):
            issues.add('email', 'Invalid email address')
        if not password or len(password) < 8:
            issues.add('password', 'Password must be at least 8 characters')
        elif len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
            issues.add('password', f'Password must be at most {MAX_PASSWORD_BYTES} bytes')
        issues.raise_if_any()

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.BUYER
    ) -> Dict[str, Any]:
        """Create a user with any role.

        Args:
            name: Display name
            email: Login email, unique across users
            password: Plain text password, stored as a bcrypt hash
            role: Account role

        Returns:
            The created user without its password hash

        Raises:
            ValidationError: If a field is invalid
            ConflictError: If the email is already registered
        """
        await self.ensure_store()
        role = UserRole(role)
        email = (email or '').strip().lower()
        self._validate_account(name, email, password)

        async with self.store.atomic() as session:
            if await session.find_one('users', [eq('email', email)]):
                raise ConflictError("User with this email already exists")
            user = await session.create('users', {
                'name': name.strip(),
                'email': email,
                'hashed_password': hash_password(password),
                'role': role.value,
                'rating': 0,
                'verified_seller': False,
                'transaction_count': 0,
                'successful_transactions': 0
            })

        logger.info(f"Created {role.value} user {user['id']}")
        return public_user(user)

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.BUYER
    ) -> Dict[str, Any]:
        """Self-service registration, limited to buyer and seller accounts."""
        try:
            role = UserRole(role)
        except ValueError:
            role = None
        if role not in SELF_SERVICE_ROLES:
            issues = IssueCollector()
            issues.add('role', 'Role must be BUYER or SELLER')
            issues.raise_if_any()
        return await self.create_user(name, email, password, role)

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Check credentials and open a session.

        Returns:
            Dict containing:
                - token: Session token for future requests
                - expires_at: Session expiration timestamp
                - user: The logged in user

        Raises:
            InvalidCredentialsError: If the email or password is wrong
        """
        await self.ensure_store()
        email = (email or '').strip().lower()

        async with self.store.atomic() as session:
            user = await session.find_one('users', [eq('email', email)])
            if not user or not password or not check_password(password, user['hashed_password']):
                raise InvalidCredentialsError("Invalid email or password")

            expires_at = datetime.now(timezone.utc) + timedelta(days=settings_conf['session_expiry_days'])
            token = jwt.encode(
                {
                    'sub': str(user['id']),
                    'jti': uuid.uuid4().hex,
                    'exp': int(expires_at.timestamp())
                },
                settings_conf['jwt_secret'],
                algorithm=JWT_ALGORITHM
            )

            # Revoke any existing sessions for this user
            await self._revoke_sessions(session, user['id'])

            await session.create('auth_sessions', {
                'user_id': user['id'],
                'token': token,
                'expires_at': expires_at,
                'revoked': False
            })

        logger.info(f"User {user['id']} logged in")
        return {
            'token': token,
            'expires_at': expires_at.isoformat(),
            'user': public_user(user)
        }

    async def verify_session(self, token: str) -> Actor:
        """Verify a session token.

        Returns:
            The authenticated actor, with the role currently stored for the user

        Raises:
            SessionExpiredError: If session has expired
            AuthError: For other verification errors
        """
        await self.ensure_store()

        try:
            payload = jwt.decode(token, settings_conf['jwt_secret'], algorithms=[JWT_ALGORITHM])
            user_id = uuid.UUID(payload['sub'])
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except (jwt.JWTError, KeyError, ValueError) as e:
            raise AuthError(f"Invalid token: {str(e)}")

        session = await self.store.find_one('auth_sessions', [
            eq('user_id', user_id),
            eq('token', token),
            eq('revoked', False)
        ])
        if not session:
            raise AuthError("Session not found or revoked")
        if session['expires_at'] < datetime.now(timezone.utc):
            raise SessionExpiredError("Session has expired")

        user = await self.store.get('users', user_id)
        if not user:
            raise AuthError("User no longer exists")

        return Actor(id=user['id'], role=user['role'])

    async def _revoke_sessions(self, session, user_id: uuid.UUID) -> int:
        active = await session.find('auth_sessions', [eq('user_id', user_id), eq('revoked', False)])
        now = datetime.now(timezone.utc)
        for row in active:
            await session.update('auth_sessions', row['id'], {'revoked': True, 'revoked_at': now})
        return len(active)

    async def logout(self, user_id: uuid.UUID) -> None:
        """Log out by revoking the active sessions of a user."""
        await self.ensure_store()
        async with self.store.atomic() as session:
            revoked = await self._revoke_sessions(session, user_id)
        logger.info(f"User {user_id} logged out ({revoked} session(s) revoked)")


# Create global instance
manager = AuthManager()

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)

async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    store: Store = Depends(get_store)
) -> Actor:
    """FastAPI dependency for getting the authenticated actor.

    Raises:
        HTTPException: If authentication fails
    """
    try:
        return await AuthManager(store).verify_session(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

# Export public interface
__all__ = [
    'manager',
    'Actor',
    'AuthManager',
    'AuthError',
    'InvalidCredentialsError',
    'SessionExpiredError',
    'get_current_actor',
    'hash_password',
    'check_password',
    'public_user'
]
