"""Authenticated session state and the view guard built on it.

The :class:`AuthSessionManager` is the single owner of "who is signed in".
Views reach it through :func:`get_auth_manager` and other parts of the
application can :meth:`~AuthSessionManager.subscribe` to sign-in and
sign-out events.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from functools import wraps
from typing import Callable, List, Optional
from urllib.parse import urlparse

from flask import (
    current_app,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from expenses import db, login_manager

EXTENSION_KEY = "auth_session"
REDIRECT_KEY = "redirect_after_login"


class GuardState(enum.Enum):
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AuthEvent(enum.Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


class AuthenticationError(Exception):
    """Raised when credentials are rejected."""


class InactiveAccountError(AuthenticationError):
    """Raised when the account exists but has not been activated."""


@dataclass(frozen=True)
class AuthSession:
    state: GuardState
    user: Optional[object] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is GuardState.AUTHENTICATED

    @property
    def user_id(self) -> Optional[int]:
        return getattr(self.user, "id", None)


Listener = Callable[[AuthEvent, AuthSession], None]


class AuthSessionManager:
    """Sign users in and out and notify subscribers of the change."""

    def __init__(self, app=None) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_KEY] = self

    def current(self) -> AuthSession:
        """Return a snapshot of the session for the active request.

        The snapshot is ``RESOLVING`` when the user store cannot be read.
        """

        try:
            user = current_user._get_current_object()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.warning("Could not resolve the signed-in user.")
            return AuthSession(GuardState.RESOLVING)
        if user is None or not user.is_authenticated:
            return AuthSession(GuardState.UNAUTHENTICATED)
        return AuthSession(GuardState.AUTHENTICATED, user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Check the credentials and start a session.

        Raises:
            AuthenticationError: If the email or password is wrong.
            InactiveAccountError: If the account is not active.
        """

        from expenses.models import User

        user = User.query.filter_by(email=(email or "").strip()).first()
        if user is None or not check_password_hash(user.password, password or ""):
            raise AuthenticationError("E-mail ou senha inválidos.")
        if not user.active:
            raise InactiveAccountError(
                "Conta inativa. Procure o administrador do sistema."
            )
        login_user(user)
        snapshot = AuthSession(GuardState.AUTHENTICATED, user)
        self._notify(AuthEvent.SIGNED_IN, snapshot)
        return snapshot

    def sign_out(self) -> AuthSession:
        user = self.current().user
        logout_user()
        snapshot = AuthSession(GuardState.UNAUTHENTICATED, user)
        if user is not None:
            self._notify(AuthEvent.SIGNED_OUT, snapshot)
        return snapshot

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""

        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: AuthEvent, snapshot: AuthSession) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event, snapshot)


def get_auth_manager(app=None) -> AuthSessionManager:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def _is_local_path(target: Optional[str]) -> bool:
    if not target or not target.startswith("/") or target.startswith("//"):
        return False
    parsed = urlparse(target)
    return not parsed.scheme and not parsed.netloc


def remember_requested_path() -> None:
    """Store the latest protected path so login can return to it."""
    path = request.full_path if request.query_string else request.path
    session[REDIRECT_KEY] = path


def pop_redirect_target(default: str) -> str:
    """Return the stored post-login path, or ``default`` if none is usable."""

    target = session.pop(REDIRECT_KEY, None)
    return target if _is_local_path(target) else default


def session_required(view):
    """Render ``view`` only for signed-in users."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        state = get_auth_manager().current().state
        if state is GuardState.AUTHENTICATED:
            return view(*args, **kwargs)
        if state is GuardState.RESOLVING:
            return render_template("loading.html"), 503
        remember_requested_path()
        return redirect(url_for(login_manager.login_view))

    return wrapped
