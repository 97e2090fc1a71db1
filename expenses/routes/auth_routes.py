from flask import Blueprint, current_app, flash, redirect, render_template, url_for

from expenses import limiter
from expenses.auth import (
    AuthenticationError,
    get_auth_manager,
    pop_redirect_target,
    session_required,
)
from expenses.forms import LoginForm

auth = Blueprint("auth", __name__)


@auth.route("/login", methods=["GET", "POST"])
@limiter.limit("5 per minute")
def login():
    """Authenticate a user and start their session."""
    manager = get_auth_manager()
    if manager.current().is_authenticated:
        return redirect(url_for("main.home"))

    form = LoginForm()
    if form.validate_on_submit():
        try:
            manager.sign_in(form.email.data, form.password.data)
        except AuthenticationError as exc:
            flash(str(exc), "danger")
            return redirect(url_for("auth.login"))
        return redirect(pop_redirect_target(url_for("main.home")))

    return render_template(
        "auth/login.html", form=form, demo=current_app.config["DEMO"]
    )


@auth.route("/logout")
@session_required
def logout():
    """Log the current user out."""
    get_auth_manager().sign_out()
    flash("Sessão encerrada.", "info")
    return redirect(url_for("auth.login"))
