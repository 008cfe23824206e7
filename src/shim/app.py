# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from shim.auth.cookies import CookieCodec
from shim.auth.credentials import CredentialStore
from shim.auth.gateway import AuthGateway, safe_redirect_target
from shim.auth.passwords import length_problem, password_problem
from shim.auth.sessions import SessionStore
from shim.config import Settings
from shim.errors import CredentialStoreError
from shim.logging_config import get_logger

logger = get_logger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

LOGIN_FAILED = "Incorrect username/password combination. Please try again."


def build_gateway(settings: Settings) -> AuthGateway:
    credentials = CredentialStore(settings.users_path, debug=settings.debug)
    sessions = SessionStore(
        anonymous_lifespan=settings.anonymous_lifespan,
        authenticated_lifespan=settings.authenticated_lifespan,
        debug=settings.debug,
    )
    cookies = CookieCodec(settings.secret_key, secure=settings.cookie_secure)
    return AuthGateway(
        credentials,
        sessions,
        cookies,
        login_path=settings.login_path,
        trust_proxy=settings.trust_proxy,
    )


def _render(request: Request, template_name: str, ctx: dict):
    """TemplateResponse wrapper injecting the current user."""
    gateway: AuthGateway = request.app.state.gateway
    sess = gateway.get_session_from_request(request)
    base_ctx = {"current_user": sess.user if sess else ""}
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged)


def create_app(settings: Optional[Settings] = None, gateway: Optional[AuthGateway] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    gateway = gateway or build_gateway(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            gateway.sweep,
            IntervalTrigger(seconds=settings.sweep_interval),
            id="session_sweep",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        logger.info("Session sweep scheduled every %ss", settings.sweep_interval)
        try:
            yield
        finally:
            scheduler.shutdown(wait=False)

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway

    # ------------------ Routes ------------------

    @app.get("/")
    def home():
        return RedirectResponse(url=settings.default_redirect, status_code=303)

    @app.get(settings.login_path, response_class=HTMLResponse)
    def login_get(request: Request, redirect: str = "", warn: str = ""):
        target = safe_redirect_target(redirect, settings.default_redirect)
        if gateway.get_session_from_request(request):
            return RedirectResponse(url=target, status_code=303)
        ctx = {"redirect": target, "error": "", "warn": "Please log in." if (redirect and warn) else ""}
        page = _render(request, "login.html", ctx)
        gateway.ensure_session(request, page)
        return page

    @app.post(settings.login_path)
    def login_post(
        request: Request,
        username: str = Form(""),
        password: str = Form(""),
        redirect: str = Form(""),
    ):
        target = safe_redirect_target(redirect, settings.default_redirect)
        resp = RedirectResponse(url=target, status_code=303)
        if gateway.login(username.strip(), password, request, resp):
            logger.info("Redirecting to %s", target)
            return resp
        return _render(request, "login.html", {"redirect": target, "error": LOGIN_FAILED, "warn": ""})

    @app.post("/logout/")
    def logout_post(request: Request):
        resp = RedirectResponse(url=settings.login_path, status_code=303)
        gateway.logout(request, resp)
        return resp

    @app.get("/admin/", response_class=HTMLResponse)
    @gateway.wrap
    def admin(request: Request):
        sess = gateway.get_session_from_request(request)
        if sess is None:
            return gateway.login_redirect(request)
        return _render(
            request,
            "admin.html",
            {
                "user": sess.user,
                "expires_at": sess.expires_at,
                "active_sessions": len(gateway.sessions),
            },
        )

    @app.get("/users/", response_class=HTMLResponse)
    @gateway.wrap
    def users_get(request: Request):
        return _render(request, "users.html", {"users": gateway.credentials.usernames(), "success": "", "failure": ""})

    @app.post("/users/", response_class=HTMLResponse)
    @gateway.wrap
    def users_post(
        request: Request,
        action: str = Form(""),
        old_pass: str = Form(""),
        new_pass: str = Form(""),
        new_pass_confirm: str = Form(""),
        username: str = Form(""),
        password: str = Form(""),
    ):
        sess = gateway.get_session_from_request(request)
        if sess is None:
            return gateway.login_redirect(request)
        success, failure = "", ""
        try:
            if action == "changepass":
                problem = password_problem(old_pass, new_pass, new_pass_confirm)
                if problem:
                    failure = problem
                elif gateway.credentials.change_password(sess.user, old_pass, new_pass):
                    success = "Password successfully changed!"
                else:
                    failure = "Your current password was incorrect. Please try again."
            elif action == "register":
                problem = length_problem(password)
                if problem:
                    failure = problem
                elif gateway.credentials.register(username.strip(), password):
                    success = f"User {username.strip()} registered."
                else:
                    failure = "That username is already taken or not allowed."
            else:
                failure = "Unknown action."
        except CredentialStoreError:
            logger.exception("Credential store write failed for action %s", action)
            failure = "Could not save your change. Please try again later."

        return _render(
            request,
            "users.html",
            {"users": gateway.credentials.usernames(), "success": success, "failure": failure},
        )

    return app
