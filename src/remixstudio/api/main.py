"""Remix Studio FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Reference data** (stacks, templates, trending) is loaded once from
  ``catalog.json`` and served to the frontend via ``GET /api/config``.
- **Image generation** is performed by the configured
  :class:`~remixstudio.core.backends.GenerationBackendBase`, selected from
  the backend registry at startup.
- **Authentication** is delegated to the configured auth provider.  Sign-in
  endpoints return an access token; later requests carry it as
  ``Authorization: Bearer <token>`` and the provider resolves it to a user
  per request.  There is no process-wide signed-in user.
- **Remix sessions** live in a process-local
  :class:`~remixstudio.api.session_store.SessionStore`.  Each session is
  driven by its own :class:`~remixstudio.ui.state.RemixController` and is
  visible only to the user who owns it.

Endpoints
---------
======  ============================================  ==============================
Method  Path                                          Purpose
======  ============================================  ==============================
GET     ``/api/config``                               Stacks, templates, trending
POST    ``/api/generate``                             Stateless one-shot generation
POST    ``/api/auth/signup``                          Create an account
POST    ``/api/auth/login``                           Email/password sign-in
POST    ``/api/auth/google``                          Google sign-in
POST    ``/api/auth/logout``                          Sign out
GET     ``/api/auth/me``                              Current user (or null)
POST    ``/api/sessions``                             Open a session for a template
GET     ``/api/sessions/{id}``                        Session snapshot
DELETE  ``/api/sessions/{id}``                        Forget a session
PUT     ``/api/sessions/{id}/focus``                  Drop zone under the pointer
POST    ``/api/sessions/{id}/assets/{role}``          Picker/drop upload
POST    ``/api/sessions/{id}/paste``                  Page-wide paste
POST    ``/api/sessions/{id}/remix``                  Submit
POST    ``/api/sessions/{id}/retry``                  Replay the last request
POST    ``/api/sessions/{id}/reset``                  Start over
GET     ``/api/sessions/{id}/results/{index}``        Download one result
======  ============================================  ==============================

Usage
-----
CLI (installed entry point)::

    remix-studio

Direct invocation::

    python -m remixstudio.api.main
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from remixstudio import __version__
from remixstudio.api.models import (
    AuthResponse,
    CreateSessionRequest,
    FocusRequest,
    GenerateRequest,
    GenerateResponse,
    GoogleSignInRequest,
    LoginRequest,
    SessionView,
    SignUpRequest,
    UserResponse,
)
from remixstudio.api.session_store import SessionStore
from remixstudio.core.auth import AuthError, AuthProviderBase, AuthRequiredError, create_auth_provider
from remixstudio.core.backends import (
    BackendConfigurationError,
    BackendError,
    GenerationBackendBase,
    backend_registry,
)
from remixstudio.core.catalog import ASPECT_RATIOS, Catalog, load_catalog
from remixstudio.core.config import config
from remixstudio.core.imaging import decode_data_url, encode_data_url, normalize_format
from remixstudio.core.models import AssetRole, AuthUser, ImageAsset, Template
from remixstudio.ui.state import RemixController, SessionAccessError, StateTransitionError
from remixstudio.ui.validation import ValidationError, validate_image

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application lifecycle: catalog, auth, backend and session store.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Loads the catalog, selects the auth provider and generation backend
        from :data:`~remixstudio.core.config.config`, and stores them with a
        fresh :class:`SessionStore` on ``app.state``.  The backend creates
        its SDK client lazily, so a missing API key does not prevent startup.

    On shutdown:
        Drops every in-memory session.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    app.state.catalog = load_catalog(config.data_dir)
    app.state.auth = create_auth_provider(config)
    app.state.backend = backend_registry.instantiate(config.generation_backend, config)
    app.state.sessions = SessionStore(
        app.state.backend,
        max_sessions=config.max_sessions,
        ttl_seconds=config.session_ttl_seconds,
    )
    logger.info(
        f"Remix Studio ready (backend={app.state.backend.name}, auth={app.state.auth.name})"
    )

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    app.state.sessions.clear()
    logger.info("Session store cleared on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Remix Studio",
    description="Template-driven image remixing API.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _catalog() -> Catalog:
    return app.state.catalog


def _auth() -> AuthProviderBase:
    return app.state.auth


def _backend() -> GenerationBackendBase:
    return app.state.backend


_bearer = HTTPBearer(auto_error=False)


def _access_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str | None:
    return credentials.credentials if credentials is not None else None


def _current_user(access_token: str | None = Depends(_access_token)) -> AuthUser | None:
    """Resolve the caller from their bearer token; ``None`` when anonymous."""
    return _auth().get_current_user(access_token)


def _controller(session_id: str, user: AuthUser | None) -> RemixController:
    """Look up a session controller on behalf of ``user``.

    Unknown ids, and sessions owned by another user, answer 404.  A session
    with an owner answers 401 to an anonymous caller.
    """
    try:
        return app.state.sessions.get(session_id, user)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0]) from e
    except AuthRequiredError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


@contextmanager
def _session_errors() -> Iterator[None]:
    """Translate remix session errors into HTTP responses.

    - :class:`AuthRequiredError` -> 401 (client shows the sign-in prompt)
    - :class:`ValidationError` -> 422 with the user-facing message
    - :class:`StateTransitionError` -> 409
    - :class:`SessionAccessError` -> 404 (another user claimed the session)
    """
    try:
        yield
    except AuthRequiredError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except StateTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except SessionAccessError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


async def _read_upload(upload: UploadFile) -> ImageAsset:
    data = await upload.read()
    return ImageAsset(
        data=data,
        mime_type=upload.content_type or "",
        filename=upload.filename or "",
    )


def _resolve_template(req: GenerateRequest) -> Template:
    """Build the template for a stateless request.

    Catalog templates supply their prompt and aspect ratio; unknown ids get
    a bare template so the backend falls back to its generic instruction.
    ``template_options`` override both fields.
    """
    try:
        template = _catalog().get_template(req.template_id)
    except KeyError:
        template = Template(id=req.template_id, name=req.template_id, stack_id="")

    options = req.template_options
    if options is None:
        return template

    if options.aspect_ratio and options.aspect_ratio not in ASPECT_RATIOS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported aspect ratio: {options.aspect_ratio}",
        )
    return dataclasses.replace(
        template,
        prompt=options.instruction or template.prompt,
        aspect_ratio=options.aspect_ratio or template.aspect_ratio,
    )


# ---------------------------------------------------------------------------
# Configuration.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return the reference data the frontend renders.

    Returns:
        Dictionary with keys ``version``, ``stacks``, ``templates``,
        ``trending`` (template ids) and ``aspect_ratios``.
    """
    catalog = _catalog()
    return {
        "version": __version__,
        "stacks": [dataclasses.asdict(s) for s in catalog.stacks],
        "templates": [dataclasses.asdict(t) for t in catalog.templates],
        "trending": list(catalog.trending_ids),
        "aspect_ratios": list(ASPECT_RATIOS),
    }


# ---------------------------------------------------------------------------
# Stateless generation.
# ---------------------------------------------------------------------------


@app.post("/api/generate", response_model=GenerateResponse)
def generate_images(req: GenerateRequest) -> GenerateResponse:
    """Run one generation from data-URL images.

    Declared as a plain function so FastAPI runs the blocking backend call
    in its threadpool.

    Raises:
        HTTPException: 400 for missing or invalid image data, 500 when the
            backend is misconfigured, 502 for backend failures (including an
            empty result).
    """
    primary = decode_data_url(req.image_data, filename="image")
    if primary is None:
        raise HTTPException(status_code=400, detail="Missing image_data (main image)")

    secondary = None
    if req.wearable_data:
        secondary = decode_data_url(req.wearable_data, filename="wearable")
        if secondary is None:
            raise HTTPException(status_code=400, detail="Invalid wearable_data")

    try:
        validate_image(primary)
        if secondary is not None:
            validate_image(secondary)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    template = _resolve_template(req)

    try:
        images = _backend().generate(template, primary, secondary)
    except BackendConfigurationError as e:
        logger.error(f"Generation unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    except BackendError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return GenerateResponse(images=[encode_data_url(image) for image in images])


# ---------------------------------------------------------------------------
# Authentication.
# ---------------------------------------------------------------------------


@app.post("/api/auth/signup", response_model=AuthResponse)
def sign_up(req: SignUpRequest) -> AuthResponse:
    try:
        session = _auth().sign_up(req.email, req.password, req.name)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return AuthResponse.from_session(session)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(req: LoginRequest) -> AuthResponse:
    try:
        session = _auth().login(req.email, req.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return AuthResponse.from_session(session)


@app.post("/api/auth/google", response_model=AuthResponse)
def sign_in_with_google(req: GoogleSignInRequest) -> AuthResponse:
    try:
        session = _auth().sign_in_with_google(req.id_token)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return AuthResponse.from_session(session)


@app.post("/api/auth/logout")
def logout(access_token: str | None = Depends(_access_token)) -> dict:
    """Revoke the caller's token.  Other clients stay signed in."""
    try:
        _auth().logout(access_token)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True}


@app.get("/api/auth/me")
def current_user(user: AuthUser | None = Depends(_current_user)) -> dict:
    return {"user": UserResponse.from_user(user).model_dump(mode="json") if user else None}


# ---------------------------------------------------------------------------
# Remix sessions.
# ---------------------------------------------------------------------------


@app.post("/api/sessions", response_model=SessionView)
async def create_session(
    req: CreateSessionRequest,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    """Open a remix session for a template.

    A signed-in caller owns the session at once; an anonymous one is
    claimed by the first signed-in user to add an image or remix.

    Raises:
        HTTPException: 404 if the template does not exist.
    """
    catalog = _catalog()
    try:
        template = catalog.get_template(req.template_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0]) from e
    controller = app.state.sessions.create(template, catalog.stack_for(template), owner=user)
    return SessionView.from_session(controller.session)


@app.get("/api/sessions/{session_id}", response_model=SessionView)
async def get_session(
    session_id: str,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    return SessionView.from_session(_controller(session_id, user).session)


@app.delete("/api/sessions/{session_id}")
async def delete_session(
    session_id: str,
    user: AuthUser | None = Depends(_current_user),
) -> dict:
    _controller(session_id, user)
    app.state.sessions.discard(session_id)
    return {"success": True}


@app.put("/api/sessions/{session_id}/focus", response_model=SessionView)
async def set_focus(
    session_id: str,
    req: FocusRequest,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    controller = _controller(session_id, user)
    controller.focus(req.zone)
    return SessionView.from_session(controller.session)


@app.post("/api/sessions/{session_id}/assets/{role}", response_model=SessionView)
async def upload_asset(
    session_id: str,
    role: AssetRole,
    file: UploadFile = File(...),
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    """Assign a picked or dropped image to an explicit slot.

    Raises:
        HTTPException: 401 when signed out, 422 when the image is rejected,
            409 while submitting or showing results.
    """
    controller = _controller(session_id, user)
    asset = await _read_upload(file)
    with _session_errors():
        controller.assign(user, role, asset)
    return SessionView.from_session(controller.session)


@app.post("/api/sessions/{session_id}/paste")
async def paste_assets(
    session_id: str,
    files: list[UploadFile] | None = File(None),
    items: list[UploadFile] | None = File(None),
    user: AuthUser | None = Depends(_current_user),
) -> dict:
    """Route a page-wide paste to a slot.

    ``files`` carries clipboard files and ``items`` raw clipboard items.

    Returns:
        ``{"role": "primary" | "secondary" | null, "session": SessionView}``;
        ``role`` is null when the paste was ignored.
    """
    controller = _controller(session_id, user)
    pasted_files = [await _read_upload(f) for f in files or []]
    pasted_items = [await _read_upload(i) for i in items or []]
    with _session_errors():
        role = controller.paste(user, pasted_files, pasted_items)
    return {
        "role": role.value if role else None,
        "session": SessionView.from_session(controller.session).model_dump(mode="json"),
    }


@app.post("/api/sessions/{session_id}/remix", response_model=SessionView)
def remix(
    session_id: str,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    """Submit the session's images to the backend.

    Backend and validation failures are reported in the session snapshot
    (``status == "failed"``), not as HTTP errors.

    Raises:
        HTTPException: 401 when signed out, 409 when results are showing.
    """
    controller = _controller(session_id, user)
    with _session_errors():
        controller.submit(user)
    return SessionView.from_session(controller.session)


@app.post("/api/sessions/{session_id}/retry", response_model=SessionView)
def retry(
    session_id: str,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    controller = _controller(session_id, user)
    with _session_errors():
        controller.retry(user)
    return SessionView.from_session(controller.session)


@app.post("/api/sessions/{session_id}/reset", response_model=SessionView)
async def reset(
    session_id: str,
    user: AuthUser | None = Depends(_current_user),
) -> SessionView:
    controller = _controller(session_id, user)
    with _session_errors():
        controller.reset()
    return SessionView.from_session(controller.session)


@app.get("/api/sessions/{session_id}/results/{index}")
def download_result(
    session_id: str,
    index: int,
    format: str = Query("png", description="png or jpeg"),
    user: AuthUser | None = Depends(_current_user),
) -> Response:
    """Download one result image as an attachment.

    Raises:
        HTTPException: 400 for an unknown format, 404 for a missing image,
            409 when the session has no result.
    """
    controller = _controller(session_id, user)
    try:
        normalize_format(format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        with _session_errors():
            download = controller.download(index, format)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        logger.error(f"Could not re-encode result {index} of session {session_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return Response(
        content=download.data,
        media_type=download.media_type,
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from
    :data:`~remixstudio.core.config.config` (``REMIX_SERVER_HOST``,
    ``REMIX_SERVER_PORT``, ``REMIX_LOG_LEVEL``).

    This function is registered as the ``remix-studio`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "remixstudio.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
