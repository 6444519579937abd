"""Pydantic request and response models for the Remix Studio API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``: one or two data-URL images plus the
    template to apply.
SignUpRequest / LoginRequest / GoogleSignInRequest
    Payloads for the ``/api/auth/*`` endpoints.
AuthResponse
    A signed-in user plus the bearer token the client sends back in the
    ``Authorization`` header.
CreateSessionRequest / FocusRequest
    Payloads for the remix session endpoints.
SessionView
    Serialised snapshot of a :class:`~remixstudio.ui.models.RemixSession`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from remixstudio.core.models import AssetRole, AuthSession, AuthUser
from remixstudio.ui.models import RemixSession


class TemplateOptions(BaseModel):
    """Per-request overrides for the template instruction.

    ``text`` takes precedence over ``prompt`` when both are given.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: str | None = Field(default=None, description="Instruction text.")
    text: str | None = Field(default=None, description="Instruction text (preferred).")
    aspect_ratio: str | None = Field(default=None, description="Output aspect ratio, e.g. '3:4'.")

    @property
    def instruction(self) -> str | None:
        return self.text or self.prompt


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        image_data: Main image as a ``data:<mime>;base64,<payload>`` URL.
            Optional in the schema so that a missing image is answered with
            a 400 and a readable message rather than a schema error.
        wearable_data: Optional second image, same format.
        template_id: Template to apply.  Unknown ids are accepted and fall
            back to the generic instruction.
        template_options: Optional instruction and aspect ratio overrides.
    """

    image_data: str | None = Field(default=None, description="Main image as a data URL.")
    wearable_data: str | None = Field(default=None, description="Optional second image as a data URL.")
    template_id: str = Field(..., description="Template identifier from the catalog.")
    template_options: TemplateOptions | None = Field(default=None)


class GenerateResponse(BaseModel):
    images: list[str] = Field(..., description="Generated images as data URLs, in backend order.")


class SignUpRequest(BaseModel):
    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str


class GoogleSignInRequest(BaseModel):
    id_token: str | None = Field(
        default=None,
        description="Google ID token (required by the supabase provider).",
    )


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    created_at: str

    @classmethod
    def from_user(cls, user: AuthUser) -> UserResponse:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            created_at=user.created_at.isoformat(),
        )


class AuthResponse(BaseModel):
    user: UserResponse
    access_token: str | None = Field(
        default=None,
        description="Bearer token for later requests; null while email confirmation is pending.",
    )

    @classmethod
    def from_session(cls, session: AuthSession) -> AuthResponse:
        return cls(user=UserResponse.from_user(session.user), access_token=session.access_token)


class CreateSessionRequest(BaseModel):
    template_id: str = Field(..., description="Template the session remixes.")


class FocusRequest(BaseModel):
    zone: AssetRole | None = Field(
        default=None,
        description="Drop zone under the pointer, or null when none.",
    )


class SessionView(BaseModel):
    """Serialised snapshot of a remix session.

    Result images are not inlined; fetch them with
    ``GET /api/sessions/{id}/results/{index}``.
    """

    id: str
    template_id: str
    stack_id: str
    requires_secondary: bool
    status: str
    focused_zone: AssetRole | None = None
    has_primary: bool
    has_secondary: bool
    ready_to_submit: bool
    error: str | None = None
    error_kind: str | None = None
    result_count: int = 0
    partial: bool = False
    notice: str | None = None

    @classmethod
    def from_session(cls, session: RemixSession) -> SessionView:
        result = session.result
        return cls(
            id=session.id,
            template_id=session.template.id,
            stack_id=session.stack.id,
            requires_secondary=session.requires_secondary,
            status=session.status.value,
            focused_zone=session.focused_zone,
            has_primary=session.primary is not None,
            has_secondary=session.secondary is not None,
            ready_to_submit=session.ready_to_submit,
            error=session.error,
            error_kind=session.error_kind.value if session.error_kind else None,
            result_count=len(result) if result else 0,
            partial=result.partial if result else False,
            notice=result.notice if result else None,
        )
