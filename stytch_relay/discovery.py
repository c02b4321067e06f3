#!/usr/bin/env python3
"""Stytch MCP Relay - Tool catalog.

Declarative table of every tool: its parameter model, the upstream
endpoint it maps to, and how its result is labelled. Helper functions
query the table for MCP resources and search.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field

# Upstream targets
MANAGEMENT = "management"  # management API, OAuth bearer token
CONSUMER = "consumer"      # project API, stored project id/secret
WEATHER = "weather"        # weather API, stored API key
LOCAL = "local"            # handled in tools.py without a table request


# ==================== Parameter Models ====================

class NoParams(BaseModel):
    pass


class ProjectParams(BaseModel):
    project_id: str = Field(description="Stytch project ID (test or live)")


class CreateProjectParams(BaseModel):
    project_name: str = Field(description="Display name of the new project")
    vertical: Literal["CONSUMER", "B2B"] = Field("CONSUMER", description="Project vertical")


class PublicTokenParams(ProjectParams):
    public_token: str


class ValidType(BaseModel):
    type: str = Field(description="LOGIN, SIGNUP, INVITE, RESET_PASSWORD or DISCOVERY")
    is_default: bool


class RedirectURLParams(ProjectParams):
    url: str


class RedirectURLTypesParams(RedirectURLParams):
    valid_types: List[ValidType]


class SecretParams(ProjectParams):
    secret_id: str


class EmailTemplateParams(ProjectParams):
    template_id: str


class CreateEmailTemplateParams(EmailTemplateParams):
    name: str
    button_border_radius: Optional[Union[int, float]] = None
    button_color: Optional[str] = "#106ee9"
    button_text_color: Optional[str] = None
    font_family: Optional[str] = None
    text_alignment: Optional[str] = None


class UpdateEmailTemplateParams(EmailTemplateParams):
    name: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None


class PasswordStrengthConfig(BaseModel):
    check_breach_on_creation: bool
    check_breach_on_authentication: bool
    validate_on_authentication: bool
    validation_policy: Literal["LUDS", "ZXCVBN"]
    luds_min_password_length: Optional[int] = Field(None, ge=8, le=32)
    luds_min_password_complexity: Optional[int] = Field(None, ge=1, le=4)


class SetPasswordStrengthParams(ProjectParams):
    password_strength_config: PasswordStrengthConfig


class SDKConfigParams(ProjectParams):
    vertical: Literal["consumer", "b2b"] = "consumer"


class SetSDKConfigParams(SDKConfigParams):
    config: Dict[str, Any] = Field(description="SDK configuration object, as returned by getSDKConfig")


class SearchUsersParams(BaseModel):
    limit: int = Field(100, ge=1, le=1000)
    cursor: Optional[str] = None
    query: Optional[Dict[str, Any]] = Field(None, description="Stytch user search query (operator + operands)")


class WeatherParams(BaseModel):
    city: str = Field(description="City name, optionally with country code (e.g. 'Paris,FR')")
    units: Literal["metric", "imperial", "standard"] = "metric"


# ==================== Endpoint Table ====================

@dataclass(frozen=True)
class Endpoint:
    """One tool and the single upstream request it relays."""
    name: str
    resource: str
    description: str
    params: Type[BaseModel] = ProjectParams
    method: str = "GET"
    path: str = ""
    label: str = ""
    done: Optional[str] = None
    query: Optional[Callable[[Any], Dict[str, Any]]] = None
    body: Optional[Callable[[Any], Dict[str, Any]]] = None
    target: str = MANAGEMENT


def _url_query(p) -> Dict[str, Any]:
    return {"url": p.url}


def _redirect_url_body(p) -> Dict[str, Any]:
    return {"redirect_url": {"url": p.url, "valid_types": [v.model_dump() for v in p.valid_types]}}


def _create_email_template_body(p) -> Dict[str, Any]:
    customization = p.model_dump(exclude={"project_id", "template_id", "name"}, exclude_none=True)
    return {
        "email_template": {
            "template_id": p.template_id,
            "name": p.name,
            "prebuilt_customization": customization,
        }
    }


def _update_email_template_body(p) -> Dict[str, Any]:
    return {"email_template": p.model_dump(exclude={"project_id"}, exclude_none=True)}


def _search_users_body(p) -> Dict[str, Any]:
    return p.model_dump(exclude_none=True)


def _weather_query(p) -> Dict[str, Any]:
    return {"q": p.city, "units": p.units}


ENDPOINTS: List[Endpoint] = [
    # ---- Identity ----
    Endpoint(
        name="whoami", resource="identity",
        description="Check who the logged-in user is",
        params=NoParams, path="oauth2/userinfo", target=LOCAL,
    ),

    # ---- Projects ----
    Endpoint(
        name="getAllProjects", resource="projects",
        description="Retrieve all projects owned by the workspace",
        params=NoParams, path="/v1/projects", label="All Projects",
    ),
    Endpoint(
        name="getProject", resource="projects",
        description="Retrieve a specific project",
        path="/v1/projects/{project_id}", label="Project Details",
    ),
    Endpoint(
        name="createProject", resource="projects",
        description="Create a new project (with test and live environments)",
        params=CreateProjectParams, method="POST", path="/v1/projects", label="Project created",
        body=lambda p: {"project_name": p.project_name, "vertical": p.vertical},
    ),
    Endpoint(
        name="getProjectCredentials", resource="projects",
        description=(
            "Get the project ID and secret stored for your account. "
            "If none are stored yet, a project and a secret are created and saved."
        ),
        params=NoParams, target=LOCAL,
    ),

    # ---- Public tokens ----
    Endpoint(
        name="createPublicToken", resource="public_tokens",
        description="Creates a public token for a project",
        method="POST", path="/v1/projects/{project_id}/public_tokens", label="Public token created",
        body=lambda p: {"project_id": p.project_id},
    ),
    Endpoint(
        name="getAllPublicTokens", resource="public_tokens",
        description="Retrieve all active public tokens for a project",
        path="/v1/projects/{project_id}/public_tokens", label="Public tokens",
    ),
    Endpoint(
        name="deletePublicToken", resource="public_tokens",
        description="Delete a specific public token for a project",
        params=PublicTokenParams, method="DELETE",
        path="/v1/projects/{project_id}/public_tokens/{public_token}",
        done="Public token {public_token} deleted successfully.",
    ),

    # ---- Redirect URLs ----
    Endpoint(
        name="createRedirectURL", resource="redirect_urls",
        description="Create a redirect URL for your project",
        params=RedirectURLTypesParams, method="POST", path="/v1/projects/{project_id}/redirect_urls",
        label="Redirect URL created", body=_redirect_url_body,
    ),
    Endpoint(
        name="getAllRedirectURLs", resource="redirect_urls",
        description="Retrieve all redirect URLs for a project",
        path="/v1/projects/{project_id}/redirect_urls/all", label="All Redirect URLs",
    ),
    Endpoint(
        name="getRedirectURL", resource="redirect_urls",
        description="Retrieve a specific redirect URL for a project",
        params=RedirectURLParams, path="/v1/projects/{project_id}/redirect_urls",
        label="Redirect URL Details", query=_url_query,
    ),
    Endpoint(
        name="updateRedirectURL", resource="redirect_urls",
        description="Update valid types for a redirect URL for a project",
        params=RedirectURLTypesParams, method="PUT", path="/v1/projects/{project_id}/redirect_urls",
        label="Redirect URL updated", query=_url_query, body=_redirect_url_body,
    ),
    Endpoint(
        name="deleteRedirectURL", resource="redirect_urls",
        description="Delete a redirect URL for a project",
        params=RedirectURLParams, method="DELETE", path="/v1/projects/{project_id}/redirect_urls",
        query=_url_query, done="Redirect URL deleted successfully.",
    ),

    # ---- Secrets ----
    Endpoint(
        name="getSecret", resource="secrets",
        description="Retrieve a specific secret for a project",
        params=SecretParams, path="/v1/projects/{project_id}/secrets/{secret_id}", label="Secret Details",
    ),
    Endpoint(
        name="getAllSecrets", resource="secrets",
        description="Retrieve all secrets for a project",
        path="/v1/projects/{project_id}/secrets", label="All Secrets",
    ),
    Endpoint(
        name="createSecret", resource="secrets",
        description="Create a new secret for a project",
        method="POST", path="/v1/projects/{project_id}/secrets", label="Secret created",
    ),
    Endpoint(
        name="deleteSecret", resource="secrets",
        description="Delete a specific secret for a project",
        params=SecretParams, method="DELETE", path="/v1/projects/{project_id}/secrets/{secret_id}",
        done="Secret ID {secret_id} deleted successfully.",
    ),

    # ---- Email templates ----
    Endpoint(
        name="createEmailTemplate", resource="email_templates",
        description="Creates an custom email template for the project.",
        params=CreateEmailTemplateParams, method="POST", path="/v1/projects/{project_id}/email_templates",
        label="Email template created", body=_create_email_template_body,
    ),
    Endpoint(
        name="getEmailTemplate", resource="email_templates",
        description="Retrieve a specific email template for a project",
        params=EmailTemplateParams, path="/v1/projects/{project_id}/email_templates/{template_id}",
        label="Email Template Details",
    ),
    Endpoint(
        name="getAllEmailTemplates", resource="email_templates",
        description="Retrieve all email templates for a project",
        path="/v1/projects/{project_id}/email_templates", label="All Email Templates",
    ),
    Endpoint(
        name="updateEmailTemplate", resource="email_templates",
        description="Update an email template for a project",
        params=UpdateEmailTemplateParams, method="PUT",
        path="/v1/projects/{project_id}/email_templates/{template_id}",
        label="Email Template updated", body=_update_email_template_body,
    ),
    Endpoint(
        name="deleteEmailTemplate", resource="email_templates",
        description="Delete a specific email template for a project",
        params=EmailTemplateParams, method="DELETE",
        path="/v1/projects/{project_id}/email_templates/{template_id}",
        done="Email Template ID {template_id} deleted successfully.",
    ),

    # ---- Password strength ----
    Endpoint(
        name="getPasswordStrengthConfig", resource="password_strength",
        description="Retrieve the password strength configuration for a project",
        path="/v1/projects/{project_id}/password_strength", label="Password Strength Config",
    ),
    Endpoint(
        name="setPasswordStrengthConfig", resource="password_strength",
        description="Set the password strength configuration for a project",
        params=SetPasswordStrengthParams, method="PUT", path="/v1/projects/{project_id}/password_strength",
        label="Password Strength Config updated",
        body=lambda p: {"password_strength_config": p.password_strength_config.model_dump(exclude_none=True)},
    ),

    # ---- SDK config ----
    Endpoint(
        name="getSDKConfig", resource="sdk",
        description="Retrieve the frontend SDK configuration for a project",
        params=SDKConfigParams, path="/v1/projects/{project_id}/sdk/{vertical}", label="SDK Config",
    ),
    Endpoint(
        name="setSDKConfig", resource="sdk",
        description="Replace the frontend SDK configuration for a project",
        params=SetSDKConfigParams, method="PUT", path="/v1/projects/{project_id}/sdk/{vertical}",
        label="SDK Config updated", body=lambda p: {"config": p.config},
    ),

    # ---- Consumer API (stored project credentials) ----
    Endpoint(
        name="searchUsers", resource="users",
        description="Search the users of the project whose credentials are stored for your account",
        params=SearchUsersParams, method="POST", path="/v1/users/search", label="Users",
        body=_search_users_body, target=CONSUMER,
    ),

    # ---- Weather ----
    Endpoint(
        name="getWeather", resource="weather",
        description="Get the current weather for a city (uses the weather API key saved in the web UI)",
        params=WeatherParams, label="Weather", query=_weather_query, target=WEATHER,
    ),
]

_BY_NAME: Dict[str, Endpoint] = {e.name: e for e in ENDPOINTS}


# ==================== Catalog Helpers ====================

def get_endpoint(name: str) -> Optional[Endpoint]:
    """Look up a tool by name, or None if unknown."""
    return _BY_NAME.get(name)


def get_tool_names() -> List[str]:
    """Get list of all tool names."""
    return [e.name for e in ENDPOINTS]


def _describe(endpoint: Endpoint) -> Dict[str, Any]:
    return {
        "tool": endpoint.name,
        "resource": endpoint.resource,
        "target": endpoint.target,
        "method": endpoint.method,
        "path": endpoint.path,
        "parameters": list(endpoint.params.model_fields.keys()),
    }


def search_endpoints(query: str) -> List[Dict[str, Any]]:
    """Search tool names, resources and descriptions for a keyword."""
    query_lower = query.lower()
    return [
        _describe(e)
        for e in ENDPOINTS
        if query_lower in e.name.lower()
        or query_lower in e.resource.lower()
        or query_lower in e.description.lower()
    ]


def get_catalog() -> Dict[str, Any]:
    """Get the tool catalog grouped by resource (for MCP resources)."""
    resources: Dict[str, List[Dict[str, Any]]] = {}
    for e in ENDPOINTS:
        resources.setdefault(e.resource, []).append(_describe(e))
    return {"resources": resources, "tool_count": len(ENDPOINTS)}
