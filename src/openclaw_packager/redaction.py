"""
Secret detection and redaction for exported JSON files.

Any JSON file in an export may hold credentials, so every one is scanned
unless the user asked to keep secrets. A string value is redacted when its
key name looks credential-related or when the value itself has the shape of
a known token format. Redacted values are replaced with a placeholder that
names the original key; the values themselves are dropped. What was removed
is recorded in a SecretsTemplate written alongside the archive so the user
knows what to fill in after restoring.

Non-JSON content is never scanned.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from openclaw_packager.utils import dump_json

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "__OPENCLAW_SECRET__"

TEMPLATE_INSTRUCTIONS = (
    "Fill in these values on your new machine. These secrets were stripped for security."
)

SECRET_KEYS = frozenset(
    {
        "token",
        "tokens",
        "key",
        "apiKey",
        "api_key",
        "apikey",
        "secret",
        "password",
        "credential",
        "credentials",
        "auth",
        "authorization",
        "accessToken",
        "access_token",
        "refreshToken",
        "refresh_token",
        "privateKey",
        "private_key",
        "clientSecret",
        "client_secret",
        "botToken",
        "bot_token",
        "webhook",
        "webhookUrl",
    }
)
_SECRET_KEYS_LOWER = frozenset(k.lower() for k in SECRET_KEYS)

SECRET_KEY_FRAGMENTS = ("token", "secret", "password", "apikey", "api_key")

SECRET_PATTERNS = (
    re.compile(r"^ghu_[a-zA-Z0-9]+$"),  # GitHub user token
    re.compile(r"^ghp_[a-zA-Z0-9]+$"),  # GitHub personal token
    re.compile(r"^gho_[a-zA-Z0-9]+$"),  # GitHub OAuth token
    re.compile(r"^ghs_[a-zA-Z0-9]+$"),  # GitHub server token
    re.compile(r"^sk-[a-zA-Z0-9]+$"),  # OpenAI/Stripe keys
    re.compile(r"^xoxb-[a-zA-Z0-9-]+$"),  # Slack bot token
    re.compile(r"^xoxp-[a-zA-Z0-9-]+$"),  # Slack user token
    re.compile(r"^Bearer\s+[a-zA-Z0-9._-]+$", re.IGNORECASE),
    re.compile(r"^[A-Za-z0-9+/]{60,}={0,2}$"),  # base64 blobs
)

_OPAQUE_TOKEN = re.compile(r"^[a-zA-Z0-9+/=_-]+$")

SECRET_FILE_PATTERNS = (
    re.compile(r"^credentials/"),
    re.compile(r"auth-profiles\.json$"),
    re.compile(r"token\.json$"),
    re.compile(r"secret\.json$"),
)


def is_secret_file(relative_path: str) -> bool:
    """True if the (archive or relative) path is known to hold secrets."""
    normalized = relative_path.replace("\\", "/")
    return any(pattern.search(normalized) for pattern in SECRET_FILE_PATTERNS)


def is_secret_key(name: str) -> bool:
    """True if a JSON key name suggests a credential."""
    lower = name.lower()
    if name in SECRET_KEYS or lower in _SECRET_KEYS_LOWER:
        return True
    return any(fragment in lower for fragment in SECRET_KEY_FRAGMENTS)


def is_secret_value(value: Any) -> bool:
    """True if a string has the shape of a token or opaque credential."""
    if not isinstance(value, str):
        return False

    if any(pattern.fullmatch(value) for pattern in SECRET_PATTERNS):
        return True

    # Long random-looking strings are most likely tokens
    return len(value) > 40 and bool(_OPAQUE_TOKEN.fullmatch(value))


def placeholder_for(key: str) -> str:
    """Placeholder written in place of a redacted value."""
    return f"{PLACEHOLDER_PREFIX}:{key}"


@dataclass
class RedactionResult:
    """Outcome of redacting one file."""

    content: str
    count: int
    paths: list[str] = field(default_factory=list)


def _redact_value(value: Any, path: str, stripped: set[str]) -> Any:
    if isinstance(value, dict):
        return _redact_object(value, path, stripped)
    if isinstance(value, list):
        return [_redact_value(item, f"{path}[{i}]", stripped) for i, item in enumerate(value)]
    # Scalars reached outside an object field (array items, the document
    # root) have no key name and are kept as-is.
    return value


def _redact_object(obj: dict[str, Any], path: str, stripped: set[str]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in obj.items():
        full_key = f"{path}.{key}" if path else key
        if isinstance(value, str):
            if is_secret_key(key) or is_secret_value(value):
                result[key] = placeholder_for(key)
                stripped.add(full_key)
            else:
                result[key] = value
        else:
            result[key] = _redact_value(value, full_key, stripped)
    return result


def redact(content: str, virtual_path: str = "") -> RedactionResult:
    """
    Redact secrets from JSON text.

    Args:
        content: File content.
        virtual_path: Archive path of the file (used for logging context only).

    Returns:
        RedactionResult with the re-serialized JSON, the number of distinct
        field paths redacted, and those paths. Content that is not valid
        JSON is returned unchanged with a count of 0.
    """
    try:
        parsed = json.loads(content)
    except ValueError:
        return RedactionResult(content=content, count=0)

    stripped: set[str] = set()
    redacted = _redact_value(parsed, "", stripped)
    if stripped:
        logger.debug(f"Redacted {len(stripped)} value(s) in {virtual_path or '<content>'}")

    return RedactionResult(
        content=dump_json(redacted),
        count=len(stripped),
        paths=sorted(stripped),
    )


@dataclass
class SecretsTemplate:
    """
    Checklist of what was redacted, written as SECRETS_TEMPLATE.json.

    Attributes:
        config: Config key paths mapped to the placeholder marker.
        credentials: Credential file names (relative to credentials/).
        agent_auth: Agent name mapped to the auth artifact kinds it had.
    """

    config: dict[str, str] = field(default_factory=dict)
    credentials: list[str] = field(default_factory=list)
    agent_auth: dict[str, list[str]] = field(default_factory=dict)
    instructions: str = TEMPLATE_INSTRUCTIONS

    def add_config_secret(self, key_path: str) -> None:
        self.config[key_path] = PLACEHOLDER_PREFIX

    def add_credential_file(self, filename: str) -> None:
        if filename not in self.credentials:
            self.credentials.append(filename)

    def add_agent_auth(self, agent: str, auth_type: str) -> None:
        kinds = self.agent_auth.setdefault(agent, [])
        if auth_type not in kinds:
            kinds.append(auth_type)

    def is_empty(self) -> bool:
        return not (self.config or self.credentials or self.agent_auth)

    def to_dict(self) -> dict[str, Any]:
        return {
            "_instructions": self.instructions,
            "config": dict(self.config),
            "credentials": list(self.credentials),
            "agentAuth": {agent: list(kinds) for agent, kinds in self.agent_auth.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecretsTemplate:
        config = data.get("config")
        credentials = data.get("credentials")
        agent_auth = data.get("agentAuth")
        return cls(
            config={str(k): str(v) for k, v in config.items()} if isinstance(config, dict) else {},
            credentials=[str(c) for c in credentials] if isinstance(credentials, list) else [],
            agent_auth=(
                {str(a): [str(k) for k in kinds] for a, kinds in agent_auth.items() if isinstance(kinds, list)}
                if isinstance(agent_auth, dict)
                else {}
            ),
            instructions=str(data.get("_instructions", TEMPLATE_INSTRUCTIONS)),
        )
