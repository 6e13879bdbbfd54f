"""
Upstream access-token validation.
"""

import re
from dataclasses import dataclass
from typing import Optional

from shared.errors import ConfigurationError
from shared.logging import get_logger


CLASSIC_TOKEN_PATTERN = re.compile(r"ghp_[A-Za-z0-9_]{36}")
FINE_GRAINED_TOKEN_PATTERN = re.compile(r"github_pat_[A-Za-z0-9_]{84}")

# The upstream distinguishes the two token families by scheme
CLASSIC_SCHEME = "token"
FINE_GRAINED_SCHEME = "Bearer"

logger = get_logger("proxy.credentials")


@dataclass(frozen=True)
class GitHubCredential:
    """A validated upstream token and the scheme it must be sent with."""

    token: str
    scheme: str

    @property
    def kind(self) -> str:
        return "fine_grained" if self.scheme == FINE_GRAINED_SCHEME else "classic"

    @property
    def authorization_header(self) -> str:
        return f"{self.scheme} {self.token}"

    def __repr__(self) -> str:
        return f"GitHubCredential(kind={self.kind!r}, token='{self.token[:4]}***')"


def parse_token(raw: str) -> GitHubCredential:
    """Validate a raw token string.

    Raises:
        ConfigurationError: if the string matches neither accepted shape.
    """
    if FINE_GRAINED_TOKEN_PATTERN.fullmatch(raw):
        return GitHubCredential(token=raw, scheme=FINE_GRAINED_SCHEME)
    if CLASSIC_TOKEN_PATTERN.fullmatch(raw):
        return GitHubCredential(token=raw, scheme=CLASSIC_SCHEME)

    raise ConfigurationError(
        "GitHub token has an unrecognised format",
        details={"length": len(raw), "prefix": raw[:4]},
    )


def load_credential(raw: Optional[str]) -> Optional[GitHubCredential]:
    """Return a credential for the configured token, or None to run unauthenticated."""
    token = (raw or "").strip()
    if not token:
        logger.info("No GitHub token configured; proxying unauthenticated")
        return None

    try:
        credential = parse_token(token)
    except ConfigurationError as exc:
        logger.warning(
            "Rejected GitHub token; proxying unauthenticated",
            error=exc.message,
            **exc.details,
        )
        return None

    logger.info("GitHub token accepted", kind=credential.kind)
    return credential
