"""Bearer-token protection for the roster API."""

import logging
import os
import secrets
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger("roster.security")


def _split_labelled(entry: str, index: int) -> Tuple[str, str]:
    label, sep, token = entry.partition(":")
    if sep and label.strip() and token.strip():
        return label.strip(), token.strip()
    return f"token-{index}", entry.strip()


class TokenAuth:
    """Validate bearer tokens and record which client presented them.

    Tokens may carry a label (``"billing:s3cr3t"``); the label of the matching
    token is stored on ``request.state.client_label`` for logging.
    """

    def __init__(self, tokens: Iterable[str]):
        labelled: Dict[str, str] = {}
        for index, entry in enumerate(token for token in tokens if token.strip()):
            label, token = _split_labelled(entry, index)
            if label in labelled:
                raise ValueError(f"Duplicate API token label '{label}'")
            labelled[label] = token
        if not labelled:
            raise ValueError("At least one API token must be provided")
        self._tokens = labelled
        self._bearer = HTTPBearer(auto_error=False)

    @property
    def labels(self) -> List[str]:
        return sorted(self._tokens)

    def match(self, provided: str) -> Optional[str]:
        """Return the label of the token equal to *provided*, if any."""

        matched: Optional[str] = None
        for label, token in self._tokens.items():
            # No early exit: every configured token is compared.
            if secrets.compare_digest(provided.encode("utf-8"), token.encode("utf-8")):
                matched = label
        return matched

    async def __call__(self, request: Request) -> None:
        credentials: Optional[HTTPAuthorizationCredentials] = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        label = self.match(credentials.credentials)
        if label is None:
            logger.warning("Rejected API request to %s with an unknown token", request.url.path)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API token")

        request.state.client_label = label


def load_tokens_from_env() -> List[str]:
    raw = os.getenv("ROSTER_API_TOKENS", "")
    return [token.strip() for token in raw.split(",") if token.strip()]


__all__ = ["TokenAuth", "load_tokens_from_env"]
