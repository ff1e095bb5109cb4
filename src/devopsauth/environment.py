"""Access tokens injected by build agents."""

from __future__ import annotations

import os
from collections.abc import Mapping

SYSTEM_ACCESSTOKEN = "SYSTEM_ACCESSTOKEN"


class EnvironmentTokenResolver:
    """Read an access token that a CI pipeline has already placed in the environment.

    Azure Pipelines exposes the job's OAuth token as ``SYSTEM_ACCESSTOKEN``.
    When present it can be used directly and no exchange is needed.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def resolve(self) -> str | None:
        """Return the injected access token, or None if unset or empty."""
        environ = os.environ if self._environ is None else self._environ
        return environ.get(SYSTEM_ACCESSTOKEN) or None
