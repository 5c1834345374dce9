"""
Dispatcher settings, read from keyword arguments or ``BATCHDISPATCH_*`` variables.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "BATCHDISPATCH_"


class DispatcherSettings(BaseModel):
    """
    Tunables shared by the dispatcher and the default transport.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds used by the default transport.
    follow_redirects : bool
        Whether the default transport follows redirects.
    verify : bool
        Whether the default transport verifies TLS certificates.
    raise_errors : bool
        If ``True``, transport errors are raised inside the suspended callable
        as ``RequestFailed`` instead of being returned as records.
    """

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=30.0, gt=0)
    follow_redirects: bool = True
    verify: bool = True
    raise_errors: bool = False

    @classmethod
    def from_env(cls, **overrides: object) -> DispatcherSettings:
        """
        Build settings from the environment.

        Parameters
        ----------
        **overrides : object
            Explicit values taking precedence over the environment.

        Returns
        -------
        DispatcherSettings
            Validated settings.
        """
        values: dict[str, object] = {}
        for name in cls.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None and env_value != "":
                values[name] = env_value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)
