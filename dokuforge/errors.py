"""Error taxonomy shared by every pipeline component.

Two families exist:

* ``ForgeInputError`` — something the operator must supply or fix
  (missing identity, missing active version, missing mock files).
* ``ForgeIntegrityError`` — the trust chain may be broken (drift, bad
  signature, uncertified input).  Never auto-recovered.

Concrete errors live in the modules that raise them.  Each carries a
``remediation`` hint that the CLI prints under the message.
"""

from __future__ import annotations


class ForgeError(RuntimeError):
    """Base class for every error the pipeline raises on purpose."""

    remediation: str = ""

    def __init__(self, message: str, *, remediation: str | None = None) -> None:
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation


class ForgeInputError(ForgeError):
    """Missing or malformed operator input."""


class ForgeIntegrityError(ForgeError):
    """An integrity signal failed; the pipeline refuses to continue."""
