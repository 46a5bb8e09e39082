# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`spdxflow`.

Public surface
--------------
The symbols listed in :data:`PRIMARY_API` are the recommended public
surface and are exported via :data:`__all__`:

- Build SPDX expressions with :func:`spdx` (or parse them with
  :func:`parse_expression`) and fold them into ASF categories with
  :class:`LicensePolicyInterpreter`.
- Turn categories into ALLOW/REJECT decisions and a per-component report
  with :func:`from_policy` and :func:`verify_compatibility`.
- Coalesce many small lookups into bulk calls with :func:`batch` or
  :class:`BatchProcessor`.

Anything else imported here is an expert surface and may change between
releases.

Examples:
    >>> from spdxflow import LicensePolicyInterpreter, parse_expression
    >>> LicensePolicyInterpreter().evaluate(parse_expression("MIT OR GPL-2.0-or-later"))
    <LicenseCategory.A: 'A'>
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Package version
# ---------------------------------------------------------------------------
try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("spdxflow")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


# ---------------------------------------------------------------------------
# Primary public API (stable; exported via __all__)
# ---------------------------------------------------------------------------
from .core.batching import (
    BatchError,
    BatchHandlerError,
    BatchProcessor,
    BatchRequest,
    BatchTimeoutError,
    Outcome,
    RequestAlreadyResolvedError,
    batch,
    outcomes,
)
from .core.categories import LicenseCategory
from .core.classify import (
    LicenseNotFoundError,
    classify_license_texts,
    resolve_declared_licenses,
)
from .core.compatibility import (
    CompatibilityResult,
    LicenseCompatibility,
    LicenseCompatibilityInterpreter,
    from_policy,
    verify_compatibility,
)
from .core.config import BatchConfig, SpdxflowConfig, load_config_from_path
from .core.expressions import And, LicenseExpression, Or, SimpleLicense, spdx
from .core.parser import ParseError, parse_expression
from .core.policy import LicensePolicy, LicensePolicyInterpreter, asf_policy, load_policy

# ---------------------------------------------------------------------------
# Advanced / expert API (imported for convenience; not exported via __all__)
# ---------------------------------------------------------------------------
from .core.batching import Completion, TaskState
from .core.compatibility import CompatibilityReport, ResolvedCompatibility
from .core.interfaces import ComponentMetadata
from .core.log import configure_logging, get_logger, resolve_level

# ---------------------------------------------------------------------------
# Stable export list
# ---------------------------------------------------------------------------
PRIMARY_API = [
    "__version__",
    "SimpleLicense",
    "And",
    "Or",
    "LicenseExpression",
    "spdx",
    "parse_expression",
    "ParseError",
    "LicenseCategory",
    "LicensePolicy",
    "LicensePolicyInterpreter",
    "asf_policy",
    "load_policy",
    "CompatibilityResult",
    "LicenseCompatibility",
    "LicenseCompatibilityInterpreter",
    "from_policy",
    "verify_compatibility",
    "BatchConfig",
    "BatchProcessor",
    "BatchRequest",
    "BatchError",
    "BatchHandlerError",
    "BatchTimeoutError",
    "RequestAlreadyResolvedError",
    "Outcome",
    "batch",
    "outcomes",
    "classify_license_texts",
    "resolve_declared_licenses",
    "LicenseNotFoundError",
    "SpdxflowConfig",
    "load_config_from_path",
]

# Export the stable surface area only.
__all__ = list(PRIMARY_API)
