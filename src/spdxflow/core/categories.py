# categories.py
# SPDX-License-Identifier: MIT
"""ASF license categories and the identifier tables behind them.

See https://apache.org/legal/resolved.html for the categories:

* ``A`` - may be combined with Apache-2.0 software freely.
* ``B`` - may be included in binary form only.
* ``X`` - may not be included in Apache products.
* ``UNKNOWN`` - no rule covers the license.

The enum order is the "worse than" relation used by the interpreter, with
UNKNOWN as the worst value.
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering

__all__ = [
    "LicenseCategory",
    "worse",
    "better",
    "ASF_CATEGORY_A",
    "ASF_CATEGORY_B",
    "ASF_CATEGORY_X",
    "GPL_FAMILY",
    "ASF_EXCEPTIONS",
]


@total_ordering
class LicenseCategory(Enum):
    A = "A"
    B = "B"
    X = "X"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LicenseCategory):
            return NotImplemented
        return self.rank < other.rank

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | LicenseCategory) -> LicenseCategory:
        """Return the category named by ``value`` (case-insensitive)."""
        if isinstance(value, LicenseCategory):
            return value
        key = str(value).strip().upper()
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown license category {value!r}; expected one of {[c.value for c in cls]}"
            ) from None


_RANK = {
    LicenseCategory.A: 0,
    LicenseCategory.B: 1,
    LicenseCategory.X: 2,
    LicenseCategory.UNKNOWN: 3,
}


def worse(a: LicenseCategory, b: LicenseCategory) -> LicenseCategory:
    """Return the more restrictive of two categories."""
    return max(a, b)


def better(a: LicenseCategory, b: LicenseCategory) -> LicenseCategory:
    """Return the more permissive of two categories."""
    return min(a, b)


def _versions(*families: tuple[str, tuple[str, ...]]) -> frozenset[str]:
    """Expand ``(prefix, versions)`` into ``-only`` and ``-or-later`` ids."""
    return frozenset(
        f"{prefix}-{version}-{suffix}"
        for prefix, versions in families
        for version in versions
        for suffix in ("only", "or-later")
    )


GPL_FAMILY = _versions(("GPL", ("1.0", "2.0", "3.0")))
_AGPL_FAMILY = _versions(("AGPL", ("3.0",)))
_LGPL_FAMILY = _versions(("LGPL", ("2.0", "2.1", "3.0")))

ASF_CATEGORY_A = frozenset(
    {
        "Apache-2.0",
        "Apache-1.0",
        "Apache-1.1",
        "PHP-3.01",
        "BSD-2-Clause",
        "BSD-2-Clause-FreeBSD",
        "BSD-2-Clause-NetBSD",
        "BSD-3-Clause",
        "BSD-3-Clause-Attribution",
        "BSD-3-Clause-Clear",
        "BSD-3-Clause-LBNL",
        "BSD-3-Clause-No-Nuclear-License",
        "BSD-3-Clause-No-Nuclear-License-2014",
        "BSD-3-Clause-No-Nuclear-Warranty",
        "PostgreSQL",
        "EPL-1.0",
        "MIT",
        "X11",
        "ISC",
        "ICU",
        "NCSA",
        "W3C",
        "W3C-19980720",
        "W3C-20150513",
        "zlib-acknowledgement",
        "libpng-2.0",
        "MS-PL",
        "CC0-1.0",
        "Python-2.0",
        "APAFML",
        "BSL-1.0",
        "OGL-UK-3.0",
        "WTFPL",
        "Unicode-DFS-2015",
        "Unicode-DFS-2016",
        "ZPL-2.0",
        "UPL-1.0",
    }
)

ASF_CATEGORY_B = frozenset(
    {
        "CDDL-1.0",
        "CDDL-1.1",
        "CPL-1.0",
        "IPL-1.0",
        "MPL-1.0",
        "MPL-1.1",
        "MPL-2.0",
        "SPL-1.0",
        "OSL-3.0",
        "ErlPL-1.1",
        "CC-BY-2.5",
        "CC-BY-3.0",
        "CC-BY-4.0",
        "CC-BY-SA-2.5",
        "CC-BY-SA-3.0",
        "CC-BY-SA-4.0",
        "OFL-1.0",
        "OFL-1.1",
        "IPA",
        "Ruby",
        "EPL-2.0",
    }
)

_CC_NON_COMMERCIAL = frozenset(
    f"CC-BY-{variant}-{version}"
    for variant in ("NC", "NC-ND", "NC-SA")
    for version in ("1.0", "2.0", "2.5", "3.0", "4.0")
)

ASF_CATEGORY_X = (
    frozenset(
        {
            "QPL-1.0",
            "Sleepycat",
            "CPOL-1.02",
            "BSD-4-Clause",
            "BSD-4-Clause-UC",
            "BSD-2-Clause-Patent",
            "NPL-1.0",
            "NPL-1.1",
            "JSON",
        }
    )
    | _CC_NON_COMMERCIAL
    | GPL_FAMILY
    | _AGPL_FAMILY
    | _LGPL_FAMILY
)

# exception id -> (best category it grants, license ids it may qualify)
ASF_EXCEPTIONS: dict[str, tuple[LicenseCategory, frozenset[str]]] = {
    "Classpath-exception-2.0": (LicenseCategory.A, GPL_FAMILY),
}
