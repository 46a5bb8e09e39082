# classify.py
# SPDX-License-Identifier: MIT
"""License lookups that go through the batch engine.

Both helpers write their per-item logic as straight-line task bodies and
let :mod:`spdxflow.core.batching` coalesce the lookups: one classifier call
per batch of license texts, one metadata query per batch of component ids
(even when each component walks its own chain of parents).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from .batching import BatchRequest, Outcome, batch, outcomes
from .categories import LicenseCategory
from .config import BatchConfig
from .expressions import LicenseExpression
from .interfaces import ComponentMetadata, LicensePredictor, MetadataLoader
from .log import get_logger
from .parser import parse_expression
from .policy import LicensePolicy, LicensePolicyInterpreter

log = get_logger(__name__)

__all__ = [
    "ClassifiedLicense",
    "DeclaredLicense",
    "LicenseNotFoundError",
    "classify_license_texts",
    "resolve_declared_licenses",
]


class LicenseNotFoundError(LookupError):
    """No license could be determined for a component."""


@dataclass(frozen=True, slots=True)
class ClassifiedLicense:
    """A license text with its predicted expression and policy category."""
    text: str
    expression: LicenseExpression
    category: LicenseCategory


@dataclass(frozen=True, slots=True)
class DeclaredLicense:
    """
    License declared for a component.

    Attributes:
        component (str): Component the lookup started from.
        license (LicenseExpression): Declared license.
        source (str): Component that actually declares it; differs from
            ``component`` when the license was inherited from a parent.
    """
    component: str
    license: LicenseExpression
    source: str


def _as_expression(value: LicenseExpression | str) -> LicenseExpression:
    return parse_expression(value) if isinstance(value, str) else value


def classify_license_texts(
    texts: Iterable[str],
    predict_batch: LicensePredictor,
    *,
    policy: Optional[LicensePolicy] = None,
    config: Optional[BatchConfig] = None,
) -> List[Outcome]:
    """
    Classify license texts with a bulk predictor.

    Args:
        texts (Iterable[str]): License texts, one task each.
        predict_batch (LicensePredictor): Returns one prediction per text.
            An exception in the returned sequence fails only that text.
        policy (LicensePolicy | None): Category table; defaults to the ASF
            policy.
        config (BatchConfig | None): Batch limits.

    Returns:
        list[Outcome]: One outcome per text, in input order, holding a
        :class:`ClassifiedLicense` or the error for that text (including
        :class:`~spdxflow.core.parser.ParseError` for unparsable predictions).
    """
    interpreter = LicensePolicyInterpreter(policy)

    def handler(requests: Sequence[BatchRequest]) -> None:
        predictions = list(predict_batch([request.value for request in requests]))
        if len(predictions) != len(requests):
            raise ValueError(
                f"Predictor returned {len(predictions)} prediction(s) for {len(requests)} text(s)"
            )
        for request, prediction in zip(requests, predictions):
            if isinstance(prediction, BaseException):
                request.fail(prediction)
            else:
                request.complete(prediction)

    def make_task(text: str) -> Callable:
        def body(load: Callable) -> ClassifiedLicense:
            expression = _as_expression(load(text))
            return ClassifiedLicense(text, expression, interpreter.evaluate(expression))

        return body

    return outcomes(batch(handler, [make_task(text) for text in texts], config=config))


def resolve_declared_licenses(
    components: Iterable[str],
    load_batch: MetadataLoader,
    *,
    config: Optional[BatchConfig] = None,
) -> List[Outcome]:
    """
    Find the declared license of each component, following parents.

    Each component loads its own metadata; when no license is declared it
    moves on to ``parent_id``. Lookups of all components at the same depth
    share one ``load_batch`` call.

    Args:
        components (Iterable[str]): Component ids, one task each.
        load_batch (MetadataLoader): Bulk metadata query. Ids missing from
            the returned mapping fail with :class:`LicenseNotFoundError`.
        config (BatchConfig | None): Batch limits.

    Returns:
        list[Outcome]: One outcome per component holding a
        :class:`DeclaredLicense` or :class:`LicenseNotFoundError`.
    """

    def handler(requests: Sequence[BatchRequest]) -> None:
        unique_ids = list(dict.fromkeys(request.value for request in requests))
        found: Mapping[str, Optional[ComponentMetadata]] = load_batch(unique_ids)
        for request in requests:
            metadata = found.get(request.value)
            if metadata is None:
                request.fail(LicenseNotFoundError(f"No metadata found for {request.value}"))
            else:
                request.complete(metadata)

    def make_task(component: str) -> Callable:
        def body(load: Callable) -> DeclaredLicense:
            visited = [component]
            current = component
            while True:
                metadata: ComponentMetadata = load(current)
                if metadata.license is not None:
                    if current != component:
                        log.debug("License of %s inherited from %s", component, current)
                    return DeclaredLicense(component, _as_expression(metadata.license), current)
                parent = metadata.parent_id
                if parent is None:
                    raise LicenseNotFoundError(
                        f"No license declared for {component} (searched {' -> '.join(visited)})"
                    )
                if parent in visited:
                    raise LicenseNotFoundError(
                        f"Parent cycle while resolving {component}: {' -> '.join(visited + [parent])}"
                    )
                visited.append(parent)
                current = parent

        return body

    return outcomes(batch(handler, [make_task(c) for c in components], config=config))
