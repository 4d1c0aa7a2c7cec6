"""Batch-level invariants every compliant server must satisfy.

Checks collect every violation they find and never raise: the harness
reports non-conformance, it does not crash on it.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from jmaptest.harness.entities import is_known_property

if TYPE_CHECKING:
    from jmaptest.harness.batch import BatchResult


class ViolationKind(str, enum.Enum):
    CORRELATION_MISMATCH = "CorrelationMismatch"
    CREATION_ID_MISMATCH = "CreationIdMismatch"
    UNKNOWN_PROPERTY = "UnknownProperty"
    STRUCTURAL_MISMATCH = "StructuralMismatch"


@dataclass(frozen=True)
class Violation:
    """One detected protocol violation."""

    kind: ViolationKind
    call_id: str
    message: str
    # Temp ids or property names the violation is about, sorted
    subjects: tuple[str, ...] = ()
    temp_id: str | None = None

    @property
    def is_fatal(self) -> bool:
        """UnknownProperty is informational; everything else fails a check."""
        return self.kind is not ViolationKind.UNKNOWN_PROPERTY

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


def check_creation_ids(batch: BatchResult) -> list[Violation]:
    """Compare created + notCreated keys against the offered creation ids."""
    violations: list[Violation] = []
    for call_id, creation in batch.creations.items():
        if not creation.answered:
            continue

        for name in creation.malformed:
            violations.append(Violation(
                kind=ViolationKind.STRUCTURAL_MISMATCH,
                call_id=call_id,
                message=f"{creation.method} '{call_id}': {name} is not an object",
                subjects=(name,),
            ))

        if creation.has_create_spec and creation.result_ids != creation.creation_ids:
            offered = set(creation.creation_ids)
            answered = set(creation.result_ids)
            missing = sorted(offered - answered)
            unexpected = sorted(answered - offered)
            repeated = sorted(set(creation.created) & set(creation.not_created))
            parts = []
            if missing:
                parts.append(f"no result for {', '.join(missing)}")
            if unexpected:
                parts.append(f"results for unoffered ids {', '.join(unexpected)}")
            if repeated:
                parts.append(f"both created and notCreated: {', '.join(repeated)}")
            violations.append(Violation(
                kind=ViolationKind.CREATION_ID_MISMATCH,
                call_id=call_id,
                message=f"{creation.method} '{call_id}': {'; '.join(parts)}",
                subjects=tuple(sorted(offered ^ answered)) or tuple(repeated),
            ))

        for temp_id, result in creation.created.items():
            if result.server_id is None:
                violations.append(Violation(
                    kind=ViolationKind.STRUCTURAL_MISMATCH,
                    call_id=call_id,
                    message=f"created.{temp_id} has no string id",
                    temp_id=temp_id,
                ))
    return violations


def check_unknown_properties(
    batch: BatchResult, known_properties: Mapping[str, frozenset[str]]
) -> list[Violation]:
    """Report every property outside the allowlist of its object type.

    Scans created results of set calls and the ``list`` of get responses.
    A ``list`` that is not an array is reported as a StructuralMismatch.
    notCreated entries are SetErrors, not objects, and are never scanned;
    neither are types without an allowlist.
    """
    violations: list[Violation] = []

    for call_id, creation in batch.creations.items():
        allowed = known_properties.get(creation.entity_type)
        if allowed is None:
            continue
        for temp_id, result in creation.created.items():
            unknown = result.unknown_properties(allowed)
            if unknown:
                violations.append(Violation(
                    kind=ViolationKind.UNKNOWN_PROPERTY,
                    call_id=call_id,
                    message=f"{temp_id} has unknown properties: {', '.join(unknown)}",
                    subjects=tuple(unknown),
                    temp_id=temp_id,
                ))

    for call in batch.calls:
        response = batch.response_for(call.call_id)
        if response is None or response.is_error or not response.name.endswith("/get"):
            continue
        allowed = known_properties.get(response.name.split("/", 1)[0])
        if allowed is None:
            continue
        objects = response.arguments.get("list")
        if objects is None:
            continue
        if not isinstance(objects, list):
            violations.append(Violation(
                kind=ViolationKind.STRUCTURAL_MISMATCH,
                call_id=call.call_id,
                message=f"{response.name} '{call.call_id}': list is not an array",
                subjects=("list",),
            ))
            continue
        for index, obj in enumerate(objects):
            if not isinstance(obj, dict):
                continue
            unknown = sorted(name for name in obj if not is_known_property(name, allowed))
            if unknown:
                label = obj.get("id", f"list[{index}]")
                violations.append(Violation(
                    kind=ViolationKind.UNKNOWN_PROPERTY,
                    call_id=call.call_id,
                    message=f"{label} has unknown properties: {', '.join(unknown)}",
                    subjects=tuple(unknown),
                ))
    return violations


def check_batch_invariants(
    batch: BatchResult,
    *,
    strict: bool = False,
    known_properties: Mapping[str, frozenset[str]] | None = None,
) -> list[Violation]:
    """Run every batch-level check and return all violations found."""
    violations = batch.correlation.violations()
    violations.extend(check_creation_ids(batch))
    if strict:
        violations.extend(check_unknown_properties(batch, known_properties or {}))
    return violations
