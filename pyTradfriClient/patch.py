"""Patch building and state normalization.

Writes to the gateway are minimal JSON patches: only fields whose value
differs from the last observed state are sent, plus the *required*
fields of every sub-object that changed (see
:mod:`pyTradfriClient.ipso`).  Nested lists (the lights of an
accessory) are diffed element by element; an unchanged element keeps
its position as an empty object so that indices stay aligned.

Incoming state is normalized before it becomes a domain object: the
gateway reports the minimum non-zero brightness (1) for lights that are
switched off, which is stored as 0 instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pyTradfriClient.accessory import Accessory, Light
from pyTradfriClient.ipso import IpsoObject, ipso_fields, serialize_value

logger = logging.getLogger(__name__)

#: Brightness the gateway reports for a light that is switched off.
MIN_DIMMER_SENTINEL: int = 1

Patch = Dict[str, Any]


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_light(light: Light) -> Light:
    """Replace the sentinel brightness of an off light with 0."""
    if light.on_off is False and light.dimmer == MIN_DIMMER_SENTINEL:
        light.dimmer = 0
    return light


def normalize_accessory(accessory: Accessory) -> Accessory:
    """Apply :func:`normalize_light` to every light of *accessory*."""
    for light in accessory.light_list:
        normalize_light(light)
    return accessory


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------


def build_patch(
    current: IpsoObject,
    reference: Optional[IpsoObject] = None,
) -> Patch:
    """Return the wire patch turning *reference* into *current*.

    With ``reference=None`` every writable, non-``None`` field is
    included.  Read-only fields are never part of a patch.  An empty
    dict means "nothing changed".
    """
    patch: Patch = {}
    for name, spec in ipso_fields(current):
        if spec.read_only:
            continue
        value = getattr(current, name)
        ref_value = getattr(reference, name) if reference is not None else None

        if spec.nested is not None:
            if value is None:
                continue
            if spec.many:
                items = _diff_list(value, ref_value or [])
                if items is not None:
                    patch[spec.key] = items
            else:
                sub = build_patch(value, ref_value)
                if sub:
                    patch[spec.key] = sub
            continue

        if value is None:
            continue
        if reference is not None and value == ref_value:
            continue
        patch[spec.key] = serialize_value(spec, value)

    return _add_required(patch, current)


def _add_required(patch: Patch, obj: IpsoObject) -> Patch:
    """Add the required fields of *obj* to a non-empty *patch*."""
    if not patch:
        return patch
    for name, spec in ipso_fields(obj):
        if spec.required and spec.key not in patch:
            value = getattr(obj, name)
            if value is not None:
                patch[spec.key] = serialize_value(spec, value)
    return patch


def _diff_list(
    current: List[IpsoObject],
    reference: List[IpsoObject],
) -> Optional[List[Patch]]:
    """Element-wise diff; ``None`` when no element changed."""
    patches = [
        build_patch(item, reference[i] if i < len(reference) else None)
        for i, item in enumerate(current)
    ]
    if any(patches):
        return patches
    return None


def build_operation_patch(
    target: IpsoObject,
    operation: Mapping[str, Any],
    *,
    force: bool = False,
) -> Patch:
    """Patch that applies *operation* (attribute → value) to *target*.

    *target* itself is not modified.  With ``force=True`` every field
    named in *operation* is sent even if it already has that value.

    Raises
    ------
    ValueError
        If *operation* names an unknown attribute.
    """
    changed = target.clone().merge(operation)
    patch = build_patch(changed, target)
    if force and operation:
        specs = dict(ipso_fields(changed))
        for name in operation:
            spec = specs[name]
            value = getattr(changed, name)
            if not spec.read_only and value is not None:
                patch[spec.key] = serialize_value(spec, value)
        _add_required(patch, changed)
    logger.debug(
        "Operation %r on %s -> patch %r",
        dict(operation), type(target).__name__, patch,
    )
    return patch
