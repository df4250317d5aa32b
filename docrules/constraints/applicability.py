from __future__ import annotations

from .schema import Document, RuleDef


def applies(rule: RuleDef, document: Document) -> bool:
    """Decide whether `rule` runs against `document`.

    Disabled rules never apply. A rule without formats applies to every
    document; otherwise at least one of its formats must be declared by the
    document.
    """
    if not rule.enabled:
        return False
    if not rule.formats:
        return True
    return not rule.formats.isdisjoint(document.formats)
