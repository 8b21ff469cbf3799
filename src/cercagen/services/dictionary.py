"""Surname dictionary lookups.

A surname form resolves to a canonical entry either by the canonical's own
key or through a published variant. Canonicals merged into another one keep
a redirect, which is followed to the survivor.
"""

from cercagen.database.dac import DataAccess
from cercagen.models.dictionary import CognomCanonical
from cercagen.utils.normalize import canonical_surname_key

MAX_REDIRECT_HOPS = 20


def follow_redirects(store: DataAccess, cognom: CognomCanonical) -> CognomCanonical:
    """Final target of a redirect chain; stops on cycles and after 20 hops."""
    current = cognom
    seen: set[int] = set()
    for _ in range(MAX_REDIRECT_HOPS):
        if current.id in seen:
            break
        seen.add(current.id)
        target_id = current.redirect_to_id
        if not target_id or target_id <= 0 or target_id == current.id:
            break
        target = store.get_cognom(target_id)
        if target is None:
            break
        current = target
    return current


def resolve_cognom(store: DataAccess, text: str) -> CognomCanonical | None:
    """Canonical surname a form belongs to, or None.

    The canonical key is tried first, then the published variants.
    """
    key = canonical_surname_key(text)
    if not key:
        return None
    cognom = store.find_cognom_by_key(key)
    if cognom is None:
        variant = store.find_variant_by_key(key)
        if variant is None or not variant.canonical_id:
            return None
        cognom = store.get_cognom(variant.canonical_id)
        if cognom is None:
            return None
    return follow_redirects(store, cognom)


def resolve_or_create_cognom(store: DataAccess, form: str) -> int | None:
    """Canonical id for a form, creating a canonical from the raw form when unknown."""
    key = canonical_surname_key(form)
    if not key:
        return None
    cognom = resolve_cognom(store, form)
    if cognom is not None:
        return cognom.id
    return store.create_cognom(form.strip(), key)


def published_variant_forms(store: DataAccess, cognom: CognomCanonical) -> list[str]:
    """The canonical form followed by its published variant forms."""
    forms = [cognom.form]
    for variant in store.list_cognom_variants(cognom.id, published_only=True):
        if variant.form not in forms:
            forms.append(variant.form)
    return forms
