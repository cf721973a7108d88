"""
Taxonomy helpers.

Contentstack stores taxonomy terms as a flat list where each term points at
its parent. The UI wants a forest (with a display path like
``UI > Content Type > Entry``) and the course filter wants "this term and
everything below it".
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable

from cache_layer import cms_cached
from app.utils import ApiError

logger = logging.getLogger(__name__)

UNNAMED_TERM = "Unnamed Term"
PATH_SEPARATOR = " > "

COMMON_TAXONOMY_FIELD_NAMES = (
    "taxonomies",
    "categories",
    "taxonomy",
    "category",
    "tags",
    "tag",
    "terms",
    "term",
)
_TAXONOMY_KEY_HINTS = ("taxonom", "categor", "term", "tag")


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        val = raw.get(k)
        if val:
            return val
    return None


def _term_uid(raw: Any) -> str:
    if isinstance(raw, str):
        return raw.strip()
    if isinstance(raw, dict):
        val = _first(raw, "uid", "id", "term_uid")
        return str(val).strip() if val else ""
    return ""


def _parent_uid(raw: dict[str, Any]) -> str | None:
    val = _first(raw, "parent_uid", "parentUid")
    if not val:
        parent = raw.get("parent")
        if isinstance(parent, dict):
            val = parent.get("uid")
    return str(val).strip() if val else None


def normalize_term(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    uid = _term_uid(raw)
    if not uid:
        return None
    return {
        "uid": uid,
        "name": str(_first(raw, "name", "title", "label") or UNNAMED_TERM),
        "description": str(raw.get("description") or ""),
        "parent_uid": _parent_uid(raw),
        "children": [],
        "level": 0,
        "path": "",
    }


def build_term_tree(terms: Iterable[Any]) -> dict[str, list[dict[str, Any]]]:
    """
    Build ``{"tree": roots, "flat": nodes}`` from raw term records.

    ``flat`` keeps input order (records without a uid are dropped, repeated
    uids keep their first occurrence). A term whose parent is unknown is a
    root. When a parent chain loops back on itself, the term at which the
    loop is detected becomes a root, so every node lands in the forest once.
    Children are sorted by name; roots keep input order.
    """
    flat: list[dict[str, Any]] = []
    by_uid: dict[str, dict[str, Any]] = {}
    for raw in terms or []:
        node = normalize_term(raw)
        if node is None or node["uid"] in by_uid:
            continue
        by_uid[node["uid"]] = node
        flat.append(node)

    resolved: set[str] = set()
    attached_to: dict[str, str | None] = {}

    def _place(uid: str, force_root: bool) -> None:
        node = by_uid[uid]
        parent = node["parent_uid"]
        if force_root or not parent or parent not in by_uid:
            node["level"] = 0
            node["path"] = node["name"]
            attached_to[uid] = None
        else:
            up = by_uid[parent]
            node["level"] = up["level"] + 1
            node["path"] = up["path"] + PATH_SEPARATOR + node["name"]
            attached_to[uid] = parent
        resolved.add(uid)

    for node in flat:
        if node["uid"] in resolved:
            continue

        chain: list[str] = []
        on_chain: set[str] = set()
        loop_at: str | None = None
        cur: str | None = node["uid"]
        while cur is not None and cur not in resolved:
            if cur in on_chain:
                loop_at = cur
                break
            chain.append(cur)
            on_chain.add(cur)
            parent = by_uid[cur]["parent_uid"]
            cur = parent if parent in by_uid else None

        if loop_at is None:
            for uid in reversed(chain):
                _place(uid, force_root=False)
            continue

        # chain[k:] is the loop; cut it above chain[k].
        k = chain.index(loop_at)
        _place(loop_at, force_root=True)
        for uid in reversed(chain[k + 1:]):
            _place(uid, force_root=False)
        for uid in reversed(chain[:k]):
            _place(uid, force_root=False)

    roots: list[dict[str, Any]] = []
    for node in flat:
        parent = attached_to.get(node["uid"])
        if parent is None:
            roots.append(node)
        else:
            by_uid[parent]["children"].append(node)

    for node in flat:
        if len(node["children"]) > 1:
            node["children"].sort(key=lambda n: n["name"])

    return {"tree": roots, "flat": flat}


def get_all_descendant_uids(term_uid: str, nodes: Iterable[dict[str, Any]]) -> list[str]:
    """``term_uid`` followed by every uid below it (depth-first)."""
    by_uid = {n.get("uid"): n for n in nodes or [] if isinstance(n, dict) and n.get("uid")}
    out: list[str] = []
    seen: set[str] = set()
    stack = [term_uid]
    while stack:
        uid = stack.pop()
        if uid in seen:
            continue
        seen.add(uid)
        out.append(uid)
        node = by_uid.get(uid)
        if not node:
            continue
        kids = [c.get("uid") for c in node.get("children") or [] if isinstance(c, dict) and c.get("uid")]
        stack.extend(reversed(kids))
    return out


def detect_taxonomy_field_name(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return None
    for name in COMMON_TAXONOMY_FIELD_NAMES:
        if isinstance(entry.get(name), (list, dict)):
            return name
    for key, val in entry.items():
        lower = str(key).lower()
        if any(h in lower for h in _TAXONOMY_KEY_HINTS) and isinstance(val, (list, dict)):
            return key
    return None


def extract_taxonomy_terms(entry: Any) -> list[dict[str, str]]:
    """Normalize the entry's taxonomy field to ``[{uid, name}]``."""
    field_name = detect_taxonomy_field_name(entry)
    if not field_name:
        return []
    value = entry[field_name]
    items = value if isinstance(value, list) else [value]

    out: list[dict[str, str]] = []
    for item in items:
        uid = _term_uid(item)
        if not uid:
            continue
        if isinstance(item, dict):
            name = str(_first(item, "name", "title", "label") or uid)
        else:
            name = uid
        out.append({"uid": uid, "name": name})
    return out


def filter_entries_by_term(
    entries: Iterable[dict[str, Any]], term_uid: str, nodes: Iterable[dict[str, Any]]
) -> list[dict[str, Any]]:
    wanted = set(get_all_descendant_uids(term_uid, nodes))
    out = []
    for entry in entries or []:
        if any(t["uid"] in wanted for t in extract_taxonomy_terms(entry)):
            out.append(entry)
    return out


def _load_fallback_terms(fallback_dir: str, taxonomy_uid: str) -> list[dict[str, Any]]:
    if not fallback_dir or not os.path.isdir(fallback_dir):
        return []
    candidates = [
        os.path.join(fallback_dir, f"{taxonomy_uid}.json"),
        os.path.join(fallback_dir, f"{taxonomy_uid}_taxonomy.json"),
    ]
    for path in candidates:
        if not os.path.isfile(path):
            continue
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Taxonomy fallback file unreadable path=%s error=%s", path, e)
            continue
        if not isinstance(data, dict):
            continue
        meta = data.get("taxonomy")
        if isinstance(meta, dict) and meta.get("uid") and meta.get("uid") != taxonomy_uid:
            continue
        terms = data.get("terms")
        if isinstance(terms, list):
            logger.info("Loaded %s taxonomy terms from %s", len(terms), path)
            return terms
    return []


def load_taxonomy_terms(cms, taxonomy_uid: str, fallback_dir: str = "") -> list[dict[str, Any]]:
    """CMS terms when reachable, else the JSON fallback file, else ``[]``."""
    if cms is not None and getattr(cms, "configured", False):
        try:
            terms = cms_cached(
                "taxonomy_terms",
                {"uid": taxonomy_uid},
                lambda: cms.get_taxonomy_terms(taxonomy_uid),
            )
            if terms:
                return list(terms)
        except ApiError as e:
            logger.warning("Taxonomy API unavailable uid=%s error=%s", taxonomy_uid, e.message)
    return _load_fallback_terms(fallback_dir, taxonomy_uid)
