from __future__ import annotations

from flask import Blueprint, current_app, request

from app import get_cms
from app.utils import ok
from auth import ALL_ROLES, require_roles
from services.taxonomy import build_term_tree, load_taxonomy_terms

taxonomy_bp = Blueprint("taxonomy", __name__)


@taxonomy_bp.get("")
@require_roles(*ALL_ROLES)
def taxonomy_terms():
    cfg = current_app.config["CFG"]
    uid = str(request.args.get("uid") or "").strip() or cfg.TAXONOMY_UID
    terms = load_taxonomy_terms(get_cms(), uid, cfg.TAXONOMY_FALLBACK_DIR)
    built = build_term_tree(terms)
    return ok({"taxonomy": built["flat"], "taxonomyTree": built["tree"], "count": len(built["flat"])})
