# Overview: Request decorators for API routes (tenant context).

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.tenant_service import TenantAccessError, require_org


def require_tenant(f):
    """
    Establish tenant context from request headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.user_id: The acting user's ID, or None

    Returns 400 if X-Org-Id is missing or malformed, 403 if the
    organization does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_org_id = request.headers.get("X-Org-Id")
        if not raw_org_id:
            return jsonify({"error": "X-Org-Id header is required"}), 400
        try:
            org_id = int(raw_org_id)
        except ValueError:
            return jsonify({"error": "X-Org-Id must be an integer"}), 400

        raw_user_id = request.headers.get("X-User-Id")
        user_id = None
        if raw_user_id:
            try:
                user_id = int(raw_user_id)
            except ValueError:
                return jsonify({"error": "X-User-Id must be an integer"}), 400

        try:
            require_org(org_id)
        except TenantAccessError as e:
            current_app.logger.warning("Tenant rejected for %s %s: %s", request.method, request.path, e)
            return jsonify({"error": str(e)}), 403

        g.org_id = org_id
        g.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function
