"""
Identity resolution - user context for parameter resolution.

Providers are tried in order until one returns values:

    1. PlaceholderIdentityProvider   - resolves the auto_* identity placeholders
    2. UserServiceIdentityProvider   - direct user-service lookup
    3. AuthPayloadIdentityProvider   - whatever the raw auth payload carries

A provider signals failure by raising IdentityResolutionError (or any other
exception, which is wrapped). The resolver logs which tier answered and
never raises itself.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from conversation_orchestrator.utils.exceptions import IdentityResolutionError
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

# Placeholder name -> user context key
PLACEHOLDER_FIELDS = {
    "auto_companyid": "companyId",
    "auto_username": "userName",
    "auto_companyname": "companyName",
    "auto_user_summary": "userSummary",
    "auto_contractIds": "contractIds",
}

PASSTHROUGH_FIELDS = ("userId", "userEmail", "userRole", "userLanguage", "userDepartment")

# User-service record key -> user context key
USER_SERVICE_FIELDS = {
    "companyId": "companyId",
    "userName": "userName",
    "name": "userName",
    "companyName": "companyName",
    "email": "userEmail",
    "role": "userRole",
    "language": "userLanguage",
    "locale": "userLanguage",
}


class IdentityProvider:
    """One tier of the identity chain."""

    name = "identity_provider"

    def resolve(self, auth_user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Return user context values.

        Raises:
            IdentityResolutionError: If this tier cannot supply anything
        """
        raise NotImplementedError


class PlaceholderIdentityProvider(IdentityProvider):
    """
    Resolves identity placeholders through an injected resolver.

    The resolver receives the auth payload and returns a mapping keyed by
    placeholder name (``auto_companyid``, ``auto_username``, ...) and
    optionally by plain user fields (``userId``, ``userRole``, ...).
    """

    name = "placeholder_resolver"

    def __init__(self, resolver: Callable[[Optional[Dict[str, Any]]], Dict[str, Any]]):
        self.resolver = resolver

    def resolve(self, auth_user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            resolved = self.resolver(auth_user) or {}
        except Exception as e:
            raise IdentityResolutionError(self.name, "placeholder resolution failed", original_error=e) from e

        values: Dict[str, Any] = {}
        for placeholder, key in PLACEHOLDER_FIELDS.items():
            value = resolved.get(placeholder)
            if value in (None, ""):
                continue
            if key == "contractIds" and isinstance(value, str):
                value = [part.strip() for part in value.split(",") if part.strip()]
            values[key] = value

        for key in PASSTHROUGH_FIELDS:
            if resolved.get(key) not in (None, ""):
                values[key] = resolved[key]

        if not values:
            raise IdentityResolutionError(self.name, "resolver returned no identity values")
        return values


class UserServiceIdentityProvider(IdentityProvider):
    """Looks the user up directly through an injected user-service call."""

    name = "user_service"

    def __init__(self, lookup: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]]):
        self.lookup = lookup

    def resolve(self, auth_user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            record = self.lookup(auth_user)
        except Exception as e:
            raise IdentityResolutionError(self.name, "user lookup failed", original_error=e) from e

        if not record:
            raise IdentityResolutionError(self.name, "user not found")

        values: Dict[str, Any] = {}
        for source_key, key in USER_SERVICE_FIELDS.items():
            if record.get(source_key) not in (None, "") and key not in values:
                values[key] = record[source_key]

        if not values:
            raise IdentityResolutionError(self.name, "user record has no usable fields")
        return values


class AuthPayloadIdentityProvider(IdentityProvider):
    """Last resort: the company id carried by the auth payload itself."""

    name = "auth_payload"

    def resolve(self, auth_user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        company_id = (auth_user or {}).get("companyId")
        if not company_id:
            raise IdentityResolutionError(self.name, "auth payload has no companyId")
        return {"companyId": company_id}


class IdentityResolver:
    """Tries identity providers in order; the first that answers wins."""

    def __init__(self, providers: Optional[List[IdentityProvider]] = None):
        self.providers = list(providers) if providers is not None else [AuthPayloadIdentityProvider()]

    def resolve(self, auth_user: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], Optional[str]]:
        """
        Resolve user context.

        Returns:
            (values, name of the provider that answered); ({}, None) when every tier failed
        """
        for tier, provider in enumerate(self.providers, start=1):
            try:
                values = provider.resolve(auth_user)
            except IdentityResolutionError as e:
                logger.warning(f"[IDENTITY] Tier {tier} ({provider.name}) failed: {e.message}")
                continue
            except Exception as e:
                logger.warning(f"[IDENTITY] Tier {tier} ({provider.name}) raised unexpectedly: {e}")
                continue

            logger.info(f"[IDENTITY] Tier {tier} ({provider.name}) resolved: {', '.join(sorted(values))}")
            return values, provider.name

        logger.warning("[IDENTITY] No identity provider could resolve user context")
        return {}, None
