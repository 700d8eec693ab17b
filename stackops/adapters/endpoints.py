"""Per-endpoint call classification for the service REST API.

Each endpoint declares whether it is safe to retry, which credential
authorizes it, and whether its body is gzip-compressed. The classification is
decided here, per operation, and never inferred from the HTTP method: a POST
such as ``renew_lease`` is retry-safe while ``create_update`` is not.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthScope(str, Enum):
    ACCOUNT = "account"
    LEASE = "lease"


@dataclass(frozen=True)
class Endpoint:
    """Static description of one REST operation."""

    name: str
    method: str
    retry_safe: bool
    auth: AuthScope = AuthScope.ACCOUNT
    gzip: bool = False


GET_ACCOUNT = Endpoint("get_account", "GET", retry_safe=True)
LIST_STACKS = Endpoint("list_stacks", "GET", retry_safe=True)
CREATE_STACK = Endpoint("create_stack", "POST", retry_safe=False)
GET_STACK = Endpoint("get_stack", "GET", retry_safe=True)
DELETE_STACK = Endpoint("delete_stack", "DELETE", retry_safe=False)
RENAME_STACK = Endpoint("rename_stack", "POST", retry_safe=False)
UPDATE_STACK_TAGS = Endpoint("update_stack_tags", "PATCH", retry_safe=True)
GET_STACK_UPDATES = Endpoint("get_stack_updates", "GET", retry_safe=True)
GET_LATEST_UPDATE = Endpoint("get_latest_update", "GET", retry_safe=True)
EXPORT_DEPLOYMENT = Endpoint("export_deployment", "GET", retry_safe=True)
IMPORT_DEPLOYMENT = Endpoint("import_deployment", "POST", retry_safe=False)
ENCRYPT_VALUE = Endpoint("encrypt_value", "POST", retry_safe=True)
DECRYPT_VALUE = Endpoint("decrypt_value", "POST", retry_safe=True)

CREATE_UPDATE = Endpoint("create_update", "POST", retry_safe=False)
START_UPDATE = Endpoint("start_update", "POST", retry_safe=False)
RENEW_LEASE = Endpoint("renew_lease", "POST", retry_safe=True)
PATCH_CHECKPOINT = Endpoint("patch_checkpoint", "PATCH", retry_safe=True, auth=AuthScope.LEASE, gzip=True)
INVALIDATE_CHECKPOINT = Endpoint("invalidate_checkpoint", "PATCH", retry_safe=True, auth=AuthScope.LEASE)
CANCEL_UPDATE = Endpoint("cancel_update", "POST", retry_safe=True)
COMPLETE_UPDATE = Endpoint("complete_update", "POST", retry_safe=True, auth=AuthScope.LEASE)
RECORD_EVENTS = Endpoint("record_events", "POST", retry_safe=True, auth=AuthScope.LEASE, gzip=True)
GET_UPDATE_EVENTS = Endpoint("get_update_events", "GET", retry_safe=True)

