"""
Audit records for state-changing requests.

Records go to the dedicated audit logger (see logging_config) and are only
written once the handler has returned successfully.
"""
import logging

from fastapi import Request

from marketplace.core.logging_config import AUDIT_LOGGER_NAME
from marketplace.core.rate_limit import get_client_ip

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
logger = logging.getLogger(__name__)


def _entity_id(request: Request):
    for name, value in request.path_params.items():
        if name == "id" or name.endswith("_id"):
            return value
    return None


def audit_action(action: str, entity_type: str):
    """Route dependency emitting one audit record per successful request."""
    async def dependency(request: Request):
        yield

        try:
            user = getattr(request.state, "user", None)
            audit_logger.info(
                f"action={action} entity_type={entity_type} entity_id={_entity_id(request)} "
                f"user_id={user.id if user else 'anonymous'} ip={get_client_ip(request)} "
                f"method={request.method} path={request.url.path}"
            )
        except Exception as e:
            logger.warning(f"Failed to write audit record: action={action}, error={e}")

    return dependency


def audit_admin_action(action: str, entity_type: str):
    return audit_action(f"ADMIN_{action}", entity_type)


def audit_user_action(action: str, entity_type: str):
    return audit_action(f"USER_{action}", entity_type)
